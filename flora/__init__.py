"""flora: builds the merged WCVP + WFO taxonomy used by the catalog app."""
__version__ = "0.4.0"
