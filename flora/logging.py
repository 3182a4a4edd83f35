import logging
from rich.console import Console
from rich.logging import RichHandler

_LOGGER = logging.getLogger("flora")
_HANDLER = RichHandler(rich_tracebacks=True, markup=False)  # messages carry SQL and driver text
_FORMAT = "%(message)s"
_CONSOLE = Console()

def set_verbosity(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=_FORMAT, datefmt="[%X]", handlers=[_HANDLER])
    _LOGGER.setLevel(level)

def log() -> logging.Logger:
    return _LOGGER

def console() -> Console:
    """Rich console used for step banners."""
    return _CONSOLE
