"""Steps of the taxonomy build; ``catalogue.load_default`` wires them into a Dag."""
