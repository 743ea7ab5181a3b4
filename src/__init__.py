"""TappHA: Home Assistant companion backend."""

__version__ = "0.1.0"
