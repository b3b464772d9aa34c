"""Social Publisher - scheduled publishing to social platforms."""

__version__ = "0.3.0"
