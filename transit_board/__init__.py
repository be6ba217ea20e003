"""Near-real-time transit arrival board."""

__version__ = "0.1.0"
