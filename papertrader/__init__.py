"""Paper-trading stock dashboard."""

__version__ = "1.0.0"
