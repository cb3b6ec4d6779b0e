"""txwatch - blockchain transaction confirmation monitor."""

__version__ = "1.0.0"
