"""HTTP fetch engine for bulk feed polling."""

__version__ = "0.1.0"
