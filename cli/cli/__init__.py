"""Command-line interface for the PTRS compliance API."""

__version__ = "0.4.0"
