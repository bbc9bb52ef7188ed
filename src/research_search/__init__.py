"""Ranked full-text search over published research articles."""

__version__ = "0.1.0"
