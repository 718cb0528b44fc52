"""Saved-search watches over a listings catalog."""

__version__ = "1.0.0"
