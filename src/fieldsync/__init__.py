"""Offline-first storage and manual sync engine for field data collection."""

__version__ = "1.0.0"
