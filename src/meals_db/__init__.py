"""Meals DB client store and WordPress reconciliation service."""

__version__ = "0.1.0"
