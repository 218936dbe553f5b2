"""Scoped permission resolution for a community platform backend."""

__version__ = "1.0.0"
