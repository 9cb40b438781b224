"""Takeoff import and identity resolution engine."""

__version__ = "0.1.0"
