"""Echoes: semantic recall over recorded voice memories."""

__version__ = "0.1.0"
