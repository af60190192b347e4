"""Dealflow - schema-driven sales pipeline engine."""

__version__ = "0.1.0"
