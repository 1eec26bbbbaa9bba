"""Declarative sync of identity clients and accounts."""

__version__ = "0.1.0"
