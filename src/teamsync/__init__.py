"""Declarative GitHub team reconciliation."""

__version__ = "0.1.0"
