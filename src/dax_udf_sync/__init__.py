"""Sync DAX user-defined functions between a semantic model and a GitHub repository."""

__version__ = "0.1.0"
