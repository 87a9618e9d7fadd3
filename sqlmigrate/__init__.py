"""Numbered SQL migrations for PostgreSQL, applied in a single transaction."""

__version__ = "0.1.0"