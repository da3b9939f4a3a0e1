"""Supervisor for remote delete-by-query jobs."""

__version__ = "0.3.0"
