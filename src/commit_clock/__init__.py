"""Commit Clock - track time spent on projects alongside git commits."""

__version__ = "0.1.0"
