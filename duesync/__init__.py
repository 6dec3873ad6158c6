"""Coursework deadline sync: LMS fetch, reconciliation, approval and merge."""

__version__ = "0.4.0"
