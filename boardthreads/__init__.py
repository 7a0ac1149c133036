"""Threaded discussion views for boards of flat, partially ordered records."""

__version__ = "0.1.0"
