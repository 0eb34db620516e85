"""Statute revision impact engine: link local regulations to statutes and assess revisions."""

__version__ = "0.1.0"
