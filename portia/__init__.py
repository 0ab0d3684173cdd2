"""Portia - access request manager."""

__version__ = "1.0.0"
