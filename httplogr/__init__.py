"""Structured request logging middleware for WSGI applications."""

__version__ = "3.0.0"

__all__ = ["__version__"]