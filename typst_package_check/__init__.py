"""Checks Typst packages for common mistakes, locally or as a GitHub App."""

__version__ = "0.1.0"
