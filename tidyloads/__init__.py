"""Tidyloads: keeps a Downloads folder organized."""

__version__ = "1.0.0"
