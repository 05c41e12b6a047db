"""Zameen Finder: discovery and extraction crawler for zameen.com listings."""

__version__ = "0.1.0"
