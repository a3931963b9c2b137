"""ArchGraph CLI: architecture models for unfamiliar source trees."""

__version__ = "0.3.0"
