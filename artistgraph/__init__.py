"""Artist relationship discovery and multi-source enrichment."""

__version__ = "0.1.0"
