"""Configuration module: exports Settings and load_config."""

from artistgraph.config.loader import load_config
from artistgraph.config.settings import Settings

__all__ = ["Settings", "load_config"]
