"""Configuration module - exports Settings and load_config."""

from bankdocs.config.loader import load_config
from bankdocs.config.settings import Settings

__all__ = ["Settings", "load_config"]
