"""Configuration for the quote intake service."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
