"""Configuration module for memtext."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
