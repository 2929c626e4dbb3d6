"""
memtext Configuration Settings

This module contains the configuration constants for the memcached client.
Values are read from the environment once, at import time.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Client configuration settings."""

    # Network settings
    HOST: str = os.environ.get("MEMTEXT_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("MEMTEXT_PORT", "11211"))
    CONNECT_TIMEOUT: float = float(os.environ.get("MEMTEXT_CONNECT_TIMEOUT", "5.0"))

    # Stream settings
    # Longest reply line the reader will buffer before giving up.
    READ_LIMIT: int = int(os.environ.get("MEMTEXT_READ_LIMIT", "65536"))

    # Pool settings
    MAX_IDLE_CONNECTIONS: int = int(os.environ.get("MEMTEXT_MAX_IDLE", "4"))

    # Protocol limits
    MAX_KEY_LENGTH: int = 250

    # Logging settings
    DEBUG: bool = os.environ.get("MEMTEXT_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("MEMTEXT_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
