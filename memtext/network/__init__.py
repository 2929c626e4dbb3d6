"""Network module for memtext."""

from .connection import TextConnection, dial
from .pool import ConnectionPool

__all__ = ["TextConnection", "dial", "ConnectionPool"]
