"""
memtext: memcached text protocol client

An asyncio client speaking the memcached text protocol over raw TCP
streams: storage, retrieval, counters, touch, stats and flush commands,
with a typed error model for every reply the server can send.
"""

from .exceptions import (
    CacheMiss,
    CacheResultError,
    CasConflict,
    ClientError,
    InvalidKeyError,
    MemcacheError,
    NotFound,
    NotStored,
    NumericFormatError,
    ProtocolError,
    ReplyError,
    ServerError,
)
from .network.connection import TextConnection, dial
from .network.pool import ConnectionPool
from .protocol.commands import Item

__version__ = "1.0.0"

__all__ = [
    "CacheMiss",
    "CacheResultError",
    "CasConflict",
    "ClientError",
    "ConnectionPool",
    "InvalidKeyError",
    "Item",
    "MemcacheError",
    "NotFound",
    "NotStored",
    "NumericFormatError",
    "ProtocolError",
    "ReplyError",
    "ServerError",
    "TextConnection",
    "dial",
]
