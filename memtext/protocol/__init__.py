"""Protocol module for memtext."""

from .commands import Command, CommandType, Item, Reply, ReplyKind
from .parser import ProtocolParser, classify_reply, parse_uint

__all__ = [
    "Command",
    "CommandType",
    "Item",
    "Reply",
    "ReplyKind",
    "ProtocolParser",
    "classify_reply",
    "parse_uint",
]
