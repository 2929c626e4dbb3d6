"""
Protocol Command and Reply Definitions

This module defines the data structures for memcached text protocol requests
and the replies read back for them.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Tuple

from ..exceptions import (
    CasConflict,
    ClientError,
    MemcacheError,
    NotFound,
    NotStored,
    ReplyError,
    ServerError,
)


class CommandType(Enum):
    """Enumeration of supported commands; values are the wire names."""
    GET = "get"
    GETS = "gets"
    SET = "set"
    ADD = "add"
    REPLACE = "replace"
    APPEND = "append"
    PREPEND = "prepend"
    CAS = "cas"
    DELETE = "delete"
    INCR = "incr"
    DECR = "decr"
    TOUCH = "touch"
    STATS = "stats"
    FLUSH_ALL = "flush_all"
    VERSION = "version"
    QUIT = "quit"


STORAGE_COMMANDS = frozenset({
    CommandType.SET,
    CommandType.ADD,
    CommandType.REPLACE,
    CommandType.APPEND,
    CommandType.PREPEND,
    CommandType.CAS,
})

COUNTER_COMMANDS = frozenset({CommandType.INCR, CommandType.DECR})

# Commands that accept a trailing ``noreply`` token.
NOREPLY_COMMANDS = STORAGE_COMMANDS | COUNTER_COMMANDS | {
    CommandType.DELETE,
    CommandType.TOUCH,
    CommandType.FLUSH_ALL,
}


@dataclass
class Command:
    """
    Represents one request to be written to the server.

    Attributes:
        type: The command to send
        keys: Keys addressed by the command (several only for GETS)
        value: Data block for storage commands
        flags: Opaque 32-bit value stored with the item
        exptime: Expiration time in seconds (0 = never expire)
        cas_id: CAS token for the CAS command
        amount: Delta for INCR/DECR
        delay: FLUSH_ALL delay in seconds; negative omits the field
        argument: Optional STATS argument
        noreply: Ask the server not to answer
    """
    type: CommandType
    keys: Tuple[str, ...] = ()
    value: bytes = b""
    flags: int = 0
    exptime: int = 0
    cas_id: int = 0
    amount: int = 0
    delay: int = -1
    argument: Optional[str] = None
    noreply: bool = False

    def __post_init__(self):
        """Normalise keys to a tuple."""
        if isinstance(self.keys, str):
            self.keys = (self.keys,)
        else:
            self.keys = tuple(self.keys)

    @property
    def expects_reply(self) -> bool:
        """Whether a reply has to be read after sending."""
        return not self.noreply and self.type != CommandType.QUIT

    @property
    def is_valid(self) -> bool:
        """Check if the command carries what its type needs."""
        if self.noreply and self.type not in NOREPLY_COMMANDS:
            return False
        if self.type in (CommandType.STATS, CommandType.FLUSH_ALL,
                         CommandType.VERSION, CommandType.QUIT):
            return not self.keys
        if self.type == CommandType.GETS:
            return bool(self.keys)
        return len(self.keys) == 1


@dataclass
class Item:
    """
    An item returned by a retrieval command.

    Attributes:
        value: The stored bytes
        flags: Opaque 32-bit value stored alongside the item
        cas_id: 64-bit CAS token, when the server sent one
    """
    value: bytes
    flags: int = 0
    cas_id: Optional[int] = None


class ReplyKind(Enum):
    """Closed set of outcomes for a single reply line."""
    SUCCESS = auto()
    CAS_CONFLICT = auto()
    NOT_STORED = auto()
    NOT_FOUND = auto()
    ERROR = auto()
    CLIENT_ERROR = auto()
    SERVER_ERROR = auto()
    UNRECOGNIZED = auto()


_ERRORS = {
    ReplyKind.CAS_CONFLICT: CasConflict,
    ReplyKind.NOT_STORED: NotStored,
    ReplyKind.NOT_FOUND: NotFound,
    ReplyKind.ERROR: ReplyError,
    ReplyKind.CLIENT_ERROR: ClientError,
    ReplyKind.SERVER_ERROR: ServerError,
}


@dataclass(frozen=True)
class Reply:
    """
    A classified reply line.

    Attributes:
        kind: What the line means
        line: The raw line, CRLF stripped
        message: Server text for CLIENT_ERROR / SERVER_ERROR
    """
    kind: ReplyKind
    line: bytes
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == ReplyKind.SUCCESS

    def error(self) -> Optional[MemcacheError]:
        """
        Build the exception this reply stands for.

        Returns:
            A new exception instance, or None for SUCCESS and UNRECOGNIZED.
        """
        error_type = _ERRORS.get(self.kind)
        if error_type is None:
            return None
        if self.kind in (ReplyKind.CLIENT_ERROR, ReplyKind.SERVER_ERROR):
            return error_type(self.message)
        return error_type()
