"""
Protocol Parser Module

This module encodes requests and parses replies of the memcached text
protocol. Nothing here performs I/O: the connection reads lines and payloads
from the stream and hands them over for interpretation.

Grammar handled:
    Request:   <command> [ARGS...]\\r\\n [<data block>\\r\\n]
    Replies:   STORED | DELETED | TOUCHED | OK | EXISTS | NOT_STORED
               | NOT_FOUND | ERROR | CLIENT_ERROR <msg> | SERVER_ERROR <msg>
    Retrieval: VALUE <key> <flags> <bytes> [<cas unique>]\\r\\n<data>\\r\\n ... END\\r\\n
    Stats:     STAT <name> <value>\\r\\n ... END\\r\\n
    Version:   VERSION <version>\\r\\n
"""

import logging
from typing import Optional, Tuple

from ..config.settings import settings
from ..exceptions import InvalidKeyError, NumericFormatError, ProtocolError
from .commands import (
    COUNTER_COMMANDS,
    STORAGE_COMMANDS,
    Command,
    CommandType,
    Reply,
    ReplyKind,
)

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
END = b"END"
NOREPLY = b"noreply"
STAT_PREFIX = b"STAT "
VERSION_PREFIX = b"VERSION "
VALUE_LITERAL = "VALUE"

SUCCESS_REPLIES = frozenset({b"STORED", b"DELETED", b"TOUCHED", b"OK"})
CLIENT_ERROR_PREFIX = b"CLIENT_ERROR "
SERVER_ERROR_PREFIX = b"SERVER_ERROR "

_EXACT_REPLIES = {
    b"EXISTS": ReplyKind.CAS_CONFLICT,
    b"NOT_STORED": ReplyKind.NOT_STORED,
    b"NOT_FOUND": ReplyKind.NOT_FOUND,
    b"ERROR": ReplyKind.ERROR,
}


def classify_reply(line: bytes) -> Reply:
    """
    Classify one reply line (CRLF already stripped).

    Exact tokens are checked before the error prefixes; anything else is
    UNRECOGNIZED and left to the command handler, since counter replies
    are bare numbers.

    >>> classify_reply(b"STORED").kind
    <ReplyKind.SUCCESS: 1>
    >>> classify_reply(b"SERVER_ERROR out of memory").message
    'out of memory'
    """
    if line in SUCCESS_REPLIES:
        return Reply(ReplyKind.SUCCESS, line)

    kind = _EXACT_REPLIES.get(line)
    if kind is not None:
        return Reply(kind, line)

    if line.startswith(CLIENT_ERROR_PREFIX):
        message = line[len(CLIENT_ERROR_PREFIX):].decode("utf-8", "replace")
        return Reply(ReplyKind.CLIENT_ERROR, line, message)
    if line.startswith(SERVER_ERROR_PREFIX):
        message = line[len(SERVER_ERROR_PREFIX):].decode("utf-8", "replace")
        return Reply(ReplyKind.SERVER_ERROR, line, message)

    return Reply(ReplyKind.UNRECOGNIZED, line)


def parse_uint(text, bits: int = 64) -> int:
    """
    Parse an unsigned decimal that must fit in ``bits`` bits.

    Only ASCII digits are accepted; signs, whitespace and underscores,
    which ``int()`` would tolerate, are rejected.

    Raises:
        NumericFormatError: if the text is not a decimal in range
    """
    if isinstance(text, bytes):
        text = text.decode("ascii", "replace")
    if not text or not (text.isascii() and text.isdigit()):
        raise NumericFormatError(text, bits)
    value = int(text)
    if value >= 1 << bits:
        raise NumericFormatError(text, bits)
    return value


def unknown_reply(line: bytes) -> ProtocolError:
    """Build the protocol error for a reply the command cannot use."""
    return ProtocolError(f"unknown reply type: {line.decode('utf-8', 'replace')}")


class ProtocolParser:
    """
    Encoder and decoder for the memcached text protocol.

    Requests are built from ``Command`` objects; reply lines are parsed by
    the ``parse_*`` methods, which raise ``ProtocolError`` or
    ``NumericFormatError`` when a line does not have the expected shape.

    Constraints:
        - Keys: 1 to 250 bytes, no whitespace or control characters
        - Flags: unsigned 32-bit
        - Lengths, CAS tokens, counter values: unsigned 64-bit
    """

    def __init__(self):
        """Initialize the parser with constraints from settings."""
        self.max_key_length = settings.MAX_KEY_LENGTH

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def validate_key(self, key: str) -> bytes:
        """
        Check a key and return its wire form.

        Raises:
            InvalidKeyError: if the key is empty, too long, or contains
                whitespace or control characters
        """
        if not isinstance(key, str):
            raise InvalidKeyError(f"key must be str, not {type(key).__name__}")
        encoded = key.encode("utf-8")
        if not encoded:
            raise InvalidKeyError("key is empty")
        if len(encoded) > self.max_key_length:
            raise InvalidKeyError(
                f"key is {len(encoded)} bytes, limit is {self.max_key_length}")
        if any(byte <= 0x20 or byte == 0x7f for byte in encoded):
            raise InvalidKeyError(f"key contains whitespace or control characters: {key!r}")
        return encoded

    def validate_argument(self, argument: str) -> bytes:
        """
        Check a stats argument and return its wire form.

        Arguments may hold spaces ("cachedump 1 10") but no other control
        characters, and must be ASCII.

        Raises:
            ValueError: if the argument would break the request line
        """
        if not argument.isascii() or any(ch < " " or ch == "\x7f" for ch in argument):
            raise ValueError(f"invalid stats argument: {argument!r}")
        return argument.encode("ascii")

    def format_request(self, command: Command) -> bytes:
        """
        Format a Command into the bytes to write, data block included.

        Examples:
            >>> parser = ProtocolParser()
            >>> parser.format_request(Command(CommandType.GET, keys="foo"))
            b'get foo\\r\\n'
            >>> parser.format_request(
            ...     Command(CommandType.SET, keys="foo", value=b"bar", flags=1, exptime=60))
            b'set foo 1 60 3\\r\\nbar\\r\\n'
            >>> parser.format_request(Command(CommandType.FLUSH_ALL, noreply=True))
            b'flush_all noreply\\r\\n'

        Raises:
            ValueError: if the command does not carry what its type needs, or
                its stats argument contains control or non-ASCII characters
            InvalidKeyError: if a key is rejected
        """
        if not command.is_valid:
            raise ValueError(f"invalid {command.type.value} command: {command!r}")

        fields = [command.type.value.encode("ascii")]
        fields.extend(self.validate_key(key) for key in command.keys)

        data = None
        if command.type in STORAGE_COMMANDS:
            data = bytes(command.value)
            fields.append(b"%d" % command.flags)
            fields.append(b"%d" % command.exptime)
            fields.append(b"%d" % len(data))
            if command.type == CommandType.CAS:
                fields.append(b"%d" % command.cas_id)
        elif command.type in COUNTER_COMMANDS:
            fields.append(b"%d" % command.amount)
        elif command.type == CommandType.TOUCH:
            fields.append(b"%d" % command.exptime)
        elif command.type == CommandType.FLUSH_ALL:
            if command.delay >= 0:
                fields.append(b"%d" % command.delay)
        elif command.type == CommandType.STATS:
            if command.argument:
                fields.append(self.validate_argument(command.argument))

        if command.noreply:
            fields.append(NOREPLY)

        request = b" ".join(fields) + CRLF
        if data is not None:
            request += data + CRLF
        return request

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def classify(self, line: bytes) -> Reply:
        """See ``classify_reply``."""
        return classify_reply(line)

    def parse_value_header(self, header: bytes) -> Tuple[str, int, int, Optional[int]]:
        """
        Parse a retrieval header.

        Format: VALUE <key> <flags> <bytes> [<cas unique>]

        Returns:
            (key, flags, size, cas_id) with cas_id None when absent

        Raises:
            ProtocolError: if fewer than 4 fields are present
            NumericFormatError: if flags, size or cas is not a number
        """
        text = header.decode("utf-8", "replace")
        chunks = text.split(" ")
        if len(chunks) < 4 or chunks[0] != VALUE_LITERAL:
            raise ProtocolError(f"malformed response: {text!r}")

        key = chunks[1]
        flags = parse_uint(chunks[2], 32)
        size = parse_uint(chunks[3], 64)
        cas_id = None
        if len(chunks) >= 5:
            cas_id = parse_uint(chunks[4], 64)

        logger.debug(f"value header: key={key} flags={flags} size={size} cas={cas_id}")
        return key, flags, size, cas_id

    def parse_value_body(self, block: bytes) -> bytes:
        """
        Strip the CRLF that terminates a payload read as ``size + 2`` bytes.

        Raises:
            ProtocolError: if the block does not end with CRLF
        """
        if not block.endswith(CRLF):
            raise ProtocolError("malformed response: corrupt get result end")
        return block[:-len(CRLF)]

    def parse_stat_line(self, line: bytes) -> Tuple[str, str]:
        """
        Parse one ``STAT <name> <value>`` line.

        The name ends at the first space after the prefix; the value is the
        rest of the line and may itself contain spaces.

        Raises:
            ProtocolError: if the line does not have that shape
        """
        if not line.startswith(STAT_PREFIX):
            raise ProtocolError("malformed stats response")
        parts = line[len(STAT_PREFIX):].split(b" ", 1)
        if len(parts) != 2 or not parts[0]:
            raise ProtocolError("malformed stats response")
        name, value = parts
        return name.decode("utf-8", "replace"), value.decode("utf-8", "replace")

    def parse_version(self, line: bytes) -> str:
        """
        Parse a ``VERSION <version>`` line.

        Raises:
            ProtocolError: for any other line
        """
        if not line.startswith(VERSION_PREFIX):
            raise unknown_reply(line)
        return line[len(VERSION_PREFIX):].decode("utf-8", "replace")

    def parse_counter(self, line: bytes) -> int:
        """Parse the new value returned by incr/decr."""
        return parse_uint(line, 64)

    def is_end(self, line: bytes) -> bool:
        """Whether the line is the END sentinel."""
        return line == END
