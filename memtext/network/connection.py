"""
Memcached Text Connection Module

This module drives the memcached text protocol over one asyncio stream pair.

Each command is written in full, then its reply is read back before the
coroutine returns: the stream position is the only synchronization between
requests and replies, so a connection must never have two commands in
flight.

Key asyncio concepts used:
- asyncio.open_connection(): Open the TCP stream pair
- StreamReader.readuntil(): Read one reply line
- StreamReader.readexactly(): Read a length-prefixed payload
- StreamWriter.write() / drain(): Send a request
"""

import asyncio
import logging
from asyncio import StreamReader, StreamWriter
from typing import Dict, Iterable, Optional

from ..config.settings import settings
from ..exceptions import CacheMiss, NumericFormatError, ProtocolError
from ..protocol.commands import Command, CommandType, Item, Reply, ReplyKind
from ..protocol.parser import ProtocolParser, unknown_reply


class TextConnection:
    """
    A connection to one memcached server speaking the text protocol.

    The connection carries a sticky error slot. When a transport, framing or
    protocol failure leaves the stream at an unknown position, the exception
    is stored there and raised again by every later read or write, without
    touching the stream, until the caller drains it with ``take_error()``.
    Cache results (``CacheMiss``, ``NotFound``, ...) and server-reported
    errors are raised but never stored, since their reply was read in full.
    A command cancelled while it waits on the stream stores a
    ``ProtocolError``, because its reply may still arrive later.

    Usage:
        conn = await dial('127.0.0.1', 11211)
        await conn.set('greeting', b'hello')
        item = await conn.get('greeting')
        await conn.close()

    Attributes:
        addr: "host:port" of the server, when known
        parser: The ProtocolParser used to encode and decode
        logger: Logger receiving debug output; injectable
    """

    def __init__(
            self,
            reader: StreamReader,
            writer: StreamWriter,
            addr: str = None,
            logger: logging.Logger = None,
    ):
        self.addr = addr
        self.parser = ProtocolParser()
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._reader = reader
        self._writer = writer
        self._error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Sticky error slot
    # ------------------------------------------------------------------

    @property
    def error(self) -> Optional[BaseException]:
        """The stored error, without clearing it."""
        return self._error

    def take_error(self) -> Optional[BaseException]:
        """Return the stored error and clear the slot."""
        error, self._error = self._error, None
        return error

    def _check(self) -> None:
        if self._error is not None:
            raise self._error.with_traceback(None)
        if self._writer is None:
            raise ConnectionError("connection is closed")

    def _fail(self, error: BaseException) -> BaseException:
        if self._error is None:
            self._error = error
            self.logger.warning(f"connection {self.addr} failed: {error!r}")
        return error

    def _interrupted(self) -> None:
        """Mark the stream unusable after a cancelled read or write."""
        self._fail(ProtocolError("command interrupted before its reply was read"))

    # ------------------------------------------------------------------
    # Stream primitives
    # ------------------------------------------------------------------

    async def _send(self, command: Command) -> None:
        self._check()
        request = self.parser.format_request(command)
        self.logger.debug(f"send {command.type.value} {' '.join(command.keys)}")
        try:
            self._writer.write(request)
            await self._writer.drain()
        except asyncio.CancelledError:
            self._interrupted()
            raise
        except OSError as exc:
            raise self._fail(exc)

    async def _read_line(self) -> bytes:
        """
        Read one line, with the CRLF (or bare LF) removed.

        A final line cut short by EOF is returned as it is; EOF with nothing
        buffered raises ``asyncio.IncompleteReadError``.
        """
        self._check()
        try:
            line = await self._reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            if not exc.partial:
                raise self._fail(exc)
            line = exc.partial
        except (OSError, asyncio.LimitOverrunError) as exc:
            raise self._fail(exc)
        except asyncio.CancelledError:
            self._interrupted()
            raise

        if line.endswith(b"\n"):
            line = line[:-1]
            if line.endswith(b"\r"):
                line = line[:-1]
        return line

    async def _read_exactly(self, size: int) -> bytes:
        self._check()
        try:
            return await self._reader.readexactly(size)
        except (OSError, EOFError) as exc:
            raise self._fail(exc)
        except asyncio.CancelledError:
            self._interrupted()
            raise

    def _parsed(self, parse, line: bytes):
        """Run a parser step, storing stream-desynchronising failures."""
        try:
            return parse(line)
        except (ProtocolError, NumericFormatError) as exc:
            raise self._fail(exc)

    async def _read_reply(self) -> Reply:
        return self.parser.classify(await self._read_line())

    async def _expect(self, token: bytes) -> None:
        """Read one reply and require ``token``; raise whatever else it says."""
        reply = await self._read_reply()
        if reply.line == token:
            return
        error = reply.error()
        if error is not None:
            raise error
        raise self._fail(unknown_reply(reply.line))

    async def _execute(self, command: Command, token: bytes) -> None:
        await self._send(command)
        if command.expects_reply:
            await self._expect(token)

    # ------------------------------------------------------------------
    # Retrieval commands
    # ------------------------------------------------------------------

    async def _read_item(self):
        """
        Read one ``VALUE`` header and its payload.

        Returns:
            (key, Item), or None when the END sentinel was read instead
        """
        header = await self._read_line()
        if self.parser.is_end(header):
            return None

        key, flags, size, cas_id = self._parsed(self.parser.parse_value_header, header)
        block = await self._read_exactly(size + 2)
        value = self._parsed(self.parser.parse_value_body, block)
        return key, Item(value=value, flags=flags, cas_id=cas_id)

    async def get(self, key: str) -> Item:
        """
        Fetch one item.

        Raises:
            CacheMiss: if the server holds no item for the key
        """
        await self._send(Command(CommandType.GET, keys=key))

        result = await self._read_item()
        if result is None:
            raise CacheMiss()

        end = await self._read_line()
        if not self.parser.is_end(end):
            raise self._fail(ProtocolError("malformed response: corrupt get result end"))
        return result[1]

    async def gets(self, keys: Iterable[str]) -> Dict[str, Item]:
        """
        Fetch several items together with their CAS tokens.

        Missing keys are simply absent from the returned mapping.
        """
        if isinstance(keys, str):
            keys = [keys]
        await self._send(Command(CommandType.GETS, keys=tuple(keys)))

        items = {}
        while True:
            result = await self._read_item()
            if result is None:
                return items
            key, item = result
            items[key] = item

    # ------------------------------------------------------------------
    # Storage commands
    # ------------------------------------------------------------------

    async def _store(self, command_type: CommandType, key: str, value: bytes,
                     flags: int = 0, exptime: int = 0, cas_id: int = 0,
                     noreply: bool = False) -> None:
        command = Command(command_type, keys=key, value=value, flags=flags,
                          exptime=exptime, cas_id=cas_id, noreply=noreply)
        await self._execute(command, b"STORED")

    async def set(self, key: str, value: bytes, flags: int = 0, exptime: int = 0,
                  noreply: bool = False) -> None:
        """Store this data."""
        await self._store(CommandType.SET, key, value, flags, exptime, noreply=noreply)

    async def add(self, key: str, value: bytes, flags: int = 0, exptime: int = 0,
                  noreply: bool = False) -> None:
        """Store this data, but only if the server does not hold the key yet."""
        await self._store(CommandType.ADD, key, value, flags, exptime, noreply=noreply)

    async def replace(self, key: str, value: bytes, flags: int = 0, exptime: int = 0,
                      noreply: bool = False) -> None:
        """Store this data, but only if the server already holds the key."""
        await self._store(CommandType.REPLACE, key, value, flags, exptime, noreply=noreply)

    async def append(self, key: str, value: bytes, noreply: bool = False) -> None:
        """Add this data after the existing data. Flags and exptime are left alone."""
        await self._store(CommandType.APPEND, key, value, noreply=noreply)

    async def prepend(self, key: str, value: bytes, noreply: bool = False) -> None:
        """Add this data before the existing data. Flags and exptime are left alone."""
        await self._store(CommandType.PREPEND, key, value, noreply=noreply)

    async def cas(self, key: str, value: bytes, cas_id: int, flags: int = 0,
                  exptime: int = 0, noreply: bool = False) -> None:
        """
        Store this data, but only if nobody updated it since ``cas_id`` was fetched.

        Raises:
            CasConflict: if the item changed in the meantime
            NotFound: if the item no longer exists
        """
        await self._store(CommandType.CAS, key, value, flags, exptime, cas_id, noreply)

    # ------------------------------------------------------------------
    # Deletion, counters, touch
    # ------------------------------------------------------------------

    async def delete(self, key: str, noreply: bool = False) -> None:
        await self._execute(Command(CommandType.DELETE, keys=key, noreply=noreply), b"DELETED")

    async def _counter(self, command_type: CommandType, key: str, amount: int,
                       noreply: bool) -> Optional[int]:
        command = Command(command_type, keys=key, amount=amount, noreply=noreply)
        await self._send(command)
        if noreply:
            return None

        reply = await self._read_reply()
        if reply.kind != ReplyKind.UNRECOGNIZED:
            error = reply.error()
            if error is not None:
                raise error
        return self._parsed(self.parser.parse_counter, reply.line)

    async def incr(self, key: str, amount: int = 1, noreply: bool = False) -> Optional[int]:
        """
        Increment a counter and return its new value (None with noreply).

        The server wraps around at 64 bits.
        """
        return await self._counter(CommandType.INCR, key, amount, noreply)

    async def decr(self, key: str, amount: int = 1, noreply: bool = False) -> Optional[int]:
        """
        Decrement a counter and return its new value (None with noreply).

        The server stops at 0 rather than going negative.
        """
        return await self._counter(CommandType.DECR, key, amount, noreply)

    async def touch(self, key: str, exptime: int, noreply: bool = False) -> None:
        """Update the expiration time of an item without fetching it."""
        command = Command(CommandType.TOUCH, keys=key, exptime=exptime, noreply=noreply)
        await self._execute(command, b"TOUCHED")

    # ------------------------------------------------------------------
    # Statistics and other commands
    # ------------------------------------------------------------------

    async def stats(self, argument: str = None) -> Dict[str, str]:
        """
        Fetch server statistics.

        Args:
            argument: Optional group name ("items", "slabs", ...); the
                default set is returned when omitted
        """
        await self._send(Command(CommandType.STATS, argument=argument))

        stats = {}
        while True:
            line = await self._read_line()
            if self.parser.is_end(line):
                return stats
            name, value = self._parsed(self.parser.parse_stat_line, line)
            stats[name] = value

    async def flush_all(self, delay: int = -1, noreply: bool = False) -> None:
        """Invalidate all items, after ``delay`` seconds when it is not negative."""
        await self._execute(Command(CommandType.FLUSH_ALL, delay=delay, noreply=noreply), b"OK")

    async def version(self) -> str:
        """Return the server version string."""
        await self._send(Command(CommandType.VERSION))

        reply = await self._read_reply()
        error = reply.error()
        if error is not None:
            raise error
        return self._parsed(self.parser.parse_version, reply.line)

    async def quit(self) -> None:
        """Ask the server to close the connection. The caller still calls close()."""
        await self._send(Command(CommandType.QUIT))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._writer is None

    async def close(self) -> None:
        """Close the underlying stream. Safe to call more than once."""
        writer, self._writer = self._writer, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as exc:
            self.logger.debug(f"error while closing {self.addr}: {exc!r}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


async def dial(
        host: str = None,
        port: int = None,
        *,
        timeout: float = None,
        limit: int = None,
        logger: logging.Logger = None,
) -> TextConnection:
    """
    Open a connection to a memcached server.

    Args:
        host: Server address (default from settings)
        port: Server port (default from settings)
        timeout: Seconds to wait for the TCP handshake (default from settings)
        limit: Longest reply line the reader accepts (default from settings)
        logger: Logger handed to the connection

    Usage:
        async with await dial('127.0.0.1', 11211) as conn:
            print(await conn.version())
    """
    host = host if host is not None else settings.HOST
    port = port if port is not None else settings.PORT
    timeout = timeout if timeout is not None else settings.CONNECT_TIMEOUT
    limit = limit if limit is not None else settings.READ_LIMIT

    reader, writer = await asyncio.wait_for(
        asyncio.open_connection(host, port, limit=limit),
        timeout=timeout,
    )
    addr = f"{host}:{port}"
    (logger or logging.getLogger(__name__)).debug(f"Connected to {addr}")
    return TextConnection(reader, writer, addr=addr, logger=logger)
