"""
Connection Pool Module

Keeps idle connections to one server for reuse. A connection is handed out
to exactly one caller at a time, which is what keeps a single command in
flight per connection.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from ..config.settings import settings
from .connection import TextConnection, dial

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Pool of idle TextConnections.

    ``acquire()`` returns an idle connection when one is available and dials
    a new one otherwise. ``release()`` puts it back while there is room;
    connections that are closed or carry a sticky error are closed instead
    of being reused.

    Usage:
        pool = ConnectionPool(lambda: dial('127.0.0.1', 11211))
        async with pool.connection() as conn:
            await conn.set('key', b'value')
        await pool.close()

    Attributes:
        max_idle: Number of idle connections kept around
    """

    def __init__(
            self,
            dialer: Callable[[], Awaitable[TextConnection]] = None,
            max_idle: int = None,
    ):
        """
        Initialize the pool.

        Args:
            dialer: Coroutine function opening a new connection
                (default: dial() with settings)
            max_idle: Idle connections to keep (default from settings)
        """
        self.dialer = dialer if dialer is not None else dial
        self.max_idle = max_idle if max_idle is not None else settings.MAX_IDLE_CONNECTIONS
        self._idle: "asyncio.Queue[TextConnection]" = asyncio.Queue(maxsize=self.max_idle)
        self._closed = False

    @property
    def idle_count(self) -> int:
        return self._idle.qsize()

    async def acquire(self) -> TextConnection:
        """Take an idle connection, or dial a new one."""
        if self._closed:
            raise RuntimeError("pool is closed")
        try:
            return self._idle.get_nowait()
        except asyncio.QueueEmpty:
            pass
        return await self.dialer()

    async def release(self, conn: TextConnection) -> None:
        """Return a connection to the pool, closing it when it cannot be reused."""
        if conn.closed:
            return
        if self._closed or conn.error is not None:
            logger.debug(f"Discarding connection {conn.addr}: {conn.error!r}")
            await conn.close()
            return
        try:
            self._idle.put_nowait(conn)
        except asyncio.QueueFull:
            await conn.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[TextConnection]:
        """Lease a connection for the duration of the block."""
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def close(self) -> None:
        """Close every idle connection and refuse further acquires."""
        self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except asyncio.QueueEmpty:
                break
            await conn.close()
