"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import shutil
import socket
import subprocess
import pytest
import pytest_asyncio
from contextlib import closing
from typing import AsyncGenerator, Generator, List, Optional

from memtext.network.connection import TextConnection, dial
from memtext.protocol.parser import ProtocolParser


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# Protocol Fixtures
# ============================================================================

@pytest.fixture
def parser() -> ProtocolParser:
    """Create a ProtocolParser instance."""
    return ProtocolParser()


# ============================================================================
# Scripted Stream Fixtures
# ============================================================================

class RecordingWriter:
    """
    Stand-in for asyncio.StreamWriter that keeps what was written.

    If ``error`` is given, drain() raises it, like a broken socket would.
    """

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error
        self.data = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


class FailingReader:
    """Stand-in for asyncio.StreamReader whose reads always fail."""

    def __init__(self, error: BaseException):
        self.error = error
        self.reads = 0

    async def readuntil(self, separator: bytes = b"\n") -> bytes:
        self.reads += 1
        raise self.error

    async def readexactly(self, n: int) -> bytes:
        self.reads += 1
        raise self.error


def make_reader(response: bytes, limit: int = 2 ** 16) -> asyncio.StreamReader:
    """StreamReader already holding ``response`` followed by EOF."""
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(response)
    reader.feed_eof()
    return reader


@pytest.fixture
def faked_conn():
    """
    Factory for connections reading a canned response.

    Must be called from inside a running event loop.

    Usage:
        async def test_something(faked_conn):
            conn, writer = faked_conn(b"STORED\\r\\n")
            await conn.set("foo", b"bar")
            assert writer.data == b"set foo 0 0 3\\r\\nbar\\r\\n"
    """
    def factory(response: bytes, writer: RecordingWriter = None, limit: int = 2 ** 16):
        writer = writer if writer is not None else RecordingWriter()
        return TextConnection(make_reader(response, limit), writer, addr="faked"), writer
    return factory


# ============================================================================
# Scripted Server Fixtures
# ============================================================================

class ScriptedServer:
    """
    TCP server answering each request with the next canned reply.

    Storage commands have their data block consumed before replying, so
    one reply corresponds to one command. Requests are recorded as raw
    command lines.
    """

    STORAGE = (b"set", b"add", b"replace", b"append", b"prepend", b"cas")

    def __init__(self, replies: List[bytes]):
        self.replies = list(replies)
        self.requests: List[bytes] = []
        self.connections = 0
        self.port = find_free_port()
        self._server: Optional[asyncio.Server] = None

    async def handle_client(self, reader, writer) -> None:
        self.connections += 1
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                self.requests.append(line)
                fields = line.split()
                if fields and fields[0] in self.STORAGE:
                    await reader.readexactly(int(fields[4]) + 2)
                if b"noreply" in fields or fields[:1] == [b"quit"]:
                    continue
                if self.replies:
                    writer.write(self.replies.pop(0))
                    await writer.drain()
        finally:
            writer.close()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self.handle_client, '127.0.0.1', self.port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None


@pytest_asyncio.fixture
async def scripted_server():
    """
    Factory fixture for scripted servers, stopped after the test.

    Usage:
        async def test_something(scripted_server):
            server = await scripted_server([b"VERSION 1.6.9\\r\\n"])
            conn = await dial('127.0.0.1', server.port)
    """
    servers = []

    async def factory(replies: List[bytes]) -> ScriptedServer:
        server = ScriptedServer(replies)
        await server.start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        await server.stop()


# ============================================================================
# Real memcached Fixtures
# ============================================================================

@pytest.fixture
def memcached_port() -> Generator[int, None, None]:
    """
    Start a memcached process on a free port.

    Skips the test when no memcached binary is installed.
    """
    binary = shutil.which("memcached")
    if binary is None:
        pytest.skip("memcached binary not available")

    port = find_free_port()
    process = subprocess.Popen(
        [binary, "-l", "127.0.0.1", "-p", str(port), "-U", "0", "-u", "nobody"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    yield port
    process.kill()
    process.wait()


@pytest_asyncio.fixture
async def memcached(memcached_port: int) -> AsyncGenerator[TextConnection, None]:
    """Connection to a fresh memcached process, retried while it starts up."""
    conn = None
    for attempt in range(20):
        try:
            conn = await dial('127.0.0.1', memcached_port, timeout=1.0)
            break
        except (OSError, asyncio.TimeoutError):
            await asyncio.sleep(0.025 * (attempt + 1))
    if conn is None:
        pytest.skip("memcached did not start")

    yield conn

    await conn.close()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
