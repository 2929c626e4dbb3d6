"""
Integration Tests

End-to-end tests against a real memcached process. Skipped when no
memcached binary is installed.

Run with: python -m pytest tests/test_integration.py -v
"""

import asyncio
import pytest
from memtext.exceptions import (
    CacheMiss,
    CasConflict,
    ClientError,
    NotFound,
    NotStored,
)


@pytest.mark.asyncio
@pytest.mark.integration
class TestEndToEnd:
    """End-to-end integration tests."""

    async def test_set_and_get(self, memcached):
        await memcached.set("foo", b"fooval")
        await memcached.set("foo", b"fooval")
        item = await memcached.get("foo")
        assert item.value == b"fooval"

    async def test_large_item(self, memcached):
        key = "A" * 250
        value = b"A" * (1023 * 1024)
        await memcached.set(key, value)
        assert (await memcached.get(key)).value == value

    async def test_binary_value(self, memcached):
        value = bytes(range(256)) + b"\r\nEND\r\n"
        await memcached.set("bin", value, flags=4294967295)
        item = await memcached.get("bin")
        assert item.value == value
        assert item.flags == 4294967295

    async def test_add_and_replace(self, memcached):
        with pytest.raises(NotStored):
            await memcached.replace("baz", b"x")
        await memcached.add("baz", b"bazvalue")
        with pytest.raises(NotStored):
            await memcached.add("baz", b"other")
        await memcached.replace("baz", b"replaced")
        assert (await memcached.get("baz")).value == b"replaced"

    async def test_append_prepend(self, memcached):
        await memcached.set("ap", b"middle", flags=9)
        await memcached.append("ap", b"-tail")
        await memcached.prepend("ap", b"head-")
        item = await memcached.get("ap")
        assert item.value == b"head-middle-tail"
        assert item.flags == 9

    async def test_gets_and_cas(self, memcached):
        await memcached.set("c1", b"one")
        await memcached.set("c2", b"two")

        items = await memcached.gets(["c1", "c2", "missing"])
        assert set(items) == {"c1", "c2"}
        cas_id = items["c1"].cas_id
        assert cas_id is not None

        await memcached.cas("c1", b"uno", cas_id)
        with pytest.raises(CasConflict):
            await memcached.cas("c1", b"eins", cas_id)
        with pytest.raises(NotFound):
            await memcached.cas("never-set", b"x", cas_id)
        assert (await memcached.get("c1")).value == b"uno"

    async def test_delete(self, memcached):
        await memcached.set("gone", b"x")
        await memcached.delete("gone")
        with pytest.raises(CacheMiss):
            await memcached.get("gone")
        with pytest.raises(NotFound):
            await memcached.delete("gone")

    async def test_counters(self, memcached):
        await memcached.set("num", b"42")
        assert await memcached.incr("num", 1) == 43
        assert await memcached.decr("num", 50) == 0
        with pytest.raises(NotFound):
            await memcached.incr("no-such-counter", 1)

        await memcached.set("max", b"18446744073709551615")
        assert await memcached.incr("max", 2) == 1

        await memcached.set("text", b"abc")
        with pytest.raises(ClientError):
            await memcached.incr("text", 1)

    async def test_noreply(self, memcached):
        await memcached.set("quiet", b"1", noreply=True)
        assert await memcached.incr("quiet", 1, noreply=True) is None
        await memcached.delete("missing", noreply=True)
        assert (await memcached.get("quiet")).value == b"2"

    @pytest.mark.slow
    async def test_touch_and_expiry(self, memcached):
        await memcached.set("short", b"x", exptime=1)
        await memcached.touch("short", 100)
        with pytest.raises(NotFound):
            await memcached.touch("not-there", 100)

        await memcached.set("expiring", b"x", exptime=1)
        await asyncio.sleep(2.1)
        with pytest.raises(CacheMiss):
            await memcached.get("expiring")
        assert (await memcached.get("short")).value == b"x"

    async def test_stats_and_version(self, memcached):
        stats = await memcached.stats()
        assert "pid" in stats
        assert "uptime" in stats

        await memcached.set("s", b"x")
        slabs = await memcached.stats("slabs")
        assert "active_slabs" in slabs

        version = await memcached.version()
        assert version and version[0].isdigit()

    async def test_flush_all(self, memcached):
        await memcached.set("f1", b"x")
        await memcached.flush_all()
        with pytest.raises(CacheMiss):
            await memcached.get("f1")
        await memcached.flush_all(0, noreply=True)
        assert await memcached.version()
