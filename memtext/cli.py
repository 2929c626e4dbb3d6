#!/usr/bin/env python3
"""
memtext Command Line Entry Point

Runs a single memcached command against a server and prints the result.

Usage:
    python -m memtext.cli version
    python -m memtext.cli set greeting hello --exptime 60
    python -m memtext.cli get greeting
    python -m memtext.cli gets a b c
    python -m memtext.cli incr hits 5
    python -m memtext.cli stats items
    python -m memtext.cli --port 11212 --debug flush-all

Environment Variables:
    MEMTEXT_HOST            - Server address
    MEMTEXT_PORT            - Server port
    MEMTEXT_CONNECT_TIMEOUT - Connect timeout in seconds
    MEMTEXT_DEBUG           - Enable debug logging (true/false)
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config.settings import settings
from .exceptions import MemcacheError
from .network.connection import TextConnection, dial


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="memtext",
        description="memtext: memcached text protocol client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("--host", type=str, default=settings.HOST, help="Server address")
    parser.add_argument("--port", type=int, default=settings.PORT, help="Server port")
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.CONNECT_TIMEOUT,
        help="Connect timeout in seconds",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    get = commands.add_parser("get", help="Fetch one item")
    get.add_argument("key")

    gets = commands.add_parser("gets", help="Fetch items with their CAS tokens")
    gets.add_argument("keys", nargs="+")

    for name in ("set", "add", "replace"):
        store = commands.add_parser(name, help=f"Run a {name} command")
        store.add_argument("key")
        store.add_argument("value")
        store.add_argument("--flags", type=int, default=0)
        store.add_argument("--exptime", type=int, default=0)
        store.add_argument("--noreply", action="store_true")

    for name in ("append", "prepend"):
        concat = commands.add_parser(name, help=f"Run a {name} command")
        concat.add_argument("key")
        concat.add_argument("value")
        concat.add_argument("--noreply", action="store_true")

    cas = commands.add_parser("cas", help="Store only if unchanged since fetched")
    cas.add_argument("key")
    cas.add_argument("value")
    cas.add_argument("cas_id", type=int)
    cas.add_argument("--flags", type=int, default=0)
    cas.add_argument("--exptime", type=int, default=0)
    cas.add_argument("--noreply", action="store_true")

    delete = commands.add_parser("delete", help="Delete one item")
    delete.add_argument("key")
    delete.add_argument("--noreply", action="store_true")

    for name in ("incr", "decr"):
        counter = commands.add_parser(name, help=f"Run a {name} command")
        counter.add_argument("key")
        counter.add_argument("amount", type=int, nargs="?", default=1)
        counter.add_argument("--noreply", action="store_true")

    touch = commands.add_parser("touch", help="Update an item's expiration time")
    touch.add_argument("key")
    touch.add_argument("exptime", type=int)
    touch.add_argument("--noreply", action="store_true")

    stats = commands.add_parser("stats", help="Print server statistics")
    stats.add_argument("argument", nargs="?")

    flush = commands.add_parser("flush-all", help="Invalidate all items")
    flush.add_argument("--delay", type=int, default=-1)
    flush.add_argument("--noreply", action="store_true")

    commands.add_parser("version", help="Print the server version")

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr),
        ]
    )


def _show_item(key: str, item) -> None:
    cas = f" cas={item.cas_id}" if item.cas_id is not None else ""
    print(f"{key} flags={item.flags}{cas}: {item.value.decode('utf-8', 'replace')}")


async def run(args: argparse.Namespace, conn: TextConnection) -> None:
    """Run the command selected on the command line."""
    command = args.command

    if command == "get":
        _show_item(args.key, await conn.get(args.key))
    elif command == "gets":
        for key, item in (await conn.gets(args.keys)).items():
            _show_item(key, item)
    elif command in ("set", "add", "replace"):
        store = getattr(conn, command)
        await store(args.key, args.value.encode(), args.flags, args.exptime, args.noreply)
        print("STORED")
    elif command in ("append", "prepend"):
        await getattr(conn, command)(args.key, args.value.encode(), args.noreply)
        print("STORED")
    elif command == "cas":
        await conn.cas(args.key, args.value.encode(), args.cas_id, args.flags,
                       args.exptime, args.noreply)
        print("STORED")
    elif command == "delete":
        await conn.delete(args.key, args.noreply)
        print("DELETED")
    elif command in ("incr", "decr"):
        value = await getattr(conn, command)(args.key, args.amount, args.noreply)
        if value is not None:
            print(value)
    elif command == "touch":
        await conn.touch(args.key, args.exptime, args.noreply)
        print("TOUCHED")
    elif command == "stats":
        for name, value in (await conn.stats(args.argument)).items():
            print(f"{name} {value}")
    elif command == "flush-all":
        await conn.flush_all(args.delay, args.noreply)
        print("OK")
    elif command == "version":
        print(await conn.version())


async def _main(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    conn = await dial(args.host, args.port, timeout=args.timeout)
    try:
        await run(args, conn)
    except MemcacheError as exc:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(exc, file=sys.stderr)
        return 1
    finally:
        await conn.close()
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the command line tool."""
    args = parse_args(argv)
    setup_logging(debug=args.debug)

    try:
        status = asyncio.run(_main(args))
    except (OSError, asyncio.TimeoutError) as exc:
        print(f"Connection error: {exc}", file=sys.stderr)
        status = 1
    sys.exit(status)


if __name__ == "__main__":
    main()
