"""
Small shared helpers.
"""

import asyncio
import signal
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the format stored in job tables."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def milliseconds(value: int) -> timedelta:
    """Convert a millisecond count to a timedelta."""
    return timedelta(milliseconds=value)


def install_stop_signals(stop: Callable[[], Awaitable[None]]) -> None:
    """Schedule ``stop()`` on SIGTERM and SIGINT in the running loop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(stop()))
