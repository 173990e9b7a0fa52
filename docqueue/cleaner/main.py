"""
Periodic queue cleaner.

Runs clean() on a queue at a fixed interval so acked, errored and exhausted
jobs do not pile up in the job table.
"""

import asyncio
import logging

from docqueue.config import get_settings
from docqueue.exceptions import InvalidArgument
from docqueue.queue import JobQueue
from docqueue.utils import install_stop_signals

logger = logging.getLogger(__name__)


class Cleaner:
    """Calls JobQueue.clean() every ``interval`` seconds until stopped."""

    def __init__(self, queue: JobQueue, interval_seconds: float | None = None):
        self.queue = queue
        self.interval = (
            get_settings().cleaner_interval_seconds if interval_seconds is None else interval_seconds
        )
        if self.interval <= 0:
            raise InvalidArgument(f"interval_seconds must be positive, got {self.interval}")
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        self._stopping.clear()
        logger.info(
            "Cleaner started",
            extra={"queue": self.queue.name, "interval_seconds": self.interval},
        )

        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Cleaning pass failed", extra={"queue": self.queue.name})

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Cleaner stopped", extra={"queue": self.queue.name})

    async def stop(self) -> None:
        self._stopping.set()

    async def run_once(self) -> None:
        """Run a single cleaning pass."""
        await self.queue.clean()


async def run_cleaner(queue: JobQueue, interval_seconds: float | None = None) -> None:
    """Run a cleaner until SIGTERM or SIGINT."""
    cleaner = Cleaner(queue, interval_seconds=interval_seconds)
    install_stop_signals(cleaner.stop)
    await cleaner.start()
