"""Background scheduler for periodic session compression.

Runs as an explicit asyncio task with its own stop token, independent of
request handling:

    scheduler = CompressionScheduler(compressor, interval_seconds=6 * 3600)
    scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
from datetime import datetime
from typing import Optional

from loguru import logger

from cynicalclaw.memory.compressor import PERIODIC_MIN_MESSAGES, MemoryCompressor

DEFAULT_INTERVAL_SECONDS = 6 * 60 * 60


class CompressionScheduler:
    """Sweep idle sessions through the compressor on a fixed interval."""

    def __init__(
        self,
        compressor: MemoryCompressor,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        older_than_days: int = 7,
        min_messages: int = PERIODIC_MIN_MESSAGES,
    ):
        self.compressor = compressor
        self.interval_seconds = interval_seconds
        self.older_than_days = older_than_days
        self.min_messages = min_messages

        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.last_run: Optional[datetime] = None
        self.last_result: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop. Calling it again while running does nothing."""
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="memory-compression")
        logger.info(f"Compression scheduler started (every {self.interval_seconds:.0f}s)")

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the current sweep to finish."""
        if not self._task:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("Compression scheduler stopped")

    async def run_once(self) -> int:
        """Run one sweep now. Failures are logged and count as zero."""
        try:
            result = await self.compressor.periodic_compression(
                older_than_days=self.older_than_days,
                min_messages=self.min_messages,
            )
        except Exception as e:
            logger.error(f"Compression sweep failed: {e}")
            result = 0
        self.last_run = datetime.now()
        self.last_result = result
        return result

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.run_once()
