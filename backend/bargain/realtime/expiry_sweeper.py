"""
Background expiry sweeper.

WHAT: Periodically persists expiry of overdue sessions and announces it to their rooms
WHY: Lazy expiry only fires when someone touches a session; watchers of an idle room
     should still learn it closed
HOW: asyncio task started/stopped by the application lifespan
"""

import asyncio
from typing import Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class ExpirySweeper:
    def __init__(self, dispatcher, interval_seconds: float):
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.interval_seconds <= 0:
            logger.info("Expiry sweeper disabled (EXPIRY_SWEEP_INTERVAL_SECONDS=0)")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Expiry sweeper started (every {self.interval_seconds}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")

    async def sweep_once(self) -> int:
        return await self.dispatcher.expire_stale()

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)
