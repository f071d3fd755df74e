"""Single owned periodic refresh timer"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

logger = logging.getLogger(__name__)


class AutoRefreshTimer:
    """
    Re-invokes an async callback every ``interval`` seconds.

    At most one task runs per timer. Changing the interval cancels the
    running task before a new one starts; an interval of 0 disables it.
    A failing callback is logged and the timer keeps running.
    """

    def __init__(self, callback: Callable[[], Awaitable[object]], interval: float = 0):
        self._callback = callback
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            try:
                await self._callback()
            except Exception as e:
                logger.error(f"Auto-refresh callback failed: {str(e)}")

    def start(self):
        """Start ticking; needs a running event loop"""
        self.stop()
        if self.interval <= 0:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(self.interval))
        logger.debug(f"Auto-refresh started every {self.interval}s")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Auto-refresh stopped")

    def set_interval(self, interval: float):
        self.interval = interval
        self.start()
