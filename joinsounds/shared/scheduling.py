"""Delayed actions with an explicit cancellation point."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DelayedAction:
    """Run ``callback`` once after ``delay`` seconds unless cancelled.

    When the delay expires the action re-checks its own cancellation flag
    and ``still_valid()`` before running, so a stale target (e.g. a user who
    disconnected meanwhile) turns the action into a no-op.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        still_valid: Callable[[], bool] | None = None,
        name: str = "delayed-action",
    ):
        self.delay = max(0.0, delay)
        self.name = name
        self._callback = callback
        self._still_valid = still_valid
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self._ran = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def ran(self) -> bool:
        return self._ran

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> "DelayedAction":
        """Schedule on the running loop. Must be called from loop context."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    def cancel(self) -> bool:
        """Cancel the action. Returns False if it already ran."""
        if self._ran:
            return False
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise

    async def _run(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._cancelled:
            return
        if self._still_valid is not None and not self._still_valid():
            logger.debug("%s: target no longer valid, skipping", self.name)
            return
        self._ran = True
        try:
            await self._callback()
        except Exception as e:
            logger.error("%s failed: %s", self.name, e)
