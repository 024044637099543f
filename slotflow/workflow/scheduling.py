"""Cancellable delayed callbacks on the running event loop."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """A callback scheduled with loop.call_later.

    The callback runs at most once. cancel() before it fires guarantees
    it never runs; cancel() after it fired is a no-op.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.delay = delay
        self._callback = callback
        self._cancelled = False
        self._fired = False
        loop = loop or asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._fired = True
        self._callback()

    def cancel(self) -> None:
        if self._fired or self._cancelled:
            return
        self._cancelled = True
        self._handle.cancel()
        logger.debug(f"[WORKFLOW] Cancelled task scheduled for {self.delay:g}s")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._fired or self._cancelled)
