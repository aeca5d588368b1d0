"""Request pacing for the reconciliation pass."""

import asyncio
from typing import Awaitable, Callable
import logging

from ..data.models import RECONCILE_PACING_DELAY

logger = logging.getLogger(__name__)


class RequestPacer:
    """Fixed delay between successive per-holding updates.

    This is a throughput cap that keeps a reconciliation pass within the
    upstream per-request budget, not a retry delay.
    """

    def __init__(self, delay: float = RECONCILE_PACING_DELAY,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.delay = delay
        self._sleep = sleep
        self.waits = 0

    async def wait(self) -> None:
        """Hold the caller for one pacing interval."""
        self.waits += 1
        if self.delay > 0:
            await self._sleep(self.delay)
