"""Fixed delays for each edge of the supervision loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class BackoffEdge(str, Enum):
    AFTER_SUBMIT = "after_submit"
    STEADY_POLL = "steady_poll"
    POLL_ERROR = "poll_error"
    RESTART_PAUSE = "restart_pause"


@dataclass(slots=True)
class BackoffController:
    """Supplies non-growing wait durations and performs the waits."""

    warmup_seconds: float = 2.0
    poll_interval_seconds: float = 10.0
    poll_error_seconds: float = 5.0
    restart_pause_seconds: float = 300.0
    sleep: SleepFn = field(default=asyncio.sleep, repr=False)

    def delay_for(self, edge: BackoffEdge) -> float:
        if edge is BackoffEdge.AFTER_SUBMIT:
            return self.warmup_seconds
        if edge is BackoffEdge.STEADY_POLL:
            return self.poll_interval_seconds
        if edge is BackoffEdge.POLL_ERROR:
            return self.poll_error_seconds
        return self.restart_pause_seconds

    async def wait(self, edge: BackoffEdge) -> None:
        seconds = self.delay_for(edge)
        logger.debug("Waiting %.1fs (%s)", seconds, edge.value)
        await self.sleep(seconds)
