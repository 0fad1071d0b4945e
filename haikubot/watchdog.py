"""Liveness tracking for the worker loop.

``Watchdog`` counts consecutive idle ticks; the worker resets it on every
dequeued event and asks it whether the stream should be declared dead.
``Heartbeat`` pings an external monitor on a fixed period, fire-and-forget;
its failures never influence the watchdog.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass
class Watchdog:
    """Idle-tick counter. Only the worker task touches it.

    Attributes:
        max_idle_ticks: Consecutive idle ticks that declare the stream dead
        idle_ticks: Idle ticks since the last dequeued event
    """

    max_idle_ticks: int = 60
    idle_ticks: int = 0

    def record_activity(self) -> None:
        self.idle_ticks = 0

    def tick(self) -> bool:
        """Register one idle interval.

        Returns:
            True once the idle threshold has been reached
        """
        self.idle_ticks += 1
        logger.info(f"Health check {self.idle_ticks}")
        return self.expired

    @property
    def expired(self) -> bool:
        return self.idle_ticks >= self.max_idle_ticks


class Heartbeat:
    """Periodic best-effort GET to a liveness-reporting URL.

    Example:
        >>> heartbeat = Heartbeat("https://hc-ping.com/uuid", interval=300)
        >>> heartbeat.maybe_ping()  # cheap; schedules a ping only when due
    """

    def __init__(
        self,
        url: str | None,
        *,
        interval: float = 300.0,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._next_due = clock() + interval
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def maybe_ping(self) -> bool:
        """Schedule a ping if the period has elapsed.

        Returns:
            True if a ping was scheduled
        """
        now = self._clock()
        if now < self._next_due:
            return False
        self._next_due = now + self.interval
        if not self.enabled:
            return False
        task = asyncio.create_task(self.push())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def push(self) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Heartbeat push failed: {e}")
        else:
            logger.debug("Heartbeat pushed")
