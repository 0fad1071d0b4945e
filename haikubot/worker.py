"""Analysis & Action Worker: the single consumer of the event queue.

Events are analyzed strictly one at a time, in stream order. The idle
watchdog and heartbeat are driven from the same loop, so their state is
never shared with another task.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum

from haikubot.event_queue import EventQueue
from haikubot.exceptions import HaikuBotError, QueueClosedError
from haikubot.matcher import DEFAULT_PATTERNS, Matcher, Pattern, normalize
from haikubot.models import CandidateEvent
from haikubot.poster import ActionPoster
from haikubot.watchdog import Heartbeat, Watchdog

logger = logging.getLogger(__name__)


class WorkerExit(str, Enum):
    """Why the worker loop ended."""

    DRAINED = "drained"
    STALLED = "stalled"


class AnalysisWorker:
    """Dequeues candidates, runs the predicate, posts matches.

    Args:
        queue: Queue shared with the producer
        matcher: Match predicate
        poster: Action Poster used for matches
        watchdog: Idle-tick counter for this run
        on_stall: Coroutine closing the connection when the watchdog fires
        heartbeat: Optional periodic liveness ping
        patterns: Target patterns, evaluated in order
        idle_interval: Seconds of empty queue that count as one idle tick
    """

    def __init__(
        self,
        queue: EventQueue,
        matcher: Matcher,
        poster: ActionPoster,
        watchdog: Watchdog,
        *,
        on_stall: Callable[[], Awaitable[None]],
        heartbeat: Heartbeat | None = None,
        patterns: Sequence[Pattern] = DEFAULT_PATTERNS,
        idle_interval: float = 10.0,
    ):
        self.queue = queue
        self.matcher = matcher
        self.poster = poster
        self.watchdog = watchdog
        self.heartbeat = heartbeat
        self.patterns = tuple(patterns)
        self.idle_interval = idle_interval
        self._on_stall = on_stall
        self.processed = 0
        self.posted = 0

    async def run(self) -> WorkerExit:
        """Consume events until the queue is drained or the watchdog fires."""
        while True:
            if self.heartbeat is not None:
                self.heartbeat.maybe_ping()

            try:
                event = await asyncio.wait_for(self.queue.get(), timeout=self.idle_interval)
            except TimeoutError:
                if self.watchdog.tick():
                    logger.warning("timeout: no events, closing connection")
                    await self._on_stall()
                    return WorkerExit.STALLED
                continue
            except QueueClosedError:
                logger.info(f"Queue drained after {self.processed} events")
                return WorkerExit.DRAINED

            self.watchdog.record_activity()
            await self.analyze(event)

    async def analyze(self, event: CandidateEvent) -> None:
        """Evaluate every pattern against one event and post each match.

        Poster failures are logged; they never stop the worker.
        """
        self.processed += 1
        content = normalize(event.text)
        if not content:
            return

        for pattern in self.patterns:
            matched = await asyncio.to_thread(self.matcher.matches, content, pattern)
            if not matched:
                continue

            extra = {"pattern": pattern.name, "author_id": event.author_id, "record_key": event.record_key}
            logger.info(f"MATCHED {pattern.name.upper()}! {content}", extra=extra)
            try:
                created = await self.poster.post(
                    event.collection,
                    event.author_id,
                    event.record_key,
                    f"{content} {pattern.tag}",
                )
            except HaikuBotError as e:
                logger.error(f"Post failed: {e}", extra=extra)
                continue
            if created is not None:
                self.posted += 1
