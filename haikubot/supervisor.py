"""Supervisor loop: owns connection lifetime and restarts the pipeline forever.

One run cycles CONNECTING -> STREAMING -> DRAINING -> RESTARTING. Each run
gets a fresh connection, queue and watchdog; nothing survives into the next.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from haikubot.config import Settings
from haikubot.event_filter import EventFilter
from haikubot.event_queue import EventQueue
from haikubot.exceptions import QueueClosedError, StreamError
from haikubot.firehose import Connection
from haikubot.logging_config import AuditLog
from haikubot.matcher import Matcher
from haikubot.poster import ActionPoster
from haikubot.watchdog import Heartbeat, Watchdog
from haikubot.worker import AnalysisWorker, WorkerExit

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Supervisor states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DRAINING = "draining"
    RESTARTING = "restarting"


@dataclass
class RunSummary:
    """Outcome of one pipeline run."""

    enqueued: int = 0
    processed: int = 0
    posted: int = 0
    worker_exit: WorkerExit | None = None
    stream_error: str | None = None


class Supervisor:
    """Runs the streaming pipeline and restarts it on any terminal condition.

    Args:
        settings: Application settings
        connect: Coroutine factory returning a fresh connection
        event_filter: Filter applied on the producer path
        matcher: Match predicate used by the worker
        poster: Action Poster used by the worker
        heartbeat: Optional liveness ping, shared across runs
        audit: Optional audit stream for accepted candidates
    """

    def __init__(
        self,
        settings: Settings,
        *,
        connect: Callable[[], Awaitable[Connection]],
        event_filter: EventFilter,
        matcher: Matcher,
        poster: ActionPoster,
        heartbeat: Heartbeat | None = None,
        audit: AuditLog | None = None,
    ):
        self.settings = settings
        self._connect = connect
        self.event_filter = event_filter
        self.matcher = matcher
        self.poster = poster
        self.heartbeat = heartbeat
        self.audit = audit
        self.state = PipelineState.IDLE
        self.runs = 0

    def _transition(self, state: PipelineState) -> None:
        self.state = state
        logger.debug(f"state -> {state.value}", extra={"state": state.value})

    async def run_forever(self, max_runs: int | None = None) -> None:
        """Run the pipeline repeatedly; only cancellation stops it.

        Args:
            max_runs: Stop after this many runs (None: never)
        """
        while max_runs is None or self.runs < max_runs:
            logger.info("start")
            try:
                summary = await self.run_once()
                logger.info(
                    f"Run finished: enqueued={summary.enqueued} processed={summary.processed} "
                    f"posted={summary.posted} exit={summary.worker_exit}"
                )
            except StreamError as e:
                logger.error(f"Run failed: {e}")
            except Exception:
                logger.exception("Run crashed")
            self._transition(PipelineState.RESTARTING)
            if self.settings.restart_delay_seconds:
                await asyncio.sleep(self.settings.restart_delay_seconds)

    async def run_once(self) -> RunSummary:
        """Execute one CONNECTING -> STREAMING -> DRAINING cycle.

        Raises:
            StreamError: If the connection cannot be established
        """
        self.runs += 1
        self._transition(PipelineState.CONNECTING)
        connection = await self._connect()

        summary = RunSummary()
        queue = EventQueue(self.settings.queue_capacity)
        worker = AnalysisWorker(
            queue,
            self.matcher,
            self.poster,
            Watchdog(max_idle_ticks=self.settings.max_idle_ticks),
            on_stall=connection.close,
            heartbeat=self.heartbeat,
            idle_interval=self.settings.idle_interval_seconds,
        )

        self._transition(PipelineState.STREAMING)
        worker_task = asyncio.create_task(worker.run())
        producer_task = asyncio.create_task(self._produce(connection, queue, summary))
        try:
            await asyncio.wait({worker_task, producer_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            worker_task.cancel()
            producer_task.cancel()
            await connection.close()
            await asyncio.gather(worker_task, producer_task, return_exceptions=True)
            raise

        self._transition(PipelineState.DRAINING)
        await connection.close()
        await queue.close()
        results = await asyncio.gather(producer_task, worker_task, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Pipeline task failed: {result!r}", exc_info=result)

        if isinstance(results[1], WorkerExit):
            summary.worker_exit = results[1]
        summary.processed = worker.processed
        summary.posted = worker.posted
        return summary

    async def _produce(self, connection: Connection, queue: EventQueue, summary: RunSummary) -> None:
        """Read the connection, filter, and enqueue until the stream ends."""
        try:
            async for notification in connection.notifications():
                for event in self.event_filter.candidates(notification):
                    if self.audit is not None:
                        self.audit.emit_candidate(event)
                    await queue.put(event)
                    summary.enqueued += 1
        except StreamError as e:
            summary.stream_error = str(e)
            logger.error(f"Stream terminated: {e}")
        except QueueClosedError:
            logger.info("Queue closed, producer stopping")
