"""Bounded, closable FIFO between the stream reader and the worker.

``put`` blocks while the queue is full, which stops the producer from reading
the connection and pushes backpressure onto the remote stream. ``close``
forbids further puts and wakes every waiter; ``get`` keeps handing out the
buffered events and raises ``QueueClosedError`` once they are exhausted.
"""

import asyncio
from collections import deque
from typing import AsyncIterator, Deque

from haikubot.exceptions import QueueClosedError
from haikubot.models import CandidateEvent

DEFAULT_CAPACITY = 100


class EventQueue:
    """Single-producer/single-consumer bounded queue with close semantics.

    Example:
        >>> queue = EventQueue(maxsize=100)
        >>> await queue.put(event)
        >>> await queue.close()
        >>> async for event in queue:
        ...     await analyze(event)
    """

    def __init__(self, maxsize: int = DEFAULT_CAPACITY):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self._items: Deque[CandidateEvent] = deque()
        self._closed = False
        self._cond = asyncio.Condition()

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return len(self._items) >= self.maxsize

    def empty(self) -> bool:
        return not self._items

    async def put(self, event: CandidateEvent) -> None:
        """Append an event, waiting while the queue is full.

        Raises:
            QueueClosedError: If the queue is closed before or while waiting
        """
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or not self.full())
            if self._closed:
                raise QueueClosedError("cannot enqueue: event queue is closed")
            self._items.append(event)
            self._cond.notify_all()

    async def get(self) -> CandidateEvent:
        """Remove and return the oldest event, waiting while empty and open.

        Raises:
            QueueClosedError: If the queue is closed and fully drained
        """
        async with self._cond:
            await self._cond.wait_for(lambda: self._closed or bool(self._items))
            if not self._items:
                raise QueueClosedError("event queue is closed and drained")
            event = self._items.popleft()
            self._cond.notify_all()
            return event

    async def close(self) -> None:
        """Stop accepting events and wake all waiters. Idempotent."""
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    async def __aiter__(self) -> AsyncIterator[CandidateEvent]:
        while True:
            try:
                yield await self.get()
            except QueueClosedError:
                return
