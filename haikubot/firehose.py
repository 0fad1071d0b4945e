"""Inbound repository stream (com.atproto.sync.subscribeRepos).

``FirehoseConnection`` owns one websocket to the relay and yields decoded
``CommitNotification``s. Frame and CAR decoding are delegated to the
``atproto`` SDK; transport failures surface as ``StreamError``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import websockets
from atproto import CAR, firehose_models, models, parse_subscribe_repos_message
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException

from haikubot.exceptions import StreamError
from haikubot.models import CommitNotification, RepoOp

logger = logging.getLogger(__name__)

# Operations whose record is present in the commit snapshot
_RECORD_ACTIONS = ("create", "update")


class Connection(Protocol):
    """What the supervisor needs from a stream connection."""

    def notifications(self) -> AsyncIterator[CommitNotification]: ...

    async def close(self) -> None: ...


def decode_frame(data: bytes) -> CommitNotification | None:
    """Decode one binary firehose frame.

    Args:
        data: Raw websocket message

    Returns:
        CommitNotification for commit frames, None for other message kinds

    Raises:
        StreamError: For error frames and undecodable commits
    """
    try:
        frame = firehose_models.Frame.from_bytes(data)
    except Exception as e:
        raise StreamError(f"cannot decode frame: {e}") from e

    if isinstance(frame, firehose_models.ErrorFrame):
        raise StreamError(f"error frame: {frame.body.error}: {frame.body.message}")

    message = parse_subscribe_repos_message(frame)
    if not isinstance(message, models.ComAtprotoSyncSubscribeRepos.Commit):
        return None

    if getattr(message, "too_big", False):
        return CommitNotification(seq=message.seq, repo=message.repo, too_big=True)

    try:
        car = CAR.from_bytes(message.blocks)
    except Exception as e:
        raise StreamError(
            f"reading repo from car (seq: {message.seq}, len: {len(message.blocks)}): {e}"
        ) from e

    ops = []
    for op in message.ops:
        if op.action not in _RECORD_ACTIONS:
            ops.append(RepoOp(action=op.action, path=op.path))
            continue
        record = car.blocks.get(op.cid) if op.cid else None
        if not isinstance(record, dict):
            logger.warning(
                f"getting record {op.path} ({op.cid}) within seq {message.seq} for {message.repo}: not in snapshot",
                extra={"seq": message.seq, "author_id": message.repo},
            )
            continue
        ops.append(RepoOp(action=op.action, path=op.path, cid=str(op.cid), record=record))

    return CommitNotification(seq=message.seq, repo=message.repo, ops=tuple(ops))


class FirehoseConnection:
    """A live websocket subscription to the relay.

    Use ``FirehoseConnection.open(url)`` to dial. ``close`` is idempotent and
    may be called by the producer's error path and the watchdog alike.
    """

    def __init__(self, websocket: Any, url: str):
        self._ws = websocket
        self.url = url
        self._closed = False

    @classmethod
    async def open(cls, url: str, *, open_timeout: float = 30.0) -> "FirehoseConnection":
        """Dial the relay.

        Raises:
            StreamError: If the connection cannot be established
        """
        try:
            ws = await websockets.connect(url, max_size=None, open_timeout=open_timeout)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise StreamError(f"dial failure: {e}") from e
        logger.info(f"Connected to {url}")
        return cls(ws, url)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()

    async def notifications(self) -> AsyncIterator[CommitNotification]:
        """Yield commits until the connection closes.

        A locally initiated close ends iteration quietly; anything else
        raises ``StreamError``.
        """
        while True:
            try:
                data = await self._ws.recv()
            except ConnectionClosedOK:
                return
            except ConnectionClosedError as e:
                if self._closed:
                    return
                raise StreamError(f"connection lost: {e}") from e
            except (OSError, WebSocketException) as e:
                raise StreamError(f"read error: {e}") from e

            if isinstance(data, str):
                continue
            notification = decode_frame(data)
            if notification is not None:
                yield notification
