"""Cheap rejection rules applied to every commit on the producer path.

The filter does no I/O and no dictionary lookups: a handful of string and
regex checks decide whether an operation becomes a ``CandidateEvent``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from haikubot.config import Settings
from haikubot.models import CandidateEvent, CommitNotification, RepoOp

logger = logging.getLogger(__name__)

CREATE_ACTION = "create"


class EventFilter:
    """Turns repository operations into candidate events.

    Rules, first match rejects:
    1. commit flagged as too big by the transport
    2. not a creation of the target record type
    3. declared languages without the target language
    4. text already carries the completion marker
    5. no character from the target script
    6. author is block-listed
    7. path does not split into collection and record key
    """

    def __init__(self, settings: Settings):
        self.target_collection = settings.target_collection
        self.target_language = settings.target_language
        self.completion_marker = settings.completion_marker
        self.blocklist = frozenset(settings.blocklist)
        self._script = re.compile(settings.script_pattern)

    def candidates(self, notification: CommitNotification) -> Iterator[CandidateEvent]:
        """Yield the accepted candidates of one commit, in operation order."""
        if notification.too_big:
            logger.info(
                f"skipping too big event: {notification.seq}",
                extra={"seq": notification.seq},
            )
            return
        for op in notification.ops:
            event = self.accept(notification, op)
            if event is not None:
                yield event

    def accept(self, notification: CommitNotification, op: RepoOp) -> CandidateEvent | None:
        """Apply the rejection rules to a single operation.

        Args:
            notification: Commit the operation belongs to
            op: The operation to inspect

        Returns:
            CandidateEvent, or None if any rule rejects the operation
        """
        if notification.too_big:
            return None

        record = op.record
        if op.action != CREATE_ACTION or not record:
            return None
        if record.get("$type") != self.target_collection:
            return None

        langs = record.get("langs") or []
        if langs and self.target_language not in langs:
            return None

        text = record.get("text") or ""
        if self.completion_marker in text:
            return None
        if not self._script.search(text):
            return None

        if notification.repo in self.blocklist:
            logger.warning(
                f"BLOCKED {notification.repo}",
                extra={"seq": notification.seq, "author_id": notification.repo},
            )
            return None

        parts = op.path.split("/")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            return None

        return CandidateEvent(
            collection=parts[0],
            author_id=notification.repo,
            record_key=parts[1],
            text=text,
            seq=notification.seq,
            record=record,
        )
