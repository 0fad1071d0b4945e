"""Value types flowing through the ingestion pipeline.

The stream adapter turns each commit on the firehose into a
``CommitNotification``; the event filter reduces it to ``CandidateEvent``s;
the poster resolves and creates records identified by ``StrongRef``s.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class RepoOp:
    """One repository mutation inside a commit.

    Attributes:
        action: "create", "update" or "delete"
        path: Slash-delimited "<collection>/<record key>" path
        cid: Content hash of the new record, if any
        record: Decoded record body, or None when it could not be resolved
    """

    action: str
    path: str
    cid: str | None = None
    record: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class CommitNotification:
    """A batch of mutations to one repository at a given sequence number."""

    seq: int
    repo: str
    ops: tuple[RepoOp, ...] = ()
    too_big: bool = False


@dataclass(frozen=True)
class CandidateEvent:
    """A newly created post worth running through the match predicate.

    ``record`` carries the decoded post for the audit stream only; it takes
    no part in equality.
    """

    collection: str
    author_id: str
    record_key: str
    text: str
    seq: int = 0
    record: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class StrongRef:
    """Content hash plus canonical address of an immutable record."""

    uri: str
    cid: str

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "cid": self.cid}
