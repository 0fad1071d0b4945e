"""Action Poster: quote-posts a matched text with bounded retry.

Steps for one call:
1. ensure an authenticated session (an ``AuthenticationError`` aborts)
2. fetch the strong reference of the original post (not retried)
3. create the reply record, retrying the create step with a fixed pause

Every call starts with a fresh retry budget; nothing carries over.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from haikubot.exceptions import AuthenticationError, PostError, XrpcError
from haikubot.logging_config import AuditLog
from haikubot.models import StrongRef
from haikubot.xrpc_client import XrpcClient

logger = logging.getLogger(__name__)

POST_COLLECTION = "app.bsky.feed.post"
EMBED_RECORD_TYPE = "app.bsky.embed.record"


def build_quote_post(text: str, ref: StrongRef, created_at: datetime) -> dict:
    """Build a post record embedding ``ref`` as a quoted record."""
    return {
        "$type": POST_COLLECTION,
        "text": text,
        "createdAt": created_at.astimezone(UTC).isoformat().replace("+00:00", "Z"),
        "embed": {
            "$type": EMBED_RECORD_TYPE,
            "record": ref.to_dict(),
        },
    }


def _log_failed_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return
    logger.warning(
        f"failed to create post (attempt {retry_state.attempt_number}): "
        f"{retry_state.outcome.exception()}",
        extra={"attempt": retry_state.attempt_number},
    )


class ActionPoster:
    """Creates quote-post replies through an ``XrpcClient``.

    Attributes:
        max_attempts: Create-record attempts per call (default: 3)
        retry_delay: Seconds to pause between attempts (default: 1)
    """

    def __init__(
        self,
        client: XrpcClient,
        *,
        audit: AuditLog | None = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.client = client
        self.audit = audit
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock

    async def post(
        self,
        collection: str,
        author_id: str,
        record_key: str,
        text: str,
    ) -> StrongRef | None:
        """Reply to ``author_id``'s record with ``text``.

        Args:
            collection: Collection of the original record
            author_id: DID owning the original record
            record_key: Key of the original record
            text: Reply text

        Returns:
            StrongRef of the created post, or None when ``text`` is blank

        Raises:
            AuthenticationError: If the session cannot be established
            PostError: If the original record cannot be fetched or every
                create attempt failed
        """
        if not text.strip():
            return None

        await self.client.ensure_session()

        try:
            ref = await self.client.get_record(author_id, collection, record_key)
        except AuthenticationError:
            raise
        except XrpcError as e:
            raise PostError(f"cannot get record: {e}", attempts=0) from e

        record = build_quote_post(text, ref, self._clock())
        created = await self._create_with_retry(record)

        logger.info(f"Posted {created.uri}", extra={"author_id": author_id, "record_key": record_key})
        if self.audit is not None:
            self.audit.emit_posted(created)
        return created

    async def _create_with_retry(self, record: dict) -> StrongRef:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(XrpcError) & retry_if_not_exception_type(AuthenticationError),
            after=_log_failed_attempt,
            sleep=self._sleep,
            reraise=True,
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    return await self.client.create_record(POST_COLLECTION, record)
        except AuthenticationError:
            raise
        except XrpcError as e:
            raise PostError(f"failed to create post: {e}", attempts=attempts) from e
        raise PostError("failed to create post", attempts=attempts)
