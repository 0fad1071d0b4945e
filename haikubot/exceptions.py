"""
Unified exception hierarchy for haikubot.

Every failure the pipeline can observe maps onto one of these classes, so the
supervisor, worker and poster can decide what is fatal to the process, what
ends a single run, and what is merely logged.

Usage:
    from haikubot.exceptions import (
        AuthenticationError,
        PostError,
        StreamError,
    )

    try:
        await poster.post(collection, author_id, record_key, text)
    except AuthenticationError:
        # Credentials rejected - retrying will not help
        ...
    except PostError as e:
        logger.error(f"Post dropped after {e.attempts} attempts: {e}")
"""

from typing import Any


class HaikuBotError(Exception):
    """Base exception for all haikubot errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dict with additional error context.
        status_code: HTTP status code if applicable.
        service: Name of the remote service that raised the error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
        service: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        self.service = service

    def __str__(self) -> str:
        parts = [self.message]
        if self.service:
            parts.insert(0, f"[{self.service}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)


class ConfigurationError(HaikuBotError):
    """Configuration is invalid or missing.

    Raised when:
    - HAIKUBOT_PASSWORD is not set
    - The relay URL has no host
    """
    pass


class StreamError(HaikuBotError):
    """The inbound repository stream failed.

    Covers dial failures, read errors, error frames and undecodable commits.
    Terminal to the current run only; the supervisor reconnects.
    """
    pass


class QueueClosedError(HaikuBotError):
    """The event queue is closed.

    Raised by ``put`` once the queue has been closed, and by ``get`` once the
    queue is closed and every buffered event has been handed out.
    """

    def __init__(self, message: str = "event queue is closed", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class XrpcError(HaikuBotError):
    """An XRPC call to the write endpoint failed.

    Attributes:
        error: Remote error name from the response body (e.g. "ExpiredToken").
    """

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("service", "xrpc")
        super().__init__(message, **kwargs)
        self.error = error


class AuthenticationError(XrpcError):
    """Credentials were rejected or the session could not be recovered.

    Never retried: the same credentials will fail the same way a second later.
    """
    pass


class RecordNotFoundError(XrpcError):
    """The record being replied to no longer exists or is unreachable."""

    def __init__(
        self,
        message: str = "Record not found",
        *,
        uri: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.uri = uri


class PostError(HaikuBotError):
    """The Action Poster could not create the reply.

    Attributes:
        attempts: Number of create-record calls made before giving up.
    """

    def __init__(self, message: str, *, attempts: int = 0, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


__all__ = [
    "HaikuBotError",
    "ConfigurationError",
    "StreamError",
    "QueueClosedError",
    "XrpcError",
    "AuthenticationError",
    "RecordNotFoundError",
    "PostError",
]
