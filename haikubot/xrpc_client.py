"""XRPC client for the write endpoint (the bot's PDS).

Implements the three calls the poster needs: session creation (with reuse
and refresh), fetching a record's strong reference, and creating a record.

Example:
    >>> async with XrpcClient("https://bsky.social", "haiku.bsky.social", password) as client:
    ...     ref = await client.get_record(did, "app.bsky.feed.post", rkey)
    ...     created = await client.create_record("app.bsky.feed.post", record)
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from haikubot.exceptions import AuthenticationError, RecordNotFoundError, XrpcError
from haikubot.models import StrongRef

logger = logging.getLogger(__name__)

# Remote error names that mean the access token must be renewed
_EXPIRED_TOKEN_ERRORS = {"ExpiredToken", "InvalidToken"}


@dataclass
class Session:
    """Authenticated session returned by createSession/refreshSession."""

    did: str
    handle: str
    access_jwt: str
    refresh_jwt: str


class XrpcClient:
    """Client for the XRPC endpoints of a personal data server.

    Attributes:
        host: PDS base URL (e.g., "https://bsky.social")
        handle: Account handle used as the login identifier
        session: Current session, or None before the first login
    """

    def __init__(
        self,
        host: str,
        handle: str,
        password: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            host: PDS base URL
            handle: Account handle
            password: Account app password
            timeout: Per-request timeout in seconds
            http_client: Optional preconfigured client (owned by the caller)
        """
        self.host = host.rstrip("/")
        self.handle = handle
        self._password = password
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self.session: Session | None = None

    async def __aenter__(self) -> "XrpcClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        nsid: str,
        *,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        """Make one XRPC request.

        Args:
            method: HTTP method (GET for queries, POST for procedures)
            nsid: Method id (e.g., "com.atproto.repo.getRecord")
            params: Query parameters
            json_data: Request body
            token: Bearer token, if the call is authenticated

        Returns:
            Parsed JSON response

        Raises:
            AuthenticationError: On HTTP 401 outside of token expiry
            XrpcError: For other failures, with the remote error name attached
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = await self._http.request(
                method,
                f"{self.host}/xrpc/{nsid}",
                params=params,
                json=json_data,
                headers=headers,
            )
        except httpx.TransportError as e:
            raise XrpcError(f"{nsid} transport error: {e}") from e

        if response.is_success:
            if not response.content:
                return {}
            try:
                data = response.json()
            except ValueError as e:
                raise XrpcError(f"{nsid} returned invalid JSON: {e}", status_code=response.status_code) from e
            if not isinstance(data, dict):
                raise XrpcError(f"{nsid} returned a non-object body", status_code=response.status_code)
            return data

        error, message = _error_body(response)
        detail = f"{nsid} failed: {error or 'error'}"
        if message:
            detail += f": {message}"
        if response.status_code == 401 and error not in _EXPIRED_TOKEN_ERRORS:
            raise AuthenticationError(detail, error=error, status_code=401)
        raise XrpcError(detail, error=error, status_code=response.status_code)

    # ========================================================================
    # SESSION
    # ========================================================================

    async def create_session(self) -> Session:
        """Log in with handle and password.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        try:
            data = await self._request(
                "POST",
                "com.atproto.server.createSession",
                json_data={"identifier": self.handle, "password": self._password},
            )
        except AuthenticationError:
            raise
        except XrpcError as e:
            if e.status_code in (400, 401):
                raise AuthenticationError(f"cannot create session: {e}", error=e.error, status_code=e.status_code) from e
            raise
        self.session = _session_from(data)
        logger.info(f"Session created for {self.session.handle} ({self.session.did})")
        return self.session

    async def refresh_session(self) -> Session:
        """Renew the session, falling back to a fresh login."""
        if self.session is not None:
            try:
                data = await self._request(
                    "POST",
                    "com.atproto.server.refreshSession",
                    token=self.session.refresh_jwt,
                )
                self.session = _session_from(data)
                logger.info("Session refreshed")
                return self.session
            except XrpcError as e:
                logger.warning(f"Session refresh failed, logging in again: {e}")
        return await self.create_session()

    async def ensure_session(self) -> Session:
        if self.session is None:
            return await self.create_session()
        return self.session

    async def _authed(self, method: str, nsid: str, **kwargs: Any) -> dict[str, Any]:
        session = await self.ensure_session()
        try:
            return await self._request(method, nsid, token=session.access_jwt, **kwargs)
        except XrpcError as e:
            if isinstance(e, AuthenticationError) or e.error not in _EXPIRED_TOKEN_ERRORS:
                raise
        session = await self.refresh_session()
        try:
            return await self._request(method, nsid, token=session.access_jwt, **kwargs)
        except XrpcError as e:
            if e.error in _EXPIRED_TOKEN_ERRORS:
                raise AuthenticationError(f"session rejected after refresh: {e}", error=e.error, status_code=e.status_code) from e
            raise

    # ========================================================================
    # RECORDS
    # ========================================================================

    async def get_record(self, repo: str, collection: str, rkey: str) -> StrongRef:
        """Fetch the strong reference of an existing record.

        Args:
            repo: DID of the repository owner
            collection: Record collection (e.g., "app.bsky.feed.post")
            rkey: Record key

        Returns:
            StrongRef with the record's URI and CID

        Raises:
            RecordNotFoundError: If the record does not exist
            XrpcError: For other failures
        """
        uri = f"at://{repo}/{collection}/{rkey}"
        try:
            data = await self._authed(
                "GET",
                "com.atproto.repo.getRecord",
                params={"repo": repo, "collection": collection, "rkey": rkey},
            )
        except AuthenticationError:
            raise
        except XrpcError as e:
            if e.error == "RecordNotFound" or e.status_code == 404:
                raise RecordNotFoundError(f"record not found: {uri}", uri=uri, error=e.error, status_code=e.status_code) from e
            raise
        if not data.get("cid"):
            raise RecordNotFoundError(f"record has no cid: {uri}", uri=uri)
        return StrongRef(uri=data.get("uri", uri), cid=data["cid"])

    async def create_record(self, collection: str, record: dict[str, Any]) -> StrongRef:
        """Create a record in the bot's own repository.

        Returns:
            StrongRef of the created record
        """
        session = await self.ensure_session()
        data = await self._authed(
            "POST",
            "com.atproto.repo.createRecord",
            json_data={"repo": session.did, "collection": collection, "record": record},
        )
        try:
            return StrongRef(uri=data["uri"], cid=data["cid"])
        except KeyError as e:
            raise XrpcError(f"createRecord response missing {e}") from e


def _error_body(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text[:200] or None
    if not isinstance(body, dict):
        return None, None
    return body.get("error"), body.get("message")


def _session_from(data: dict[str, Any]) -> Session:
    try:
        return Session(
            did=data["did"],
            handle=data.get("handle", ""),
            access_jwt=data["accessJwt"],
            refresh_jwt=data["refreshJwt"],
        )
    except KeyError as e:
        raise XrpcError(f"session response missing {e}") from e
