"""Tests for the XRPC client against a mocked transport."""

import json

import httpx
import pytest

from haikubot.exceptions import AuthenticationError, RecordNotFoundError, XrpcError
from haikubot.models import StrongRef
from haikubot.xrpc_client import XrpcClient

HOST = "https://pds.example"

SESSION = {
    "did": "did:plc:bot",
    "handle": "haiku.bsky.social",
    "accessJwt": "access-1",
    "refreshJwt": "refresh-1",
}


class FakePds:
    """Minimal XRPC server: records requests and replays scripted responses."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[httpx.Response]] = {}

    def add(self, nsid: str, status: int = 200, body: dict | None = None) -> None:
        self.routes.setdefault(nsid, []).append(httpx.Response(status, json=body or {}))

    def add_raw(self, nsid: str, content: bytes, status: int = 200) -> None:
        self.routes.setdefault(nsid, []).append(httpx.Response(status, content=content))

    def calls(self, nsid: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/xrpc/{nsid}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        nsid = request.url.path.removeprefix("/xrpc/")
        responses = self.routes.get(nsid)
        if not responses:
            return httpx.Response(501, json={"error": "MethodNotImplemented"})
        return responses.pop(0) if len(responses) > 1 else responses[0]


@pytest.fixture
def pds():
    return FakePds()


@pytest.fixture
def client(pds):
    http = httpx.AsyncClient(transport=httpx.MockTransport(pds.handler))
    return XrpcClient(HOST + "/", "haiku.bsky.social", "app-password", http_client=http)


class TestSession:
    """Tests for session creation and reuse."""

    def test_strips_trailing_slash(self, client):
        assert client.host == HOST

    @pytest.mark.asyncio
    async def test_create_session(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)

        session = await client.create_session()

        assert session.did == "did:plc:bot"
        assert session.access_jwt == "access-1"
        body = json.loads(pds.calls("com.atproto.server.createSession")[0].content)
        assert body == {"identifier": "haiku.bsky.social", "password": "app-password"}

    @pytest.mark.asyncio
    async def test_session_is_reused(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)

        await client.ensure_session()
        await client.ensure_session()

        assert len(pds.calls("com.atproto.server.createSession")) == 1

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, client, pds):
        pds.add(
            "com.atproto.server.createSession",
            status=401,
            body={"error": "AuthenticationRequired", "message": "Invalid identifier or password"},
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await client.create_session()

        assert exc_info.value.status_code == 401


class TestRecords:
    """Tests for get_record and create_record."""

    @pytest.mark.asyncio
    async def test_get_record(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add(
            "com.atproto.repo.getRecord",
            body={"uri": "at://did:plc:author/app.bsky.feed.post/3kabc", "cid": "bafyorig", "value": {}},
        )

        ref = await client.get_record("did:plc:author", "app.bsky.feed.post", "3kabc")

        assert ref == StrongRef(uri="at://did:plc:author/app.bsky.feed.post/3kabc", cid="bafyorig")
        request = pds.calls("com.atproto.repo.getRecord")[0]
        assert request.headers["Authorization"] == "Bearer access-1"
        assert request.url.params["repo"] == "did:plc:author"
        assert request.url.params["rkey"] == "3kabc"

    @pytest.mark.asyncio
    async def test_get_missing_record(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add("com.atproto.repo.getRecord", status=400, body={"error": "RecordNotFound"})

        with pytest.raises(RecordNotFoundError) as exc_info:
            await client.get_record("did:plc:author", "app.bsky.feed.post", "gone")

        assert exc_info.value.uri == "at://did:plc:author/app.bsky.feed.post/gone"

    @pytest.mark.asyncio
    async def test_create_record(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add("com.atproto.repo.createRecord", body={"uri": "at://did:plc:bot/app.bsky.feed.post/1", "cid": "bafynew"})

        ref = await client.create_record("app.bsky.feed.post", {"text": "hi"})

        assert ref.cid == "bafynew"
        body = json.loads(pds.calls("com.atproto.repo.createRecord")[0].content)
        assert body == {"repo": "did:plc:bot", "collection": "app.bsky.feed.post", "record": {"text": "hi"}}

    @pytest.mark.asyncio
    async def test_server_error(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add("com.atproto.repo.createRecord", status=502, body={"error": "UpstreamFailure"})

        with pytest.raises(XrpcError) as exc_info:
            await client.create_record("app.bsky.feed.post", {"text": "hi"})

        assert exc_info.value.status_code == 502
        assert exc_info.value.error == "UpstreamFailure"
        assert not isinstance(exc_info.value, AuthenticationError)

    @pytest.mark.asyncio
    async def test_non_json_success_is_xrpc_error(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add_raw("com.atproto.repo.createRecord", b"<html>oops</html>")

        with pytest.raises(XrpcError) as exc_info:
            await client.create_record("app.bsky.feed.post", {"text": "hi"})

        assert exc_info.value.status_code == 200
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_created_ref_without_cid_is_xrpc_error(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add("com.atproto.repo.createRecord", body={"uri": "at://did:plc:bot/app.bsky.feed.post/1"})

        with pytest.raises(XrpcError, match="missing"):
            await client.create_record("app.bsky.feed.post", {"text": "hi"})

    @pytest.mark.asyncio
    async def test_incomplete_session_is_xrpc_error(self, client, pds):
        pds.add("com.atproto.server.createSession", body={"did": "did:plc:bot"})

        with pytest.raises(XrpcError, match="missing"):
            await client.create_session()

        assert client.session is None

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self, pds):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(broken))
        client = XrpcClient(HOST, "haiku.bsky.social", "pw", http_client=http)

        with pytest.raises(XrpcError) as exc_info:
            await client.create_session()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestTokenRefresh:
    """Expired access tokens are renewed once."""

    @pytest.mark.asyncio
    async def test_refresh_on_expired_token(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add("com.atproto.server.refreshSession", body={**SESSION, "accessJwt": "access-2", "refreshJwt": "refresh-2"})
        pds.add("com.atproto.repo.createRecord", status=400, body={"error": "ExpiredToken"})
        pds.add("com.atproto.repo.createRecord", body={"uri": "at://x/app.bsky.feed.post/1", "cid": "bafynew"})

        ref = await client.create_record("app.bsky.feed.post", {"text": "hi"})

        assert ref.cid == "bafynew"
        refresh = pds.calls("com.atproto.server.refreshSession")[0]
        assert refresh.headers["Authorization"] == "Bearer refresh-1"
        retried = pds.calls("com.atproto.repo.createRecord")[1]
        assert retried.headers["Authorization"] == "Bearer access-2"

    @pytest.mark.asyncio
    async def test_still_expired_after_refresh(self, client, pds):
        pds.add("com.atproto.server.createSession", body=SESSION)
        pds.add("com.atproto.server.refreshSession", body=SESSION)
        pds.add("com.atproto.repo.createRecord", status=400, body={"error": "ExpiredToken"})

        with pytest.raises(AuthenticationError):
            await client.create_record("app.bsky.feed.post", {"text": "hi"})
