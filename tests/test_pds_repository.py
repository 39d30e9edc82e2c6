import json

import httpx
import pytest

from aqfile.exceptions import AuthError, NetworkError, NotFoundError, UploadError
from aqfile.repositories import PdsRepository

pytestmark = pytest.mark.asyncio

SESSION = {"did": "did:plc:abc123", "handle": "alice.test", "accessJwt": "jwt-1", "refreshJwt": "jwt-2"}


def make_repo(handler) -> PdsRepository:
    return PdsRepository("https://pds.test/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def session_then(handler):
    """Answer createSession, delegate everything else to ``handler``."""
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("com.atproto.server.createSession"):
            return httpx.Response(200, json=SESSION)
        return handler(request)
    return _handler


async def test_authenticate_sends_credentials_and_stores_session():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=SESSION)

    repo = make_repo(handler)
    session = await repo.authenticate("alice.test", "app-pass")

    assert seen["url"] == "https://pds.test/xrpc/com.atproto.server.createSession"
    assert seen["body"] == {"identifier": "alice.test", "password": "app-pass"}
    assert session.did == "did:plc:abc123"
    assert repo.session.access_jwt == "jwt-1"
    await repo.aclose()
    assert repo.session is None


async def test_authenticate_bad_credentials():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "AuthenticationRequired", "message": "Invalid identifier or password"})

    repo = make_repo(handler)
    with pytest.raises(AuthError, match="Invalid identifier or password"):
        await repo.authenticate("alice.test", "wrong")
    await repo.aclose()


async def test_authenticated_call_without_session():
    repo = make_repo(lambda request: httpx.Response(200, json={}))

    with pytest.raises(AuthError, match="Not logged in"):
        await repo.upload_blob(b"data", "text/plain")
    await repo.aclose()


async def test_upload_blob_sends_bytes_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["type"] = request.headers["Content-Type"]
        seen["content"] = request.content
        blob = {"$type": "blob", "ref": {"$link": "bafkreiabc"}, "mimeType": "text/plain", "size": 4}
        return httpx.Response(200, json={"blob": blob})

    repo = make_repo(session_then(handler))
    await repo.authenticate("alice.test", "app-pass")
    blob = await repo.upload_blob(b"data", "text/plain")

    assert seen == {"auth": "Bearer jwt-1", "type": "text/plain", "content": b"data"}
    assert blob["ref"]["$link"] == "bafkreiabc"
    await repo.aclose()


async def test_upload_blob_server_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(413, json={"error": "PayloadTooLarge", "message": "request entity too large"})

    repo = make_repo(session_then(handler))
    await repo.authenticate("alice.test", "app-pass")
    with pytest.raises(UploadError, match="PayloadTooLarge"):
        await repo.upload_blob(b"x" * 10, "application/octet-stream")
    await repo.aclose()


async def test_upload_blob_without_blob_in_response():
    repo = make_repo(session_then(lambda request: httpx.Response(200, json={})))
    await repo.authenticate("alice.test", "app-pass")

    with pytest.raises(UploadError, match="no blob returned"):
        await repo.upload_blob(b"data", "text/plain")
    await repo.aclose()


async def test_get_record_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "RecordNotFound", "message": "Could not locate record"})

    repo = make_repo(handler)
    with pytest.raises(NotFoundError) as exc_info:
        await repo.get_record("did:plc:abc123", "net.altq.aqfile", "3kmissing")

    assert str(exc_info.value) == "record not found: 3kmissing"
    assert exc_info.value.rkey == "3kmissing"
    await repo.aclose()


async def test_get_record_parses_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["rkey"] == "3kabc"
        return httpx.Response(200, json={
            "uri": "at://did:plc:abc123/net.altq.aqfile/3kabc",
            "cid": "bafyreirecord",
            "value": {"$type": "net.altq.aqfile"},
        })

    repo = make_repo(handler)
    record = await repo.get_record("did:plc:abc123", "net.altq.aqfile", "3kabc")

    assert record.rkey == "3kabc"
    assert record.cid == "bafyreirecord"
    await repo.aclose()


async def test_list_records_passes_limit():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["limit"] == "5"
        assert request.url.params["collection"] == "net.altq.aqfile"
        return httpx.Response(200, json={"records": [
            {"uri": "at://did:plc:abc123/net.altq.aqfile/3ka", "cid": "c1", "value": {}},
            {"uri": "at://did:plc:abc123/net.altq.aqfile/3kb", "cid": "c2", "value": {}},
        ]})

    repo = make_repo(handler)
    records = await repo.list_records("did:plc:abc123", "net.altq.aqfile", limit=5)

    assert [record.rkey for record in records] == ["3ka", "3kb"]
    await repo.aclose()


async def test_transport_failure_becomes_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    repo = make_repo(handler)
    with pytest.raises(NetworkError, match="connection refused"):
        await repo.list_records("did:plc:abc123", "net.altq.aqfile")
    await repo.aclose()


async def test_non_json_error_body():
    repo = make_repo(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))

    with pytest.raises(NetworkError, match="HTTP502: Bad Gateway"):
        await repo.list_records("did:plc:abc123", "net.altq.aqfile")
    await repo.aclose()


async def test_expired_token_is_an_auth_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "ExpiredToken", "message": "Token has expired"})

    repo = make_repo(session_then(handler))
    await repo.authenticate("alice.test", "app-pass")
    with pytest.raises(AuthError, match="ExpiredToken"):
        await repo.delete_record("did:plc:abc123", "net.altq.aqfile", "3kabc")
    await repo.aclose()


async def test_download_blob_and_blob_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["did"] == "did:plc:abc123"
        assert request.url.params["cid"] == "bafkreiabc"
        return httpx.Response(200, content=b"\x00\x01binary")

    repo = make_repo(handler)

    assert await repo.download_blob("did:plc:abc123", "bafkreiabc") == b"\x00\x01binary"
    url = repo.blob_url("did:plc:abc123", "bafkreiabc")
    assert url.startswith("https://pds.test/xrpc/com.atproto.sync.getBlob?")
    assert "cid=bafkreiabc" in url
    await repo.aclose()


async def test_blob_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "BlobNotFound", "message": "Blob not found"})

    repo = make_repo(handler)
    with pytest.raises(NotFoundError, match="BlobNotFound"):
        await repo.download_blob("did:plc:abc123", "bafkreimissing")
    await repo.aclose()


async def test_non_json_success_body_becomes_network_error():
    repo = make_repo(lambda request: httpx.Response(200, text="<html>captive portal</html>"))

    with pytest.raises(NetworkError, match="non-JSON body"):
        await repo.list_records("did:plc:abc123", "net.altq.aqfile")
    await repo.aclose()


async def test_malformed_session_becomes_network_error():
    repo = make_repo(lambda request: httpx.Response(200, json={"handle": "alice.test"}))

    with pytest.raises(NetworkError, match="unexpected body"):
        await repo.authenticate("alice.test", "app-pass")
    assert repo.session is None
    await repo.aclose()


async def test_malformed_record_becomes_network_error():
    repo = make_repo(lambda request: httpx.Response(200, json={"records": [{"cid": "c1"}]}))

    with pytest.raises(NetworkError, match="unexpected body"):
        await repo.list_records("did:plc:abc123", "net.altq.aqfile")
    await repo.aclose()


async def test_redirect_loop_becomes_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": str(request.url)})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    repo = PdsRepository("https://pds.test", client=client)
    with pytest.raises(NetworkError, match="listRecords failed"):
        await repo.list_records("did:plc:abc123", "net.altq.aqfile")
    await repo.aclose()
