import hashlib
import json
import logging

import httpx
import pytest
import pytest_asyncio

from aqfile import AqfileClient, create_client
from aqfile.config import Settings

SERVICE = "https://pds.test"
DID = "did:plc:testuser1234567890"
HANDLE = "alice.test"
APP_PASSWORD = "app-pass-1234"
ACCESS_JWT = "access-token"


class FakePds:
    """
    In-memory stand-in for the handful of XRPC endpoints aqfile talks to.
    Plug ``handler`` into ``httpx.MockTransport``.
    """

    def __init__(self):
        self.records: dict[str, dict] = {}
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.blob_override: dict | None = None
        self._counter = 0

    @staticmethod
    def _error(status: int, error: str, message: str) -> httpx.Response:
        return httpx.Response(status, json={"error": error, "message": message})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        nsid = request.url.path.removeprefix("/xrpc/")
        params = request.url.params

        if nsid == "com.atproto.server.createSession":
            body = json.loads(request.content)
            if body["identifier"] != HANDLE or body["password"] != APP_PASSWORD:
                return self._error(401, "AuthenticationRequired", "Invalid identifier or password")
            return httpx.Response(200, json={
                "did": DID, "handle": HANDLE, "accessJwt": ACCESS_JWT, "refreshJwt": "refresh-token",
            })

        if nsid == "com.atproto.sync.getBlob":
            blob = self.blobs.get(params["cid"])
            if blob is None:
                return self._error(400, "BlobNotFound", "Blob not found")
            return httpx.Response(200, content=blob[0], headers={"Content-Type": blob[1]})

        if nsid == "com.atproto.repo.listRecords":
            records = [
                {"uri": self._uri(rkey), "cid": item["cid"], "value": item["value"]}
                for rkey, item in reversed(list(self.records.items()))
            ]
            return httpx.Response(200, json={"records": records[: int(params.get("limit", 50))]})

        if nsid == "com.atproto.repo.getRecord":
            item = self.records.get(params["rkey"])
            if item is None:
                return self._error(400, "RecordNotFound", f"Could not locate record: {params['rkey']}")
            return httpx.Response(200, json={
                "uri": self._uri(params["rkey"]), "cid": item["cid"], "value": item["value"],
            })

        if request.headers.get("Authorization") != f"Bearer {ACCESS_JWT}":
            return self._error(401, "AuthenticationRequired", "Authentication Required")

        if nsid == "com.atproto.repo.uploadBlob":
            data = request.content
            cid = "bafkrei" + hashlib.sha256(data).hexdigest()[:24]
            mime_type = request.headers["Content-Type"]
            self.blobs[cid] = (data, mime_type)
            blob = self.blob_override or {
                "$type": "blob", "ref": {"$link": cid}, "mimeType": mime_type, "size": len(data),
            }
            return httpx.Response(200, json={"blob": blob})

        if nsid == "com.atproto.repo.createRecord":
            body = json.loads(request.content)
            self._counter += 1
            rkey = f"3lrec{self._counter:08d}"
            cid = f"bafyreirecord{self._counter}"
            self.records[rkey] = {"cid": cid, "value": body["record"]}
            return httpx.Response(200, json={"uri": self._uri(rkey), "cid": cid})

        if nsid == "com.atproto.repo.deleteRecord":
            body = json.loads(request.content)
            self.records.pop(body["rkey"], None)
            return httpx.Response(200, json={})

        return self._error(501, "MethodNotImplemented", f"{nsid} not implemented")

    @staticmethod
    def _uri(rkey: str) -> str:
        return f"at://{DID}/net.altq.aqfile/{rkey}"

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep every test away from the real config file, .env and AQFILE_* variables."""
    for name in ("AQFILE_SERVICE", "AQFILE_HANDLE", "AQFILE_APP_PASSWORD", "AQFILE_LOG_LEVEL", "AQFILE_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AQFILE_CONFIG", str(tmp_path / "config" / "config.json"))
    monkeypatch.chdir(tmp_path)
    yield
    aqfile_logger = logging.getLogger("aqfile")
    aqfile_logger.handlers.clear()
    aqfile_logger.propagate = True


@pytest.fixture
def fake_pds() -> FakePds:
    return FakePds()


@pytest.fixture
def settings() -> Settings:
    return Settings(service=SERVICE, handle=HANDLE, app_password=APP_PASSWORD)


@pytest_asyncio.fixture(scope="function")
async def data_client(fake_pds, settings) -> AqfileClient:
    """AqfileClient wired to the fake PDS through the real factory."""
    client = create_client(settings, http_client=fake_pds.http_client())
    yield client
    await client.aclose()


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "test-upload.txt"
    path.write_bytes(b"The quick brown fox jumps over the lazy dog")
    return path
