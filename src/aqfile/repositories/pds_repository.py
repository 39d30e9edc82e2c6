import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from aqfile.exceptions import AqfileError, AuthError, NetworkError, NotFoundError, UploadError
from aqfile.models import RecordRef, Session, StoredRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=120.0, write=120.0, pool=30.0)
AUTH_ERRORS = {
    "AuthenticationRequired", "AuthFactorTokenRequired", "ExpiredToken", "InvalidToken", "AccountTakedown",
}
NOT_FOUND_ERRORS = {"RecordNotFound", "BlobNotFound"}

M = TypeVar("M", bound=BaseModel)


def _xrpc_error(response: httpx.Response) -> tuple[str, str]:
    """Pull ``(error, message)`` out of an XRPC error body, tolerating non-JSON bodies."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error = str(body.get("error") or f"HTTP{response.status_code}")
    message = str(body.get("message") or response.reason_phrase or error)
    return error, message


class PdsRepository:
    """
    Thin async wrapper over the XRPC endpoints of a Personal Data Server.

    One instance holds one authenticated session. Every call is a single
    request; failures are mapped onto the ``aqfile.exceptions`` taxonomy and
    never retried.
    """

    def __init__(self, service: str, client: Optional[httpx.AsyncClient] = None):
        self._service = service.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=True)
        self.session: Optional[Session] = None

    @property
    def service(self) -> str:
        return self._service

    def _url(self, nsid: str) -> str:
        return f"{self._service}/xrpc/{nsid}"

    def _auth_headers(self) -> dict[str, str]:
        if self.session is None:
            raise AuthError("Not logged in")
        return {"Authorization": f"Bearer {self.session.access_jwt}"}

    async def _call(
        self,
        method: str,
        nsid: str,
        *,
        auth: bool = True,
        error_cls: type[AqfileError] = NetworkError,
        rkey: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = dict(kwargs.pop("headers", {}))
        if auth:
            headers.update(self._auth_headers())

        logger.debug(f"{method} {nsid}")
        try:
            response = await self._client.request(method, self._url(nsid), headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(f"{nsid} failed: {e}") from e

        if response.is_success:
            return response

        error, message = _xrpc_error(response)
        logger.debug(f"{nsid} returned {response.status_code} {error}: {message}")
        if response.status_code == 401 or error in AUTH_ERRORS:
            raise AuthError(f"{error}: {message}")
        if error in NOT_FOUND_ERRORS:
            if error == "RecordNotFound" and rkey is not None:
                raise NotFoundError(rkey=rkey)
            raise NotFoundError(f"{error}: {message}", rkey=rkey)
        raise error_cls(f"{error}: {message}")

    @staticmethod
    def _body(response: httpx.Response, nsid: str, error_cls: type[AqfileError] = NetworkError) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise error_cls(f"{nsid} returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise error_cls(f"{nsid} returned an unexpected body")
        return body

    @staticmethod
    def _model(model: type[M], data: Any, nsid: str) -> M:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise NetworkError(f"{nsid} returned an unexpected body: {e.error_count()} invalid field(s)") from e

    # ――― session ――― #

    async def authenticate(self, identifier: str, secret: str) -> Session:
        response = await self._call(
            "POST",
            "com.atproto.server.createSession",
            auth=False,
            json={"identifier": identifier, "password": secret},
        )
        self.session = self._model(Session, self._body(response, "createSession"), "createSession")
        logger.info(f"Logged in as {self.session.handle} ({self.session.did})")
        return self.session

    async def aclose(self) -> None:
        self.session = None
        await self._client.aclose()

    # ――― blobs ――― #

    async def upload_blob(self, data: bytes, mime_type: str) -> dict[str, Any]:
        response = await self._call(
            "POST",
            "com.atproto.repo.uploadBlob",
            error_cls=UploadError,
            content=data,
            headers={"Content-Type": mime_type},
        )
        blob = self._body(response, "uploadBlob", UploadError).get("blob")
        if not blob:
            raise UploadError("Upload failed: no blob returned")
        return blob

    def blob_url(self, did: str, cid: str) -> str:
        return str(
            httpx.URL(self._url("com.atproto.sync.getBlob"), params={"did": did, "cid": cid})
        )

    async def download_blob(self, did: str, cid: str) -> bytes:
        response = await self._call(
            "GET",
            "com.atproto.sync.getBlob",
            auth=False,
            params={"did": did, "cid": cid},
        )
        return response.content

    # ――― records ――― #

    async def create_record(self, repo: str, collection: str, record: dict[str, Any]) -> RecordRef:
        response = await self._call(
            "POST",
            "com.atproto.repo.createRecord",
            json={"repo": repo, "collection": collection, "record": record},
        )
        return self._model(RecordRef, self._body(response, "createRecord"), "createRecord")

    async def list_records(self, repo: str, collection: str, limit: int = 50) -> list[StoredRecord]:
        response = await self._call(
            "GET",
            "com.atproto.repo.listRecords",
            auth=False,
            params={"repo": repo, "collection": collection, "limit": limit},
        )
        records = self._body(response, "listRecords").get("records", [])
        if not isinstance(records, list):
            raise NetworkError("listRecords returned an unexpected body")
        return [self._model(StoredRecord, item, "listRecords") for item in records]

    async def get_record(self, repo: str, collection: str, rkey: str) -> StoredRecord:
        response = await self._call(
            "GET",
            "com.atproto.repo.getRecord",
            auth=False,
            rkey=rkey,
            params={"repo": repo, "collection": collection, "rkey": rkey},
        )
        return self._model(StoredRecord, self._body(response, "getRecord"), "getRecord")

    async def delete_record(self, repo: str, collection: str, rkey: str) -> None:
        await self._call(
            "POST",
            "com.atproto.repo.deleteRecord",
            rkey=rkey,
            json={"repo": repo, "collection": collection, "rkey": rkey},
        )
