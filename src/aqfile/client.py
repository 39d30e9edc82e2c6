import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from aqfile.config import Settings
from aqfile.exceptions import AuthError, FileSystemError, NotFoundError
from aqfile.lexicon import COLLECTION, main_schema, parse
from aqfile.models import FileRecord, RecordRef, Session, StoredRecord
from aqfile.records import (
    build_record,
    calculate_checksum,
    get_file_metadata,
    guess_mime_type,
    record_warnings,
)
from aqfile.repositories import PdsRepository

logger = logging.getLogger(__name__)

INSPECT_BASE_URL = "https://pdsls.dev"


@dataclass
class UploadResult:
    ref: RecordRef
    blob: dict[str, Any]
    record: FileRecord
    warnings: list[str] = field(default_factory=list)


class AqfileClient:
    """Single entry point for the commands: one session per instance, strictly sequential calls."""

    def __init__(self, settings: Settings, pds_repo: PdsRepository, collection: str = COLLECTION):
        self.settings = settings
        self.pds = pds_repo
        self.collection = collection

    async def __aenter__(self) -> "AqfileClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.pds.aclose()

    @property
    def did(self) -> str:
        if self.pds.session is None:
            raise AuthError("Not logged in")
        return self.pds.session.did

    async def login(self) -> Session:
        if not self.settings.has_credentials:
            raise AuthError("Credentials not provided. Set AQFILE_HANDLE and AQFILE_APP_PASSWORD, "
                            "pass --handle/--app-password, or run 'aqfile config setup'.")
        return await self.pds.authenticate(self.settings.handle, self.settings.app_password)

    # ――― links ――― #

    def inspection_links(self, uri: str) -> dict[str, str]:
        return {"pdsls": f"{INSPECT_BASE_URL}/{uri}"}

    def blob_url(self, cid: str) -> str:
        return self.pds.blob_url(self.did, cid)

    # ――― atomic high-level ops ――― #

    @staticmethod
    def _check_readable(path: Path) -> None:
        if not path.exists():
            raise FileSystemError(f"File not found: {path}")
        if not path.is_file():
            raise FileSystemError(f"Not a regular file: {path}")
        if not os.access(path, os.R_OK):
            raise FileSystemError(f"Permission denied: {path}")

    async def upload_file(self, file_path: str | os.PathLike[str]) -> UploadResult:
        """
        Upload the blob, then create a validated record that references it.

        The file is checked before any network call. The record is validated
        locally after the blob upload and before ``createRecord``; the PDS
        still performs its own authoritative validation.
        """
        path = Path(file_path)
        self._check_readable(path)

        await self.login()

        try:
            data = path.read_bytes()
            mime_type = guess_mime_type(path)
            file_meta = get_file_metadata(path, path.name, mime_type)
        except OSError as e:
            raise FileSystemError(f"Cannot read {path}: {e}") from e

        logger.info(f"Uploading {path.name} ({len(data)} bytes, {mime_type})")
        blob = await self.pds.upload_blob(data, mime_type)

        candidate = build_record(
            blob=blob,
            file=file_meta,
            checksum=calculate_checksum(data),
        )
        record = parse(main_schema, candidate)
        warnings = record_warnings(record)
        for warning in warnings:
            logger.warning(warning)

        ref = await self.pds.create_record(self.did, self.collection, record)
        logger.info(f"Record created: {ref.uri}")
        return UploadResult(ref=ref, blob=blob, record=FileRecord.model_validate(record), warnings=warnings)

    async def list_files(self, limit: int = 50) -> list[StoredRecord]:
        await self.login()
        return await self.pds.list_records(self.did, self.collection, limit)

    async def show_file(self, rkey: str) -> StoredRecord:
        await self.login()
        return await self.pds.get_record(self.did, self.collection, rkey)

    async def download_file(self, rkey: str) -> tuple[StoredRecord, bytes]:
        record = await self.show_file(rkey)
        cid = blob_cid(record.value)
        if cid is None:
            raise NotFoundError(f"Record {rkey} has no blob reference", rkey=rkey)
        logger.info(f"Downloading blob {cid}")
        return record, await self.pds.download_blob(self.did, cid)

    async def delete_file(self, rkey: str) -> Optional[str]:
        """
        Delete the record and return the CID of the blob it referenced.
        The PDS garbage-collects the blob once nothing references it.
        """
        record = await self.show_file(rkey)
        cid = blob_cid(record.value)
        await self.pds.delete_record(self.did, self.collection, rkey)
        logger.info(f"Deleted record {record.uri}")
        return cid


def blob_cid(value: dict[str, Any]) -> Optional[str]:
    """CID of the record's blob for both the typed and the legacy blob shape."""
    blob = value.get("blob")
    if not isinstance(blob, dict):
        return None
    ref = blob.get("ref")
    if isinstance(ref, dict) and isinstance(ref.get("$link"), str):
        return ref["$link"]
    cid = blob.get("cid")
    return cid if isinstance(cid, str) else None
