"""Assemble ``net.altq.aqfile`` records from a local file and an uploaded blob.

Nothing here validates. The caller passes the candidate record through
:func:`aqfile.lexicon.parse` before submitting it.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from aqfile.lexicon.aqfile import CHECKSUM_TYPE, COLLECTION, FILE_TYPE, RECOMMENDED_ALGOS

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_CHECKSUM_ALGO = "sha256"
LARGE_FILE_WARNING_BYTES = 100_000_000


def format_timestamp(dt: datetime) -> str:
    """RFC 3339 in UTC with millisecond precision, e.g. ``2025-01-15T00:00:00.000Z``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def guess_mime_type(path: str | os.PathLike[str]) -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or DEFAULT_MIME_TYPE


def calculate_checksum(data: bytes, algo: str = DEFAULT_CHECKSUM_ALGO) -> dict[str, str]:
    # hashlib.new raises ValueError for algorithms it does not provide.
    digest = hashlib.new(algo, data).hexdigest()
    return {"$type": CHECKSUM_TYPE, "algo": algo, "hash": digest}


def get_file_metadata(
    path: str | os.PathLike[str],
    name: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> dict[str, Any]:
    """Describe the file at ``path``. OS errors from ``stat`` propagate unchanged."""
    path = Path(path)
    info = path.stat()
    try:
        modified = datetime.fromtimestamp(info.st_mtime, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        modified = datetime.now(timezone.utc)

    return {
        "$type": FILE_TYPE,
        "name": name if name is not None else path.name,
        "size": info.st_size,
        "mimeType": mime_type if mime_type is not None else guess_mime_type(path),
        "modifiedAt": format_timestamp(modified),
    }


def build_record(
    *,
    blob: dict[str, Any],
    file: dict[str, Any],
    checksum: Optional[dict[str, Any]] = None,
    attribution: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Candidate record ready for validation. Unset optionals are left out, never ``None``."""
    record: dict[str, Any] = {
        "$type": COLLECTION,
        "blob": blob,
        "createdAt": format_timestamp(created_at or datetime.now(timezone.utc)),
        "file": {key: value for key, value in file.items() if value is not None},
    }
    if checksum is not None:
        record["checksum"] = checksum
    if attribution is not None:
        record["attribution"] = attribution
    return record


def record_warnings(record: dict[str, Any]) -> list[str]:
    """Advisory checks on a validated record. These never block an upload."""
    warnings: list[str] = []
    size = record.get("file", {}).get("size")
    if isinstance(size, int) and size > LARGE_FILE_WARNING_BYTES:
        warnings.append(f"File size {size} bytes exceeds the 100MB recommendation")
    checksum = record.get("checksum")
    if checksum and checksum.get("algo") not in RECOMMENDED_ALGOS:
        warnings.append(f"Uncommon checksum algorithm: {checksum.get('algo')}")
    return warnings
