from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BlobRef(BaseModel):
    """Reference to a blob held by the PDS. Covers both the typed and the legacy shape."""
    type: Optional[str] = Field(None, alias="$type")
    ref: Optional[dict[str, str]] = None
    cid_legacy: Optional[str] = Field(None, alias="cid")
    mime_type: str = Field(..., alias="mimeType")
    size: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def cid(self) -> str | None:
        if self.ref and "$link" in self.ref:
            return self.ref["$link"]
        return self.cid_legacy


class Checksum(BaseModel):
    type: Optional[str] = Field(None, alias="$type")
    algo: str
    hash: str

    model_config = ConfigDict(populate_by_name=True)


class FileDescriptor(BaseModel):
    type: Optional[str] = Field(None, alias="$type")
    name: str
    size: int
    mime_type: Optional[str] = Field(None, alias="mimeType")
    modified_at: Optional[str] = Field(None, alias="modifiedAt")

    model_config = ConfigDict(populate_by_name=True)


class FileRecord(BaseModel):
    """Typed view of a ``net.altq.aqfile`` record that already passed validation."""
    type: str = Field(..., alias="$type")
    blob: BlobRef
    created_at: str = Field(..., alias="createdAt")
    file: FileDescriptor
    checksum: Optional[Checksum] = None
    attribution: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        """Serialise back to the record shape stored on the PDS."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RecordRef(BaseModel):
    uri: str
    cid: str

    @property
    def rkey(self) -> str:
        return rkey_from_uri(self.uri)


class StoredRecord(BaseModel):
    uri: str
    cid: Optional[str] = None
    value: dict[str, Any]

    @property
    def rkey(self) -> str:
        return rkey_from_uri(self.uri)


class Session(BaseModel):
    did: str
    handle: str
    access_jwt: str = Field(..., alias="accessJwt")
    refresh_jwt: Optional[str] = Field(None, alias="refreshJwt")

    model_config = ConfigDict(populate_by_name=True)


def rkey_from_uri(uri: str) -> str:
    """``at://did:plc:abc/net.altq.aqfile/3kxyz`` -> ``3kxyz``."""
    return uri.rstrip("/").rsplit("/", 1)[-1]
