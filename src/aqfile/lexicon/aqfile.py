"""Schemas for the ``net.altq.aqfile`` record collection."""

from __future__ import annotations

from aqfile.lexicon.schema import (
    ActorIdentifierSchema,
    DatetimeSchema,
    IntegerSchema,
    LiteralSchema,
    StringSchema,
    UnionSchema,
    obj,
    optional,
)

COLLECTION = "net.altq.aqfile"
CHECKSUM_TYPE = f"{COLLECTION}#checksum"
FILE_TYPE = f"{COLLECTION}#file"

RECOMMENDED_ALGOS = ("sha256", "sha512", "blake3")
MAX_NAME_LENGTH = 512
MAX_MIME_TYPE_LENGTH = 255
MAX_FILE_SIZE = 1_000_000_000
MAX_ALGO_LENGTH = 32
MAX_HASH_LENGTH = 128

checksum_schema = obj(
    CHECKSUM_TYPE,
    type_=optional(LiteralSchema(CHECKSUM_TYPE)),
    # Hash algorithm name; unknown names are accepted.
    algo=StringSchema(0, MAX_ALGO_LENGTH, known_values=RECOMMENDED_ALGOS),
    # Hex or base64 encoded digest.
    hash=StringSchema(0, MAX_HASH_LENGTH),
)

file_schema = obj(
    FILE_TYPE,
    type_=optional(LiteralSchema(FILE_TYPE)),
    name=StringSchema(0, MAX_NAME_LENGTH),
    size=IntegerSchema(0, MAX_FILE_SIZE),
    mimeType=optional(StringSchema(0, MAX_MIME_TYPE_LENGTH)),
    modifiedAt=optional(DatetimeSchema()),
)

typed_blob_schema = obj(
    "blob",
    type_=LiteralSchema("blob"),
    ref=obj("cid-link", **{"$link": StringSchema(min_length=1)}),
    mimeType=StringSchema(),
    size=IntegerSchema(minimum=0),
)

legacy_blob_schema = obj(
    "legacy-blob",
    cid=StringSchema(min_length=1),
    mimeType=StringSchema(),
)

blob_schema = UnionSchema((typed_blob_schema, legacy_blob_schema), name="blob")

# Size limits on the blob itself are enforced by the PDS.
main_schema = obj(
    COLLECTION,
    type_=LiteralSchema(COLLECTION),
    attribution=optional(ActorIdentifierSchema()),
    blob=blob_schema,
    checksum=optional(checksum_schema),
    createdAt=DatetimeSchema(),
    file=file_schema,
)
