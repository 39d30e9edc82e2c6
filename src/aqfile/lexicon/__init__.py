from .schema import (
    Issue,
    ParseFailure,
    ParseResult,
    ParseSuccess,
    format_path,
    is_valid,
    parse,
    safe_parse,
)
from .aqfile import (
    COLLECTION,
    RECOMMENDED_ALGOS,
    blob_schema,
    checksum_schema,
    file_schema,
    main_schema,
)

__all__ = [
    "Issue", "ParseFailure", "ParseResult", "ParseSuccess", "format_path",
    "is_valid", "parse", "safe_parse",
    "COLLECTION", "RECOMMENDED_ALGOS",
    "blob_schema", "checksum_schema", "file_schema", "main_schema",
]
