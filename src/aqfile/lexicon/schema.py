"""Declarative schemas for lexicon records and the routine that checks values against them.

A schema is a small immutable tree of nodes (``StringSchema``,
``IntegerSchema``, ``ObjectSchema``, ``UnionSchema`` ...). One recursive
function, :func:`_validate`, walks a value and a schema together and collects
every violation as an :class:`Issue` with the path where it occurred. The
three public entry points only differ in how they report the outcome:

* :func:`is_valid` returns a boolean,
* :func:`safe_parse` returns a :class:`ParseSuccess` or :class:`ParseFailure`,
* :func:`parse` returns the value or raises :class:`~aqfile.exceptions.ValidationError`.

Validation never mutates the input. The value handed back on success is a
fresh copy built during traversal.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping, Union

from aqfile.exceptions import ValidationError

PathItem = Union[str, int]

MISSING_VALUE = "missing_value"
INVALID_TYPE = "invalid_type"
INVALID_LITERAL = "invalid_literal"
INVALID_STRING_LENGTH = "invalid_string_length"
INVALID_STRING_FORMAT = "invalid_string_format"
INVALID_RANGE = "invalid_range"
INVALID_VARIANT = "invalid_variant"

_DATETIME_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})")
_FRACTION_RE = re.compile(r"\.(\d+)")
_DID_RE = re.compile(r"did:[a-z]+:[a-zA-Z0-9._:%-]*[a-zA-Z0-9._-]")
_HANDLE_RE = re.compile(
    r"([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+"
    r"[a-zA-Z]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
)
_DID_MAX_LENGTH = 2048
_HANDLE_MAX_LENGTH = 253


# ――― issues and results ――― #

@dataclass(frozen=True)
class Issue:
    code: str
    path: tuple[PathItem, ...]
    detail: str

    @property
    def path_string(self) -> str:
        return format_path(self.path)

    def __str__(self) -> str:
        return f"{self.code} at {self.path_string}: {self.detail}"


@dataclass(frozen=True)
class ParseSuccess:
    value: Any
    ok: Literal[True] = True


@dataclass(frozen=True)
class ParseFailure:
    message: str
    issues: list[Issue]
    ok: Literal[False] = False


ParseResult = Union[ParseSuccess, ParseFailure]


def format_path(path: tuple[PathItem, ...]) -> str:
    """Render ``("file", "size")`` as ``file.size`` and indices as ``[0]``."""
    if not path:
        return "<root>"
    out = ""
    for item in path:
        if isinstance(item, int):
            out += f"[{item}]"
        elif out:
            out += f".{item}"
        else:
            out = item
    return out


def summarize(issues: list[Issue]) -> str:
    first = str(issues[0])
    if len(issues) == 1:
        return first
    return f"{first} (+{len(issues) - 1} more)"


# ――― schema nodes ――― #

class Schema:
    """Base class for schema nodes."""

    name = "unknown"


@dataclass(frozen=True)
class StringSchema(Schema):
    min_length: int | None = None
    max_length: int | None = None
    # Advisory only; never rejects a value.
    known_values: tuple[str, ...] = ()
    name: str = "string"


@dataclass(frozen=True)
class IntegerSchema(Schema):
    minimum: int | None = None
    maximum: int | None = None
    name: str = "integer"


@dataclass(frozen=True)
class BooleanSchema(Schema):
    name: str = "boolean"


@dataclass(frozen=True)
class LiteralSchema(Schema):
    expected: Any
    name: str = "literal"


@dataclass(frozen=True)
class DatetimeSchema(Schema):
    name: str = "datetime"


@dataclass(frozen=True)
class ActorIdentifierSchema(Schema):
    name: str = "actor-identifier"


@dataclass(frozen=True)
class OptionalSchema(Schema):
    inner: Schema
    name: str = "optional"


@dataclass(frozen=True)
class Field:
    schema: Schema
    required: bool = True


@dataclass(frozen=True)
class ObjectSchema(Schema):
    fields: Mapping[str, Field] = field(default_factory=dict)
    name: str = "object"


@dataclass(frozen=True)
class UnionSchema(Schema):
    branches: tuple[Schema, ...] = ()
    name: str = "union"


def optional(inner: Schema) -> OptionalSchema:
    return OptionalSchema(inner)


def obj(name: str, /, **fields: Schema) -> ObjectSchema:
    """Build an ``ObjectSchema``; fields wrapped in ``optional()`` are not required.

    ``$type`` cannot be a keyword argument, so it is spelled ``type_``.
    """
    spec: dict[str, Field] = {}
    for key, schema in fields.items():
        wire_key = "$type" if key == "type_" else key
        if isinstance(schema, OptionalSchema):
            spec[wire_key] = Field(schema.inner, required=False)
        else:
            spec[wire_key] = Field(schema, required=True)
    return ObjectSchema(fields=spec, name=name)


# ――― traversal ――― #

def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _is_datetime(value: str) -> bool:
    if not _DATETIME_RE.fullmatch(value):
        return False
    # fromisoformat on 3.10 only takes 3 or 6 fractional digits
    normalized = _FRACTION_RE.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"), count=1
    )
    try:
        datetime.fromisoformat(normalized)
    except ValueError:
        return False
    return True


def _is_actor_identifier(value: str) -> bool:
    if value.startswith("did:"):
        return len(value) <= _DID_MAX_LENGTH and bool(_DID_RE.fullmatch(value))
    return len(value) <= _HANDLE_MAX_LENGTH and bool(_HANDLE_RE.fullmatch(value))


def _validate(schema: Schema, value: Any, path: tuple[PathItem, ...], issues: list[Issue]) -> Any:
    """Check ``value`` against ``schema``, appending to ``issues``; return the cleaned copy."""

    if isinstance(schema, OptionalSchema):
        # Absence is handled by the enclosing object; a present value must match.
        return _validate(schema.inner, value, path, issues)

    if isinstance(schema, LiteralSchema):
        if value != schema.expected or type(value) is not type(schema.expected):
            issues.append(Issue(INVALID_LITERAL, path, f"expected {schema.expected!r}, got {value!r}"))
        return value

    if isinstance(schema, BooleanSchema):
        if not isinstance(value, bool):
            issues.append(Issue(INVALID_TYPE, path, f"expected boolean, got {_type_name(value)}"))
        return value

    if isinstance(schema, IntegerSchema):
        if isinstance(value, bool) or not isinstance(value, int):
            issues.append(Issue(INVALID_TYPE, path, f"expected integer, got {_type_name(value)}"))
            return value
        low = schema.minimum if schema.minimum is not None else value
        high = schema.maximum if schema.maximum is not None else value
        if not low <= value <= high:
            issues.append(Issue(
                INVALID_RANGE, path,
                f"expected integer in [{schema.minimum}, {schema.maximum}], got {value}",
            ))
        return value

    if isinstance(schema, (StringSchema, DatetimeSchema, ActorIdentifierSchema)):
        if not isinstance(value, str):
            issues.append(Issue(INVALID_TYPE, path, f"expected string, got {_type_name(value)}"))
            return value
        if isinstance(schema, DatetimeSchema):
            if not _is_datetime(value):
                issues.append(Issue(INVALID_STRING_FORMAT, path, f"expected datetime, got {value!r}"))
        elif isinstance(schema, ActorIdentifierSchema):
            if not _is_actor_identifier(value):
                issues.append(Issue(INVALID_STRING_FORMAT, path, f"expected handle or did, got {value!r}"))
        else:
            length = len(value)
            low = schema.min_length if schema.min_length is not None else length
            high = schema.max_length if schema.max_length is not None else length
            if not low <= length <= high:
                issues.append(Issue(
                    INVALID_STRING_LENGTH, path,
                    f"expected length in [{schema.min_length}, {schema.max_length}], got {length}",
                ))
        return value

    if isinstance(schema, ObjectSchema):
        if not isinstance(value, dict):
            issues.append(Issue(INVALID_TYPE, path, f"expected object, got {_type_name(value)}"))
            return value
        for key, spec in schema.fields.items():
            if spec.required and key not in value:
                issues.append(Issue(MISSING_VALUE, path + (key,), f"required field {key!r} is missing"))
        cleaned: dict[str, Any] = {}
        for key, spec in schema.fields.items():
            if key in value:
                cleaned[key] = _validate(spec.schema, value[key], path + (key,), issues)
        for key, item in value.items():
            if key not in schema.fields:
                cleaned[key] = copy.deepcopy(item)
        return cleaned

    if isinstance(schema, UnionSchema):
        for branch in schema.branches:
            branch_issues: list[Issue] = []
            result = _validate(branch, value, path, branch_issues)
            if not branch_issues:
                return result
        attempted = ", ".join(branch.name for branch in schema.branches)
        issues.append(Issue(INVALID_VARIANT, path, f"value matched none of: {attempted}"))
        return value

    raise TypeError(f"unsupported schema node: {schema!r}")


def _collect(schema: Schema, value: Any) -> tuple[Any, list[Issue]]:
    issues: list[Issue] = []
    cleaned = _validate(schema, value, (), issues)
    return cleaned, issues


# ――― public entry points ――― #

def is_valid(schema: Schema, value: Any) -> bool:
    _, issues = _collect(schema, value)
    return not issues


def safe_parse(schema: Schema, value: Any) -> ParseResult:
    cleaned, issues = _collect(schema, value)
    if issues:
        return ParseFailure(message=summarize(issues), issues=issues)
    return ParseSuccess(value=cleaned)


def parse(schema: Schema, value: Any) -> Any:
    """Return the validated copy of ``value`` or raise ``ValidationError`` with every issue."""
    cleaned, issues = _collect(schema, value)
    if issues:
        raise ValidationError(summarize(issues), issues)
    return cleaned
