from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from aqfile.lexicon.schema import Issue


class AqfileError(Exception):
    """Base class."""


class ValidationError(AqfileError):
    """Record failed client-side schema validation; nothing was submitted."""

    def __init__(self, message: str, issues: Sequence["Issue"] = ()):
        super().__init__(message)
        self.message = message
        self.issues = list(issues)


class AuthError(AqfileError):
    pass


class NotFoundError(AqfileError):
    def __init__(self, message: str | None = None, *, rkey: str | None = None):
        if message is None:
            message = f"record not found: {rkey}"
        super().__init__(message)
        self.rkey = rkey


class NetworkError(AqfileError):
    pass


class UploadError(NetworkError):
    pass


class FileSystemError(AqfileError):
    pass


class ConfigError(AqfileError):
    pass
