"""Error taxonomy shared by the manage-doc modules."""

from __future__ import annotations

from dataclasses import dataclass


class InvalidRequestError(ValueError):
    """Raised when a required request field is missing or malformed."""


@dataclass(frozen=True)
class ValidationFailedError(Exception):
    error: str
    message: str


class DocumentNotFoundError(LookupError):
    """Raised when the storage backend has no object for a key."""


class MultipartParseError(ValueError):
    """Raised when a multipart/form-data body cannot be decoded."""


class FileTooLargeError(MultipartParseError):
    """Raised when a file part exceeds the configured size limit."""


class StorageBackendError(RuntimeError):
    """Raised for any storage call failure other than a missing key."""
