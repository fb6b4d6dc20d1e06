"""
Turns an API Gateway upload event into a DecodedFile.

Two strategies:
1. Direct binary: the whole body is the file; name and type come from the
   ``fileName``/``contentType`` query parameters.
2. Multipart: the body is streamed through the multipart decoder and the
   single file part supplies name, type and bytes.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Iterator

from errors import InvalidRequestError, MultipartParseError
from multipart_decoder import DEFAULT_CONTENT_TYPE, decode_multipart

MULTIPART_FORM_DATA = "multipart/form-data"
BODY_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DecodedFile:
    content: bytes
    file_name: str
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.content)


def normalize_headers(headers: Any) -> dict[str, str]:
    if not isinstance(headers, dict):
        return {}
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        if isinstance(key, str) and value is not None:
            normalized[key.lower()] = str(value)
    return normalized


def header_value(headers: dict[str, str], name: str) -> str | None:
    value = headers.get(name.lower())
    if value is None:
        return None
    value = value.strip()
    return value or None


def request_content_type(event: dict[str, Any]) -> str | None:
    return header_value(normalize_headers(event.get("headers")), "Content-Type")


def is_multipart(event: dict[str, Any]) -> bool:
    content_type = request_content_type(event)
    return content_type is not None and MULTIPART_FORM_DATA in content_type.lower()


def body_bytes(event: dict[str, Any]) -> bytes:
    """Undo the transport encoding of the event body."""
    raw_body = event.get("body")
    if raw_body in (None, ""):
        return b""
    if isinstance(raw_body, bytes):
        return raw_body
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(raw_body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidRequestError("body must be valid base64") from exc
    return str(raw_body).encode("utf-8")


def iter_chunks(data: bytes, chunk_size: int = BODY_CHUNK_SIZE) -> Iterator[bytes]:
    view = memoryview(data)
    for offset in range(0, len(view), chunk_size):
        yield bytes(view[offset:offset + chunk_size])


def decode_direct_body(event: dict[str, Any], file_name: str | None, content_type: str | None) -> DecodedFile:
    if not file_name or not file_name.strip():
        raise InvalidRequestError("File name is required")
    content = body_bytes(event)
    if not content:
        raise InvalidRequestError("File content is required")
    return DecodedFile(
        content=content,
        file_name=file_name.strip(),
        content_type=(content_type or "").strip() or DEFAULT_CONTENT_TYPE,
    )


def decode_multipart_body(event: dict[str, Any], max_file_size: int) -> DecodedFile:
    content_type = request_content_type(event)
    if content_type is None or MULTIPART_FORM_DATA not in content_type.lower():
        raise MultipartParseError("Not a multipart/form-data request")
    try:
        data = body_bytes(event)
    except InvalidRequestError as exc:
        raise MultipartParseError(str(exc)) from exc

    part = decode_multipart(iter_chunks(data), content_type, max_file_size=max_file_size)
    return DecodedFile(content=part.content, file_name=part.file_name, content_type=part.content_type)
