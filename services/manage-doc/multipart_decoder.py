"""
Incremental multipart/form-data decoder.

The decoder is a small state machine fed with arbitrary byte chunks:

    AWAITING_BOUNDARY -> IN_HEADERS -> IN_BODY -> (IN_HEADERS ...) -> DONE

Delimiters may straddle chunk edges, so every state keeps just enough of the
unconsumed tail to recognise a delimiter on the next feed. The first part that
declares a filename is kept as the file; later file parts are drained and
dropped. Decoding only succeeds once the terminal ``--boundary--`` delimiter
has been consumed.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from email.message import Message
from email.parser import HeaderParser
from typing import Iterable

from errors import FileTooLargeError, MultipartParseError

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_HEADER_BYTES = 16 * 1024
MAX_FIELD_BYTES = 1024 * 1024
MAX_BOUNDARY_LENGTH = 70


class DecoderState(enum.Enum):
    AWAITING_BOUNDARY = "awaiting-boundary"
    IN_HEADERS = "in-headers"
    IN_BODY = "in-body"
    DONE = "done"


@dataclass(frozen=True)
class FilePart:
    field_name: str
    file_name: str
    content_type: str
    content: bytes


@dataclass
class _PartInProgress:
    field_name: str
    file_name: str | None
    content_type: str
    keep: bool
    chunks: list[bytes] = field(default_factory=list)
    size: int = 0

    @property
    def is_file(self) -> bool:
        return self.file_name is not None


def parse_boundary(content_type: str | None) -> str:
    """Return the boundary parameter of a multipart/form-data content type."""
    if not content_type or "multipart/form-data" not in content_type.lower():
        raise MultipartParseError("Not a multipart/form-data request")

    message = Message()
    message["Content-Type"] = content_type
    boundary = message.get_param("boundary")
    if isinstance(boundary, tuple):
        boundary = boundary[2]
    if not boundary:
        raise MultipartParseError("Missing multipart boundary")
    boundary = str(boundary)
    if len(boundary) > MAX_BOUNDARY_LENGTH or not boundary.isascii():
        raise MultipartParseError("Invalid multipart boundary")
    return boundary


def _parse_part_headers(raw_headers: bytes) -> tuple[str, str | None, str]:
    headers = HeaderParser().parsestr(raw_headers.decode("utf-8", errors="replace"))
    if headers.get("Content-Disposition") is None:
        raise MultipartParseError("Multipart part is missing Content-Disposition")

    field_name = headers.get_param("name", header="content-disposition") or ""
    if isinstance(field_name, tuple):
        field_name = field_name[2]

    # filename="" still marks a file part, just an unnamed one
    file_name = None
    if headers.get_param("filename", header="content-disposition") is not None:
        file_name = headers.get_filename() or ""

    content_type = headers.get_content_type() if headers.get("Content-Type") else DEFAULT_CONTENT_TYPE
    return str(field_name), file_name, content_type


class MultipartDecoder:
    """Push-style multipart decoder; drive it with ``feed`` then ``close``."""

    def __init__(self, boundary: str, max_file_size: int) -> None:
        if not boundary:
            raise MultipartParseError("Missing multipart boundary")
        self._delimiter = CRLF + b"--" + boundary.encode("ascii")
        self._max_file_size = max_file_size
        # The body may open with the delimiter itself, without a leading CRLF.
        self._buffer = bytearray(CRLF)
        self._part: _PartInProgress | None = None
        self.state = DecoderState.AWAITING_BOUNDARY
        self.file: FilePart | None = None
        self.fields: dict[str, str] = {}

    def feed(self, chunk: bytes) -> None:
        if self.state is DecoderState.DONE or not chunk:
            return
        self._buffer.extend(chunk)
        while self._step():
            pass

    def close(self) -> None:
        if self.state is not DecoderState.DONE:
            raise MultipartParseError("Unexpected end of multipart body")

    def _step(self) -> bool:
        if self.state is DecoderState.AWAITING_BOUNDARY:
            return self._scan_for_delimiter(emit=False)
        if self.state is DecoderState.IN_HEADERS:
            return self._read_headers()
        if self.state is DecoderState.IN_BODY:
            return self._scan_for_delimiter(emit=True)
        self._buffer.clear()
        return False

    def _scan_for_delimiter(self, emit: bool) -> bool:
        index = self._buffer.find(self._delimiter)
        if index == -1:
            safe = len(self._buffer) - (len(self._delimiter) - 1)
            if safe > 0:
                if emit:
                    self._emit(bytes(self._buffer[:safe]))
                del self._buffer[:safe]
            return False

        if index > 0:
            if emit:
                self._emit(bytes(self._buffer[:index]))
            del self._buffer[:index]

        transport_end = self._delimiter_end()
        if transport_end is None:
            return False
        next_state, consumed = transport_end
        del self._buffer[:consumed]

        if self._part is not None:
            self._finish_part()
        self.state = next_state
        return True

    def _delimiter_end(self) -> tuple[DecoderState, int] | None:
        """Classify what follows a delimiter sitting at the buffer start."""
        tail_start = len(self._delimiter)
        tail = self._buffer[tail_start:]
        if len(tail) < 2:
            return None
        if tail[:2] == b"--":
            return DecoderState.DONE, tail_start + 2

        line_end = tail.find(CRLF)
        if line_end == -1:
            if len(tail) > MAX_HEADER_BYTES:
                raise MultipartParseError("Malformed multipart delimiter")
            return None
        if tail[:line_end].strip(b" \t"):
            raise MultipartParseError("Malformed multipart delimiter")
        return DecoderState.IN_HEADERS, tail_start + line_end + len(CRLF)

    def _read_headers(self) -> bool:
        if self._buffer.startswith(CRLF):
            raw_headers = b""
            consumed = len(CRLF)
        else:
            end = self._buffer.find(CRLF + CRLF)
            if end == -1:
                if len(self._buffer) > MAX_HEADER_BYTES:
                    raise MultipartParseError("Multipart part headers are too large")
                return False
            raw_headers = bytes(self._buffer[:end])
            consumed = end + 2 * len(CRLF)
        del self._buffer[:consumed]

        field_name, file_name, content_type = _parse_part_headers(raw_headers)
        keep = file_name is None or self.file is None
        self._part = _PartInProgress(
            field_name=field_name,
            file_name=file_name,
            content_type=content_type,
            keep=keep,
        )
        if file_name is not None:
            logger.info("Processing file part: %s, type: %s", file_name, content_type)
        self.state = DecoderState.IN_BODY
        return True

    def _emit(self, data: bytes) -> None:
        part = self._part
        if part is None or not data:
            return
        part.size += len(data)
        if part.is_file and part.size > self._max_file_size:
            raise FileTooLargeError(f"File exceeds maximum size of {self._max_file_size} bytes")
        if not part.is_file and part.size > MAX_FIELD_BYTES:
            raise MultipartParseError(f"Form field {part.field_name!r} exceeds maximum size")
        if part.keep:
            part.chunks.append(data)

    def _finish_part(self) -> None:
        part = self._part
        self._part = None
        if part is None or not part.keep:
            return
        content = b"".join(part.chunks)
        if part.is_file:
            self.file = FilePart(
                field_name=part.field_name,
                file_name=part.file_name or "",
                content_type=part.content_type,
                content=content,
            )
            logger.info("File %s read complete: %d bytes", self.file.file_name, len(content))
        else:
            self.fields[part.field_name] = content.decode("utf-8", errors="replace")


def decode_multipart(chunks: Iterable[bytes], content_type: str | None, max_file_size: int) -> FilePart:
    """Pull every chunk through a decoder and return the single file part."""
    decoder = MultipartDecoder(parse_boundary(content_type), max_file_size=max_file_size)
    for chunk in chunks:
        decoder.feed(chunk)
    decoder.close()
    if decoder.file is None:
        raise MultipartParseError("No file found in form data")
    return decoder.file
