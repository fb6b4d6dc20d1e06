"""File name and extension policy for uploads."""

from __future__ import annotations

from errors import InvalidRequestError, ValidationFailedError
from payload_decoder import DecodedFile

ALLOWED_EXTENSIONS = (".docx", ".pdf", ".jpg", ".png", ".jpeg", ".txt", ".xlsx")


def file_extension(file_name: str) -> str:
    return "." + file_name.rsplit(".", 1)[-1].lower()


def validate_upload(decoded: DecodedFile) -> None:
    if not decoded.file_name:
        raise InvalidRequestError("File name is required")
    if file_extension(decoded.file_name) not in ALLOWED_EXTENSIONS:
        raise ValidationFailedError(
            error="Invalid file type",
            message=f"Supported file types: {', '.join(ALLOWED_EXTENSIONS)}",
        )
