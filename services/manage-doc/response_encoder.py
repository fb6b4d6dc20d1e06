"""
API Gateway response envelopes for the manage-doc Lambda.

Every response carries the CORS headers. Binary download bodies are sent as
base64 text with ``isBase64Encoded`` set, which API Gateway needs in order to
hand the bytes back to the client unchanged.
"""

from __future__ import annotations

import base64
import json
from typing import Any

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES_BY_EXTENSION = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Requested-With,Accept",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": "86400",
    }


def json_response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **cors_headers()},
        "body": json.dumps(body, default=str),
        "isBase64Encoded": False,
    }


def error_response(
    status_code: int,
    error: str,
    details: Any = None,
    message: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error}
    if message is not None:
        body["message"] = message
    if details is not None:
        body["details"] = details
    return json_response(status_code, body)


def content_type_for(file_name: str) -> str:
    extension = file_name.rsplit(".", 1)[-1].lower()
    return CONTENT_TYPES_BY_EXTENSION.get(extension, DEFAULT_CONTENT_TYPE)


def encode_binary(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def binary_response(content: bytes, file_name: str) -> dict[str, Any]:
    return {
        "statusCode": 200,
        "headers": {
            **cors_headers(),
            "Content-Type": content_type_for(file_name),
            "Content-Disposition": f'attachment; filename="{file_name}"',
            "Content-Encoding": "identity",
        },
        "body": encode_binary(content),
        "isBase64Encoded": True,
    }
