"""
Lambda handler for the document repository endpoint.

Flow:
1. OPTIONS preflight short-circuits with CORS headers.
2. Resolve the action from ``?action=`` (falling back to the body).
3. uploadFile: decode the payload (raw base64 body or multipart/form-data),
   check it against the upload policy and put it under ``documents/``.
4. listDocuments: list ``documents/`` and project each object to a summary.
5. downloadFile: drain the object and return it base64-encoded as an attachment.

Every path returns an API Gateway response with CORS headers; nothing is
allowed to escape to the Lambda runtime.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from config import Settings
from errors import (
    DocumentNotFoundError,
    InvalidRequestError,
    MultipartParseError,
    StorageBackendError,
    ValidationFailedError,
)
from payload_decoder import DecodedFile, decode_direct_body, decode_multipart_body, is_multipart
from response_encoder import binary_response, error_response, json_response
from storage_gateway import StorageGateway, create_s3_client, original_file_name
from upload_policy import validate_upload

logger = logging.getLogger(__name__)

ACTION_UPLOAD = "uploadFile"
ACTION_LIST = "listDocuments"
ACTION_DOWNLOAD = "downloadFile"

PREFLIGHT_METHOD = "OPTIONS"

# One client per warm container, reused for its connection pool only.
_default_gateway: StorageGateway | None = None


def _get_gateway(settings: Settings) -> StorageGateway:
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = StorageGateway(
            create_s3_client(settings.region),
            settings.bucket_name,
            prefix=settings.documents_prefix,
        )
    return _default_gateway


def _http_method(event: dict[str, Any]) -> str:
    http = (event.get("requestContext") or {}).get("http") or {}
    return str(event.get("httpMethod") or http.get("method") or "").upper()


def _query_params(event: dict[str, Any]) -> dict[str, str]:
    params = event.get("queryStringParameters") or {}
    if not isinstance(params, dict):
        return {}
    return {key: value for key, value in params.items() if value is not None}


def _string_param(params: dict[str, Any], name: str) -> str | None:
    value = params.get(name)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_action(event: dict[str, Any]) -> str | None:
    action = _string_param(_query_params(event), "action")
    if action:
        return action

    raw_body = event.get("body")
    if raw_body in (None, ""):
        return None
    if event.get("isBase64Encoded"):
        return ACTION_UPLOAD

    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, TypeError):
        # Raw-body fallback: a body that is not JSON is taken to be the file
        # itself rather than a malformed request.
        return ACTION_UPLOAD

    if isinstance(payload, dict):
        return _string_param(payload, "action")
    return None


def _decode_upload(event: dict[str, Any], settings: Settings) -> DecodedFile:
    if event.get("body") in (None, ""):
        raise InvalidRequestError("File content is required")

    if is_multipart(event):
        return decode_multipart_body(event, max_file_size=settings.max_upload_bytes)

    params = _query_params(event)
    return decode_direct_body(
        event,
        file_name=_string_param(params, "fileName"),
        content_type=_string_param(params, "contentType"),
    )


def handle_upload(event: dict[str, Any], gateway: StorageGateway, settings: Settings) -> dict[str, Any]:
    logger.info("Processing file upload request")
    try:
        decoded = _decode_upload(event, settings)
        validate_upload(decoded)
    except InvalidRequestError as exc:
        return error_response(400, str(exc))
    except ValidationFailedError as exc:
        return error_response(400, exc.error, message=exc.message)
    except MultipartParseError as exc:
        logger.error("Error parsing multipart form: %s", exc)
        return error_response(500, "Failed to upload file", details=str(exc))

    key = gateway.build_key(decoded.file_name)
    logger.info(
        "Uploading file: %s, Content-Type: %s, Size: %d bytes",
        decoded.file_name,
        decoded.content_type,
        decoded.size,
    )
    try:
        gateway.put(key, decoded.content, decoded.content_type)
    except StorageBackendError as exc:
        return error_response(500, "Failed to upload file", details=str(exc))

    logger.info("File uploaded successfully to %s", key)
    return json_response(
        200,
        {
            "message": "File uploaded successfully",
            "key": key,
            "fileName": decoded.file_name,
        },
    )


def handle_list(gateway: StorageGateway) -> dict[str, Any]:
    try:
        documents = gateway.list_documents()
    except StorageBackendError as exc:
        return error_response(500, "Failed to list documents", details=str(exc))
    return json_response(200, {"documents": [document.to_dict() for document in documents]})


def handle_download(event: dict[str, Any], gateway: StorageGateway) -> dict[str, Any]:
    key = _string_param(_query_params(event), "key")
    if not key:
        return error_response(400, "Document key is required")

    try:
        content = gateway.read(key)
    except DocumentNotFoundError:
        return error_response(404, "Document not found")
    except StorageBackendError as exc:
        return error_response(500, "Failed to download file", details=str(exc))

    logger.info("Downloaded %s: %d bytes", key, len(content))
    return binary_response(content, original_file_name(key))


def _route(event: dict[str, Any], gateway: StorageGateway, settings: Settings) -> dict[str, Any]:
    method = _http_method(event)
    if method == PREFLIGHT_METHOD:
        logger.info("Handling OPTIONS preflight request")
        return json_response(200, {"message": "Preflight request successful"})

    action = resolve_action(event)
    logger.info("Received %s request with action=%s", method or "UNKNOWN", action)

    if action == ACTION_UPLOAD:
        return handle_upload(event, gateway, settings)
    if action == ACTION_LIST:
        return handle_list(gateway)
    if action == ACTION_DOWNLOAD:
        return handle_download(event, gateway)
    return error_response(400, "Invalid action specified")


def dispatch(event: dict[str, Any], gateway: StorageGateway, settings: Settings | None = None) -> dict[str, Any]:
    try:
        return _route(event, gateway, settings or Settings.from_env())
    except Exception as exc:
        logger.exception("Unhandled error while processing request")
        return error_response(500, "Internal server error", details=str(exc))


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    del context
    try:
        settings = Settings.from_env()
        gateway = _get_gateway(settings)
    except Exception as exc:
        logger.exception("Failed to initialise storage gateway")
        return error_response(500, "Internal server error", details=str(exc))
    return dispatch(event, gateway, settings)
