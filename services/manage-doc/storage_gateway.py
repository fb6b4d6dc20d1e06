"""
Thin adapter between the document flows and an S3 bucket.

The S3 client is always passed in; ``create_s3_client`` exists for the
Lambda entry point, which keeps one client per warm process.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from errors import DocumentNotFoundError, StorageBackendError

logger = logging.getLogger(__name__)

NO_SUCH_KEY_ERROR_CODE = "NoSuchKey"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024
KEY_TIMESTAMP_PATTERN = re.compile(r"^\d+-(?=.)")

# A failed backend call is terminal for the invocation.
S3_CLIENT_CONFIG = Config(retries={"total_max_attempts": 1, "mode": "standard"})


@dataclass(frozen=True)
class DocumentSummary:
    key: str
    file_name: str
    size: int
    last_modified: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "fileName": self.file_name,
            "size": self.size,
            "lastModified": self.last_modified,
        }


def create_s3_client(region: str) -> Any:
    return boto3.client("s3", region_name=region, config=S3_CLIENT_CONFIG)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _error_message(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Message") or exc)
    return str(exc)


def _format_timestamp(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def display_name(key: str) -> str:
    return key.rsplit("/", 1)[-1]


def original_file_name(key: str) -> str:
    """Strip the upload timestamp that ``build_key`` puts in front of the name."""
    return KEY_TIMESTAMP_PATTERN.sub("", display_name(key), count=1)


class StorageGateway:
    def __init__(self, s3_client: Any, bucket_name: str, prefix: str = "documents/") -> None:
        self._s3 = s3_client
        self.bucket_name = bucket_name
        self.prefix = prefix

    def build_key(self, file_name: str, now_ms: int | None = None) -> str:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return f"{self.prefix}{now_ms}-{file_name}"

    def put(self, key: str, content: bytes, content_type: str) -> None:
        try:
            self._s3.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("put_object failed for %s: %s", key, exc)
            raise StorageBackendError(_error_message(exc)) from exc

    def get(self, key: str) -> Iterator[bytes]:
        """Fetch an object and return an iterator over its body chunks."""
        try:
            response = self._s3.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if _error_code(exc) == NO_SUCH_KEY_ERROR_CODE:
                raise DocumentNotFoundError(key) from exc
            logger.error("get_object failed for %s: %s", key, exc)
            raise StorageBackendError(_error_message(exc)) from exc
        except BotoCoreError as exc:
            logger.error("get_object failed for %s: %s", key, exc)
            raise StorageBackendError(_error_message(exc)) from exc
        return self._iter_body(key, response["Body"])

    def read(self, key: str) -> bytes:
        return b"".join(self.get(key))

    def list_documents(self) -> list[DocumentSummary]:
        try:
            response = self._s3.list_objects_v2(Bucket=self.bucket_name, Prefix=self.prefix)
        except (ClientError, BotoCoreError) as exc:
            logger.error("list_objects_v2 failed for prefix %s: %s", self.prefix, exc)
            raise StorageBackendError(_error_message(exc)) from exc

        if response.get("IsTruncated"):
            logger.warning("Document listing truncated after %d keys", response.get("KeyCount", 0))

        return [
            DocumentSummary(
                key=item["Key"],
                file_name=display_name(item["Key"]),
                size=int(item.get("Size", 0)),
                last_modified=_format_timestamp(item.get("LastModified")),
            )
            for item in response.get("Contents") or []
        ]

    @staticmethod
    def _iter_body(key: str, body: Any) -> Iterator[bytes]:
        try:
            for chunk in body.iter_chunks(chunk_size=DOWNLOAD_CHUNK_SIZE):
                yield chunk
        except (BotoCoreError, OSError) as exc:
            logger.error("Reading body of %s failed: %s", key, exc)
            raise StorageBackendError(str(exc)) from exc
        finally:
            body.close()
