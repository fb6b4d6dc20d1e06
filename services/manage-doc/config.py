"""
Environment configuration and logging for the manage-doc Lambda.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

US_EAST_1_REGION = "us-" + "east-1"
DEFAULT_REGION = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or US_EAST_1_REGION
BUCKET_NAME = os.environ.get("BUCKET_NAME", "")
DOCUMENTS_PREFIX = os.environ.get("DOCUMENTS_PREFIX", "documents/")
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger()
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))


def _coerce_positive_int(raw: str | None, default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer MAX_UPLOAD_BYTES=%r", raw)
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    region: str
    bucket_name: str
    documents_prefix: str = "documents/"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            region=os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            bucket_name=os.environ.get("BUCKET_NAME", BUCKET_NAME),
            documents_prefix=os.environ.get("DOCUMENTS_PREFIX", DOCUMENTS_PREFIX) or "documents/",
            max_upload_bytes=_coerce_positive_int(os.environ.get("MAX_UPLOAD_BYTES"), DEFAULT_MAX_UPLOAD_BYTES),
        )
