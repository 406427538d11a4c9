"""Cloudflare R2 (S3 compatible) helpers used by the blob store."""
from __future__ import annotations

import datetime as _dt
import logging
import re
import uuid
from functools import lru_cache
from typing import Optional

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from app.config import StorageConfig, get_settings

logger = logging.getLogger("ai-service")


def _storage() -> StorageConfig:
    return get_settings().storage


@lru_cache(maxsize=1)
def _session() -> boto3.session.Session:
    return boto3.session.Session()


@lru_cache(maxsize=1)
def _client() -> BaseClient:
    storage = _storage()
    if not storage.is_configured:
        raise RuntimeError("R2 storage is not configured")
    return _session().client(
        "s3",
        endpoint_url=storage.endpoint,
        aws_access_key_id=storage.access_key,
        aws_secret_access_key=storage.secret_key,
        region_name=storage.region,
    )


def get_client() -> BaseClient:
    """Return the cached boto3 client for Cloudflare R2."""

    return _client()


def make_key(folder: str, filename: str) -> str:
    folder = (folder or "uploads").strip("/ ") or "uploads"
    date_part = _dt.datetime.now(_dt.timezone.utc).strftime("%Y%m%d")
    safe_name = re.sub(r"[^0-9A-Za-z._-]", "_", filename or "asset")
    return f"{folder}/{date_part}/{uuid.uuid4().hex}/{safe_name}"


def public_url_for(key: str) -> str | None:
    base = _storage().public_base
    if not base:
        return None
    return f"{base.rstrip('/')}/{key.lstrip('/')}"


def put_bytes(key: str, data: bytes, *, content_type: str = "application/octet-stream") -> Optional[str]:
    """Upload ``data`` and return its public URL, or ``None`` on failure."""

    client = _client()
    bucket = _storage().bucket
    try:
        client.put_object(
            Bucket=bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
    except (ClientError, BotoCoreError) as exc:
        logger.warning("R2 put failed: bucket=%s key=%s err=%s", bucket, key, exc)
        return None

    return public_url_for(key)


__all__ = ["get_client", "make_key", "public_url_for", "put_bytes"]
