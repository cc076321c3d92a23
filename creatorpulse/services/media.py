"""Post media in S3-compatible object storage.

boto3 is synchronous; calls are pushed to a worker thread so they do not
block the event loop.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from creatorpulse.core.config import settings
from creatorpulse.core.exceptions import AdapterError

logger = logging.getLogger(__name__)

DEFAULT_URL_EXPIRY_SECONDS = 3600


@lru_cache(maxsize=1)
def get_s3_client():
    return boto3.client(
        "s3",
        region_name=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
    )


async def download_image(path: str) -> bytes:
    def _get() -> bytes:
        obj = get_s3_client().get_object(Bucket=settings.s3_bucket, Key=path)
        return obj["Body"].read()

    try:
        return await asyncio.to_thread(_get)
    except (BotoCoreError, ClientError) as exc:
        raise AdapterError("storage", f"Media download failed for {path}: {exc}") from exc


async def upload_image(owner: int | str, data: bytes, extension: str, content_type: str) -> str:
    """Store user media and return its storage key."""
    key = f"{owner}/{uuid.uuid4()}.{extension.lstrip('.') or 'jpg'}"

    def _put() -> None:
        get_s3_client().put_object(
            Bucket=settings.s3_bucket, Key=key, Body=data, ContentType=content_type
        )

    try:
        await asyncio.to_thread(_put)
    except (BotoCoreError, ClientError) as exc:
        raise AdapterError("storage", f"Media upload failed: {exc}") from exc
    return key


async def delete_image(path: str) -> None:
    def _delete() -> None:
        get_s3_client().delete_object(Bucket=settings.s3_bucket, Key=path)

    try:
        await asyncio.to_thread(_delete)
    except (BotoCoreError, ClientError) as exc:
        raise AdapterError("storage", f"Media delete failed for {path}: {exc}") from exc


async def signed_url(path: str, expires_in: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
    def _sign() -> str:
        return get_s3_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.s3_bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    return await asyncio.to_thread(_sign)


async def cleanup_media(paths: list[str]) -> int:
    """Best-effort removal of published source media. Returns the number deleted.

    Failures are logged and never raised: the publish already succeeded.
    """
    deleted = 0
    for path in paths:
        try:
            await delete_image(path)
            deleted += 1
        except AdapterError:
            logger.warning("Media cleanup failed for %s; object left in storage", path, exc_info=True)
    return deleted


async def list_media_older_than(cutoff: datetime) -> list[str]:
    """Keys of every stored object last modified before ``cutoff``."""

    def _list() -> list[str]:
        paginator = get_s3_client().get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=settings.s3_bucket):
            for obj in page.get("Contents", []):
                if obj["LastModified"] < cutoff:
                    keys.append(obj["Key"])
        return keys

    try:
        return await asyncio.to_thread(_list)
    except (BotoCoreError, ClientError) as exc:
        raise AdapterError("storage", f"Media listing failed: {exc}") from exc
