"""S3-compatible object storage (Cloudflare R2) for picture files."""

import logging
import os
import urllib.parse
import uuid
from typing import Any

import boto3
import botocore.exceptions

from .. import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = 'picture'


def object_key(value: str | None) -> str | None:
    """Object key for a stored value.

    Values are either bare keys or absolute URLs; the key of a URL is its path
    without the leading slash.
    """
    if not value or not value.strip():
        return None
    value = value.strip()
    if value.startswith(('http://', 'https://')):
        path = urllib.parse.urlparse(value).path.lstrip('/')
        return urllib.parse.unquote(path) or None
    return value.lstrip('/') or None


def new_key(filename: str | None) -> str:
    """Generated key for an upload, keeping the file extension."""
    extension = os.path.splitext(filename or '')[1].lower()
    return f'{KEY_PREFIX}/{uuid.uuid4()}{extension}'


class ObjectStorage:
    """Puts and deletes objects in one bucket."""

    def __init__(self, client: Any, bucket: str, public_base_url: str = '') -> None:
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url

    @classmethod
    def from_settings(cls) -> 'ObjectStorage':
        client = boto3.client(
            's3',
            endpoint_url=settings.R2_ENDPOINT_URL,
            aws_access_key_id=settings.R2_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY or None,
            region_name='auto',
        )
        return cls(client, settings.R2_BUCKET_NAME, settings.BUCKET_URL)

    def public_url(self, value: str | None) -> str | None:
        """Public URL for a key; absolute URLs are returned unchanged."""
        if not value:
            return None
        if value.startswith(('http://', 'https://')):
            return value
        key = value.lstrip('/')
        if not self.public_base_url:
            return key
        return f'{self.public_base_url.rstrip("/")}/{key}'

    def put(self, key: str, body: bytes, content_type: str | None = None) -> str:
        """Store ``body`` under ``key``; storage errors propagate."""
        extra: dict[str, str] = {}
        if content_type:
            extra['ContentType'] = content_type
        self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)
        logger.info('Stored object %s (%d bytes)', key, len(body))
        return key

    def delete(self, value: str | None) -> bool:
        """Delete the object behind a key or URL; never raises."""
        key = object_key(value)
        if key is None:
            return False
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError):
            logger.warning('Failed to delete object %s', key, exc_info=True)
            return False
        logger.info('Deleted object %s', key)
        return True


def get_storage() -> ObjectStorage:
    """Dependency returning storage configured from settings."""
    return ObjectStorage.from_settings()
