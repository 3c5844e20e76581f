"""S3-compatible object storage built from resolved storage settings."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings
from app.exceptions import StorageNotConfiguredError
from app.models.setting import SettingCategory
from app.schemas.settings import DEFAULT_AWS_REGION
from app.schemas.upload import StorageResult
from app.services.settings_service import resolve_category

logger = logging.getLogger(__name__)

PRESIGNED_URL_EXPIRY = 3600  # seconds


async def create_storage_client() -> BaseClient | None:
    """Create an S3 client, or None if object storage is not the provider or lacks credentials."""
    storage_settings = await resolve_category(SettingCategory.STORAGE)
    env = get_settings()

    access_key_id = storage_settings.aws_access_key_id or env.aws_access_key_id
    secret_access_key = storage_settings.aws_secret_access_key or env.aws_secret_access_key
    region = storage_settings.aws_region or env.aws_region or DEFAULT_AWS_REGION

    if not storage_settings.uses_object_storage or not access_key_id or not secret_access_key:
        return None

    return boto3.client(
        "s3",
        region_name=region,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=Config(signature_version="s3v4"),
    )


async def get_bucket_name() -> str:
    storage_settings = await resolve_category(SettingCategory.STORAGE)
    return storage_settings.aws_s3_bucket or get_settings().aws_s3_bucket


async def get_region() -> str:
    storage_settings = await resolve_category(SettingCategory.STORAGE)
    return storage_settings.aws_region or get_settings().aws_region or DEFAULT_AWS_REGION


def public_url(bucket: str, region: str, key: str) -> str:
    """Public virtual-hosted URL of an object."""
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


class StorageService:
    """Object storage operations.

    ``put_object`` raises so the upload pipeline can fall back to local disk;
    the presign and delete helpers return a ``StorageResult`` instead.
    """

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[BaseClient | None]] = create_storage_client,
    ):
        self._client_factory = client_factory

    async def _client_and_bucket(self) -> tuple[BaseClient, str]:
        client = await self._client_factory()
        if client is None:
            raise StorageNotConfiguredError()

        bucket = await get_bucket_name()
        if not bucket:
            raise StorageNotConfiguredError("S3 bucket not configured")

        return client, bucket

    async def put_object(
        self,
        key: str,
        content: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Upload bytes under ``key`` and return the object's public URL.

        Raises:
            StorageNotConfiguredError: If S3 is disabled or has no bucket
            ClientError: If S3 rejects the request
        """
        client, bucket = await self._client_and_bucket()

        await asyncio.to_thread(
            client.put_object,
            Bucket=bucket,
            Key=key,
            Body=content,
            ContentType=content_type,
            Metadata=metadata or {},
        )

        return public_url(bucket, await get_region(), key)

    async def _presign(self, method: str, key: str, params: dict[str, Any], expires_in: int) -> str:
        client, bucket = await self._client_and_bucket()
        return await asyncio.to_thread(
            client.generate_presigned_url,
            method,
            Params={"Bucket": bucket, "Key": key, **params},
            ExpiresIn=expires_in,
        )

    async def generate_upload_url(
        self,
        key: str,
        content_type: str,
        expires_in: int = PRESIGNED_URL_EXPIRY,
    ) -> StorageResult:
        """Presigned PUT URL for direct uploads from the browser."""
        try:
            url = await self._presign("put_object", key, {"ContentType": content_type}, expires_in)
            return StorageResult(success=True, url=url, key=key)
        except (StorageNotConfiguredError, BotoCoreError, ClientError) as e:
            logger.error(f"Presigned upload URL generation failed for {key}: {e}")
            return StorageResult(success=False, error="Failed to generate presigned URL")

    async def generate_download_url(
        self,
        key: str,
        expires_in: int = PRESIGNED_URL_EXPIRY,
    ) -> StorageResult:
        try:
            url = await self._presign("get_object", key, {}, expires_in)
            return StorageResult(success=True, url=url, key=key)
        except (StorageNotConfiguredError, BotoCoreError, ClientError) as e:
            logger.error(f"Download URL generation failed for {key}: {e}")
            return StorageResult(success=False, error="Failed to generate download URL")

    async def delete_object(self, key: str) -> StorageResult:
        try:
            client, bucket = await self._client_and_bucket()
            await asyncio.to_thread(client.delete_object, Bucket=bucket, Key=key)
            logger.info(f"Deleted s3://{bucket}/{key}")
            return StorageResult(success=True, key=key)
        except (StorageNotConfiguredError, BotoCoreError, ClientError) as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            return StorageResult(success=False, error="Failed to delete file from S3")


# Singleton instance
_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """Get the storage service singleton."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
