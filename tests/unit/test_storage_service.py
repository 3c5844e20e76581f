"""Test the S3 client factory and object storage operations"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from app.exceptions import StorageNotConfiguredError
from app.services.storage_service import (
    StorageService,
    create_storage_client,
    get_bucket_name,
    public_url,
)


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://mybucket.s3.amazonaws.com/presigned"
    return client


@pytest.fixture
def storage(s3_client, settings_store):
    settings_store.set("storage_awsS3Bucket", "mybucket")
    settings_store.set("storage_awsRegion", "ap-south-1")
    return StorageService(client_factory=AsyncMock(return_value=s3_client))


async def test_no_client_without_credentials():
    assert await create_storage_client() is None


async def test_no_client_for_local_provider(settings_store):
    settings_store.set("storage_provider", "local")
    settings_store.set("storage_awsAccessKeyId", "AKIATEST")
    settings_store.set("storage_awsSecretAccessKey", "secret")

    assert await create_storage_client() is None


async def test_client_from_settings(settings_store):
    settings_store.set("storage_provider", "s3")
    settings_store.set("storage_awsAccessKeyId", "AKIATEST")
    settings_store.set("storage_awsSecretAccessKey", "secret")
    settings_store.set("storage_awsRegion", "eu-west-2")

    client = await create_storage_client()

    assert client is not None
    assert client.meta.region_name == "eu-west-2"


async def test_client_from_environment_when_store_is_down(settings_store, env):
    env("AWS_ACCESS_KEY_ID", "AKIAENV")
    env("AWS_SECRET_ACCESS_KEY", "env-secret")
    settings_store.fail = True

    client = await create_storage_client()

    assert client is not None
    assert client.meta.region_name == "us-east-1"


async def test_bucket_name_falls_back_to_environment(env):
    env("AWS_S3_BUCKET", "env-bucket")

    assert await get_bucket_name() == "env-bucket"


def test_public_url():
    assert public_url("mybucket", "ap-south-1", "blog/images/1-a.jpg") == (
        "https://mybucket.s3.ap-south-1.amazonaws.com/blog/images/1-a.jpg"
    )


async def test_put_object(storage, s3_client):
    url = await storage.put_object("documents/u1/1-a.pdf", b"%PDF", "application/pdf", {"user-id": "u1"})

    assert url == "https://mybucket.s3.ap-south-1.amazonaws.com/documents/u1/1-a.pdf"
    s3_client.put_object.assert_called_once_with(
        Bucket="mybucket",
        Key="documents/u1/1-a.pdf",
        Body=b"%PDF",
        ContentType="application/pdf",
        Metadata={"user-id": "u1"},
    )


async def test_put_object_raises_when_not_configured():
    storage = StorageService(client_factory=AsyncMock(return_value=None))

    with pytest.raises(StorageNotConfiguredError):
        await storage.put_object("k", b"x", "text/plain")


async def test_put_object_requires_bucket(s3_client):
    storage = StorageService(client_factory=AsyncMock(return_value=s3_client))

    with pytest.raises(StorageNotConfiguredError, match="bucket"):
        await storage.put_object("k", b"x", "text/plain")


async def test_presigned_urls(storage, s3_client):
    upload = await storage.generate_upload_url("blog/images/1-a.jpg", "image/jpeg", expires_in=600)
    download = await storage.generate_download_url("blog/images/1-a.jpg")

    assert upload.success and upload.url == "https://mybucket.s3.amazonaws.com/presigned"
    assert download.success
    s3_client.generate_presigned_url.assert_any_call(
        "put_object",
        Params={"Bucket": "mybucket", "Key": "blog/images/1-a.jpg", "ContentType": "image/jpeg"},
        ExpiresIn=600,
    )


async def test_presign_without_storage_returns_error():
    storage = StorageService(client_factory=AsyncMock(return_value=None))

    result = await storage.generate_upload_url("k", "image/png")

    assert not result.success
    assert result.error == "Failed to generate presigned URL"


async def test_delete_object_failure_is_returned(storage, s3_client):
    s3_client.delete_object.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "DeleteObject"
    )

    result = await storage.delete_object("documents/u1/1-a.pdf")

    assert not result.success
    assert result.error == "Failed to delete file from S3"
