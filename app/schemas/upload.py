"""Upload and object storage schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class StorageKind(str, Enum):
    """Where an uploaded file ended up."""

    S3 = "S3"
    LOCAL = "LOCAL"


class UploadResult(BaseModel):
    success: bool
    url: str | None = None
    key: str | None = None
    storage: StorageKind | None = None
    error: str | None = None


class ValidationResult(BaseModel):
    valid: bool
    error: str | None = None


class StorageResult(BaseModel):
    """Outcome of a presign or delete call against object storage."""

    success: bool
    url: str | None = None
    key: str | None = None
    error: str | None = None


class ScanResult(BaseModel):
    safe: bool
    threat: str | None = None


class PresignedUrlRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., ge=0)
    context: str = "general"
    allowed_type: str | None = None


class PresignedUrlResponse(BaseModel):
    upload_url: str
    key: str
    public_url: str


class DeleteFileRequest(BaseModel):
    key: str = Field(..., min_length=1)


class UploadConfigResponse(BaseModel):
    """Upload policy exposed to clients."""

    max_file_size: int  # bytes
    max_file_size_formatted: str
    allowed_types: list[str]
    extensions: dict[str, list[str]]
    content_types: dict[str, list[str]]
    storage_provider: str
