"""File upload API routes."""

import logging

from fastapi import APIRouter, File, Form, UploadFile

from app.exceptions import ForbiddenException, ValidationException
from app.schemas.common import APIResponse
from app.schemas.upload import (
    DeleteFileRequest,
    PresignedUrlRequest,
    PresignedUrlResponse,
    UploadConfigResponse,
)
from app.services.storage_service import get_bucket_name, get_region, get_storage_service, public_url
from app.services.upload_service import (
    AllowedType,
    UploadCategory,
    UploadedFile,
    allowed_type_for_content_type,
    category_for_context,
    generate_file_path,
    get_upload_service,
    is_valid_key,
    key_belongs_to_user,
    scan_file_content,
    validate_file,
)
from app.utils.permissions import require_authenticated
from app.utils.request_context import get_current_user_id, is_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])


def _parse_category(category: str | None, context: str | None) -> UploadCategory:
    """Accept a category value (``profile-pictures``) or name (``PROFILE_PICTURES``).

    Without a category the upload widget's context picks one.
    """
    if not category:
        return category_for_context(context)

    try:
        return UploadCategory(category.lower())
    except ValueError:
        pass
    try:
        return UploadCategory[category.upper()]
    except KeyError:
        raise ValidationException([{
            "field": "category",
            "message": f"Invalid category. Must be one of: {', '.join(c.value for c in UploadCategory)}",
        }])


def _parse_allowed_type(allowed_type: str | None, content_type: str) -> AllowedType:
    if not allowed_type:
        return allowed_type_for_content_type(content_type)
    try:
        return AllowedType(allowed_type.lower())
    except ValueError:
        raise ValidationException([{
            "field": "allowed_type",
            "message": f"Invalid file type. Must be one of: {', '.join(t.value for t in AllowedType)}",
        }])


@router.get("/config", response_model=APIResponse[UploadConfigResponse])
@require_authenticated()
async def get_upload_config():
    """Get the upload size and type policy."""
    config = await get_upload_service().get_upload_config()
    return APIResponse(data=config)


@router.post("")
@require_authenticated()
async def upload_file(
    file: UploadFile = File(...),
    category: str | None = Form(None),
    allowed_type: str | None = Form(None),
    context: str | None = Form(None),
) -> APIResponse:
    """Upload a file to S3, or to local storage when S3 is unavailable.

    Args:
        file: The file to upload
        category: Upload category (e.g. profile-pictures)
        allowed_type: image, video, document or audio; inferred from the content type if omitted
        context: Upload widget context, used when no category is given
    """
    content_type = file.content_type or "application/octet-stream"
    upload_category = _parse_category(category, context)
    file_kind = _parse_allowed_type(allowed_type, content_type)

    content = await file.read()

    scan = scan_file_content(content)
    if not scan.safe:
        raise ValidationException([{"field": "file", "message": f"File rejected: {scan.threat}"}])

    result = await get_upload_service().upload_file(
        UploadedFile(
            content=content,
            filename=file.filename or "unnamed_file",
            content_type=content_type,
        ),
        upload_category,
        get_current_user_id(),
        allowed_type=file_kind,
    )

    if not result.success:
        return APIResponse(status="error", message=result.error)

    return APIResponse(
        data={
            "url": result.url,
            "key": result.key,
            "name": file.filename,
            "size": len(content),
            "type": content_type,
            "category": upload_category.value,
            "storage": result.storage,
        },
        message=f"File uploaded successfully to {result.storage.value} storage",
    )


@router.post("/presigned-url", response_model=APIResponse[PresignedUrlResponse])
@require_authenticated()
async def create_presigned_url(request: PresignedUrlRequest):
    """Get a presigned S3 URL for a direct browser upload."""
    upload_category = _parse_category(None, request.context)
    file_kind = _parse_allowed_type(request.allowed_type, request.content_type)

    validation = await validate_file(
        UploadedFile(
            content=b"",
            filename=request.filename,
            content_type=request.content_type,
            size=request.size,
        ),
        file_kind,
    )
    if not validation.valid:
        return APIResponse(status="error", message=validation.error)

    key = generate_file_path(upload_category, get_current_user_id(), request.filename)
    result = await get_storage_service().generate_upload_url(key, request.content_type)
    if not result.success:
        return APIResponse(status="error", message="Direct uploads require S3 storage")

    return APIResponse(
        data=PresignedUrlResponse(
            upload_url=result.url,
            key=key,
            public_url=public_url(await get_bucket_name(), await get_region(), key),
        ),
    )


@router.delete("")
@require_authenticated()
async def delete_file(request: DeleteFileRequest) -> APIResponse:
    """Delete an uploaded file. Users may delete only their own files; admins any."""
    if not is_valid_key(request.key):
        raise ValidationException([{"field": "key", "message": "Invalid file key"}])

    if not is_admin() and not key_belongs_to_user(request.key, get_current_user_id()):
        raise ForbiddenException("You can only delete your own files")

    result = await get_upload_service().delete_file(request.key)
    if not result.success:
        return APIResponse(status="error", message=result.error)

    return APIResponse(message="File deleted successfully")
