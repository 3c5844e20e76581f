"""Upload pipeline: validate, then store in S3 with local disk as the fallback."""

import asyncio
import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from app.config import get_settings
from app.exceptions import SettingsUnavailableError
from app.models.setting import SettingCategory
from app.schemas.upload import (
    ScanResult,
    StorageKind,
    StorageResult,
    UploadConfigResponse,
    UploadResult,
    ValidationResult,
)
from app.services.settings_service import get_storage_settings, resolve_category
from app.services.storage_service import StorageService, get_storage_service

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class AllowedType(str, Enum):
    """Kinds of file an upload may be restricted to."""

    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"


@dataclass(frozen=True)
class FileTypeRule:
    extensions: tuple[str, ...]
    max_size: int  # bytes, used only when settings are unavailable
    content_types: tuple[str, ...]


FILE_TYPES: dict[AllowedType, FileTypeRule] = {
    AllowedType.IMAGE: FileTypeRule(
        extensions=(".jpg", ".jpeg", ".png", ".gif", ".webp"),
        max_size=5 * MB,
        content_types=("image/jpeg", "image/png", "image/gif", "image/webp"),
    ),
    AllowedType.VIDEO: FileTypeRule(
        extensions=(".mp4", ".avi", ".mov", ".wmv", ".flv"),
        max_size=100 * MB,
        content_types=("video/mp4", "video/avi", "video/quicktime", "video/x-ms-wmv"),
    ),
    AllowedType.DOCUMENT: FileTypeRule(
        extensions=(".pdf", ".doc", ".docx", ".txt", ".rtf"),
        max_size=10 * MB,
        content_types=(
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "text/plain",
            "application/rtf",
        ),
    ),
    AllowedType.AUDIO: FileTypeRule(
        extensions=(".mp3", ".wav", ".m4a", ".ogg"),
        max_size=20 * MB,
        content_types=("audio/mpeg", "audio/wav", "audio/mp4", "audio/ogg"),
    ),
}


class UploadCategory(str, Enum):
    PROFILE_PICTURES = "profile-pictures"
    COURSE_THUMBNAILS = "course-thumbnails"
    COURSE_CONTENT = "course-content"
    TEST_AUDIO = "test-audio"
    TEST_IMAGES = "test-images"
    BLOG_IMAGES = "blog-images"
    TESTIMONIAL_IMAGES = "testimonial-images"
    DOCUMENTS = "documents"
    CERTIFICATES = "certificates"
    HERO_SLIDES = "hero-slides"


# Key folder per category; {user_id} namespaces files owned by one user
CATEGORY_FOLDERS: dict[UploadCategory, str] = {
    UploadCategory.PROFILE_PICTURES: "users/{user_id}/profile",
    UploadCategory.COURSE_THUMBNAILS: "courses/thumbnails",
    UploadCategory.COURSE_CONTENT: "courses/content/{user_id}",
    UploadCategory.TEST_AUDIO: "tests/audio",
    UploadCategory.TEST_IMAGES: "tests/images",
    UploadCategory.BLOG_IMAGES: "blog/images",
    UploadCategory.TESTIMONIAL_IMAGES: "testimonials",
    UploadCategory.DOCUMENTS: "documents/{user_id}",
    UploadCategory.CERTIFICATES: "certificates/{user_id}",
    UploadCategory.HERO_SLIDES: "hero-slides",
}

# Upload widget context -> category
CONTEXT_CATEGORY_MAP: dict[str, UploadCategory] = {
    "courses": UploadCategory.COURSE_THUMBNAILS,
    "course-thumbnail": UploadCategory.COURSE_THUMBNAILS,
    "course-thumbnails": UploadCategory.COURSE_THUMBNAILS,
    "course-content": UploadCategory.COURSE_CONTENT,
    "course-video": UploadCategory.COURSE_CONTENT,
    "course-material": UploadCategory.COURSE_CONTENT,
    "hero-slides": UploadCategory.HERO_SLIDES,
    "blog": UploadCategory.BLOG_IMAGES,
    "testimonials": UploadCategory.TESTIMONIAL_IMAGES,
    "profile": UploadCategory.PROFILE_PICTURES,
    "documents": UploadCategory.DOCUMENTS,
    "certificates": UploadCategory.CERTIFICATES,
    "universities": UploadCategory.BLOG_IMAGES,
    "programs": UploadCategory.BLOG_IMAGES,
}

SUSPICIOUS_PATTERNS = ("#!/bin/sh", "#!/bin/bash", "<script")

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9_-]")


@dataclass
class UploadedFile:
    """A file received for upload. ``size`` defaults to the content length."""

    content: bytes
    filename: str
    content_type: str
    size: int | None = None

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.content)

    @property
    def extension(self) -> str:
        return get_extension(self.filename)


def get_extension(filename: str | None) -> str:
    """Get file extension including the dot."""
    if not filename or "." not in filename:
        return ""
    return "." + filename.rsplit(".", 1)[-1].lower()


def category_for_context(context: str | None) -> UploadCategory:
    return CONTEXT_CATEGORY_MAP.get(context or "", UploadCategory.COURSE_THUMBNAILS)


def allowed_type_for_content_type(content_type: str) -> AllowedType:
    """Infer the file kind from a MIME type (anything unknown is a document)."""
    for prefix, allowed_type in (
        ("image/", AllowedType.IMAGE),
        ("video/", AllowedType.VIDEO),
        ("audio/", AllowedType.AUDIO),
    ):
        if content_type.startswith(prefix):
            return allowed_type
    return AllowedType.DOCUMENT


def generate_file_path(category: UploadCategory, user_id: str, filename: str) -> str:
    """Generate a unique storage key: ``{folder}/{timestamp_ms}-{random}{ext}``.

    Two uploads of the same file always get different keys.
    """
    timestamp = int(time.time() * 1000)
    random_id = secrets.token_hex(6)
    extension = re.sub(r"[^a-z0-9.]", "", get_extension(filename))

    folder = CATEGORY_FOLDERS.get(category, "uploads").format(
        user_id=_UNSAFE_PATH_CHARS.sub("_", str(user_id)),
    )
    return f"{folder}/{timestamp}-{random_id}{extension}"


def is_valid_key(key: str) -> bool:
    """Whether ``key`` is a relative storage key with no empty, ``.`` or ``..`` segments."""
    if not key or key.startswith("/") or "\\" in key:
        return False
    return all(part not in ("", ".", "..") for part in key.split("/"))


def user_folders(user_id: str) -> list[str]:
    """Key prefixes of the per-user folders that ``generate_file_path`` writes to."""
    safe_user_id = _UNSAFE_PATH_CHARS.sub("_", str(user_id))
    return [
        folder.format(user_id=safe_user_id) + "/"
        for folder in CATEGORY_FOLDERS.values()
        if "{user_id}" in folder
    ]


def key_belongs_to_user(key: str, user_id: str) -> bool:
    return is_valid_key(key) and any(key.startswith(folder) for folder in user_folders(user_id))


def _check_type(file: UploadedFile, rule: FileTypeRule) -> ValidationResult | None:
    if file.content_type not in rule.content_types:
        return ValidationResult(
            valid=False,
            error=(
                f"File type {file.content_type} is not allowed. "
                f"Allowed types: {', '.join(rule.content_types)}"
            ),
        )

    if file.extension not in rule.extensions:
        return ValidationResult(
            valid=False,
            error=(
                f"File extension {file.extension or '(none)'} is not allowed. "
                f"Allowed extensions: {', '.join(rule.extensions)}"
            ),
        )

    return None


def validate_file_static(file: UploadedFile, allowed_type: AllowedType) -> ValidationResult:
    """Validate against the built-in per-kind limits."""
    rule = FILE_TYPES[allowed_type]

    if file.size > rule.max_size:
        return ValidationResult(
            valid=False,
            error=f"File size exceeds {rule.max_size // MB}MB limit",
        )

    return _check_type(file, rule) or ValidationResult(valid=True)


async def validate_file(file: UploadedFile, allowed_type: AllowedType) -> ValidationResult:
    """Validate a file against the admin storage policy.

    Falls back to the built-in limits when settings cannot be loaded.
    """
    try:
        storage_settings = await get_storage_settings()
    except SettingsUnavailableError:
        logger.warning("Storage settings unavailable, validating upload with static rules")
        return validate_file_static(file, allowed_type)

    allowed_types = storage_settings.allowed_types or [t.value for t in AllowedType]
    if allowed_type.value not in allowed_types:
        return ValidationResult(
            valid=False,
            error=(
                f"File type {allowed_type.value} is not allowed. "
                f"Allowed types: {', '.join(allowed_types)}"
            ),
        )

    if file.size > storage_settings.max_file_size_bytes:
        return ValidationResult(
            valid=False,
            error=f"File size exceeds {storage_settings.max_file_size:g}MB limit",
        )

    return _check_type(file, FILE_TYPES[allowed_type]) or ValidationResult(valid=True)


def scan_file_content(content: bytes) -> ScanResult:
    """Basic check of the first KB for executables and scripts."""
    head = content[:1024].decode("latin-1")

    if head.startswith("MZ"):
        return ScanResult(safe=False, threat="Suspicious file content detected")

    lowered = head.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern in lowered:
            return ScanResult(safe=False, threat="Suspicious file content detected")

    return ScanResult(safe=True)


def format_file_size(size: int) -> str:
    """Human-readable file size, e.g. ``1.5 MB``."""
    if size == 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1

    return f"{round(value, 2):g} {units[index]}"


class LocalStorage:
    """Writes uploads under the public assets directory."""

    def __init__(self, root: Path | str | None = None, url_prefix: str | None = None):
        settings = get_settings()
        self.root = Path(root or settings.upload_root)
        self.url_prefix = (url_prefix or settings.upload_url_prefix).rstrip("/")

    def path_for(self, key: str) -> Path:
        if not is_valid_key(key):
            raise ValueError(f"Invalid upload key: {key}")
        root = self.root.resolve()
        path = (root / key).resolve()
        if not path.is_relative_to(root):
            raise ValueError(f"Upload key escapes the upload root: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def save(self, key: str, content: bytes) -> str:
        """Write the file and return its public URL.

        Raises:
            OSError: If the directory or file cannot be written
        """
        await asyncio.to_thread(self._write, self.path_for(key), content)
        return self.url_for(key)

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.is_file():
            return False
        await asyncio.to_thread(path.unlink)
        return True


class UploadService:
    """Validates uploads and stores them in S3, falling back to local disk."""

    def __init__(
        self,
        storage: StorageService | None = None,
        local_storage: LocalStorage | None = None,
    ):
        self._storage = storage
        self._local_storage = local_storage

    @property
    def storage(self) -> StorageService:
        return self._storage or get_storage_service()

    @property
    def local_storage(self) -> LocalStorage:
        if self._local_storage is None:
            self._local_storage = LocalStorage()
        return self._local_storage

    async def primary_storage_configured(self) -> bool:
        """Whether S3 is the provider and access key, secret and bucket are all set."""
        storage_settings = await resolve_category(SettingCategory.STORAGE)
        return bool(
            storage_settings.uses_object_storage
            and storage_settings.aws_access_key_id
            and storage_settings.aws_secret_access_key
            and storage_settings.aws_s3_bucket
        )

    async def upload_file(
        self,
        file: UploadedFile,
        category: UploadCategory,
        user_id: str,
        allowed_type: AllowedType | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Validate and store a file.

        S3 is tried once when configured; any failure there falls through to
        local storage. Validation failures return before either is touched.
        """
        allowed_type = allowed_type or allowed_type_for_content_type(file.content_type)
        validation = await validate_file(file, allowed_type)
        if not validation.valid:
            return UploadResult(success=False, error=validation.error)

        key = generate_file_path(category, user_id, file.filename)

        if await self.primary_storage_configured():
            try:
                url = await self.storage.put_object(
                    key,
                    file.content,
                    file.content_type,
                    metadata={
                        "original-name": file.filename.encode("ascii", "ignore").decode(),
                        "user-id": str(user_id),
                        "category": category.value,
                        "uploaded-at": datetime.now(timezone.utc).isoformat(),
                        **(metadata or {}),
                    },
                )
                logger.info(f"Uploaded {key} to S3")
                return UploadResult(success=True, url=url, key=key, storage=StorageKind.S3)
            except Exception as e:
                logger.warning(f"S3 upload failed, falling back to local storage: {e}")
        else:
            logger.info("S3 not configured, using local storage")

        try:
            url = await self.local_storage.save(key, file.content)
        except (OSError, ValueError) as e:
            logger.error(f"Local upload failed for {key}: {e}")
            return UploadResult(success=False, error="Failed to upload file to local storage")

        logger.info(f"Uploaded {key} to local storage")
        return UploadResult(success=True, url=url, key=key, storage=StorageKind.LOCAL)

    async def delete_file(self, key: str) -> StorageResult:
        """Delete an uploaded file from S3 or, failing that, from local storage."""
        if not is_valid_key(key):
            return StorageResult(success=False, error="Invalid file key")

        if await self.primary_storage_configured():
            result = await self.storage.delete_object(key)
            if result.success:
                return result

        try:
            deleted = await self.local_storage.delete(key)
        except (OSError, ValueError) as e:
            logger.error(f"Local delete failed for {key}: {e}")
            return StorageResult(success=False, error="Failed to delete file")

        if not deleted:
            return StorageResult(success=False, error="File not found")

        logger.info(f"Deleted {key} from local storage")
        return StorageResult(success=True, key=key)

    async def get_upload_config(self) -> UploadConfigResponse:
        """Upload policy for clients, from the resolved storage settings."""
        storage_settings = await resolve_category(SettingCategory.STORAGE)
        allowed = [t for t in AllowedType if t.value in storage_settings.allowed_types]

        return UploadConfigResponse(
            max_file_size=storage_settings.max_file_size_bytes,
            max_file_size_formatted=format_file_size(storage_settings.max_file_size_bytes),
            allowed_types=[t.value for t in allowed],
            extensions={t.value: list(FILE_TYPES[t].extensions) for t in allowed},
            content_types={t.value: list(FILE_TYPES[t].content_types) for t in allowed},
            storage_provider=storage_settings.provider,
        )


# Singleton instance
_upload_service: UploadService | None = None


def get_upload_service() -> UploadService:
    """Get the upload service singleton."""
    global _upload_service
    if _upload_service is None:
        _upload_service = UploadService()
    return _upload_service
