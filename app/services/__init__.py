"""Service layer for business logic."""

from app.services.email_service import EmailQueue, EmailService, get_email_queue, get_email_service
from app.services.settings_service import SettingsResolver, get_settings_resolver
from app.services.settings_store import SettingsStore, get_settings_store
from app.services.storage_service import StorageService, get_storage_service
from app.services.upload_service import UploadService, get_upload_service

__all__ = [
    "SettingsResolver",
    "get_settings_resolver",
    "SettingsStore",
    "get_settings_store",
    "EmailService",
    "get_email_service",
    "EmailQueue",
    "get_email_queue",
    "StorageService",
    "get_storage_service",
    "UploadService",
    "get_upload_service",
]
