"""Pydantic schemas for request/response validation."""

from app.schemas.common import APIResponse, ErrorDetail
from app.schemas.email import BulkEmailResult, EmailAttachment, EmailResult, TestEmailRequest
from app.schemas.payment import (
    CreateOrderRequest,
    CreatePaymentIntentRequest,
    PaymentIntentResult,
    PaymentMethod,
    PaymentOrderResult,
    PaymentStatus,
    RefundResult,
    TestPaymentRequest,
    VerifyPaymentRequest,
)
from app.schemas.settings import (
    CATEGORY_MODELS,
    ConfigCheckResult,
    ResolvedSettings,
    SettingsUpdateRequest,
)
from app.schemas.upload import (
    DeleteFileRequest,
    PresignedUrlRequest,
    PresignedUrlResponse,
    StorageKind,
    UploadConfigResponse,
    UploadResult,
)

__all__ = [
    # Common
    "APIResponse",
    "ErrorDetail",
    # Settings
    "CATEGORY_MODELS",
    "ConfigCheckResult",
    "ResolvedSettings",
    "SettingsUpdateRequest",
    # Email
    "EmailAttachment",
    "EmailResult",
    "BulkEmailResult",
    "TestEmailRequest",
    # Payments
    "PaymentMethod",
    "PaymentStatus",
    "PaymentIntentResult",
    "PaymentOrderResult",
    "RefundResult",
    "CreatePaymentIntentRequest",
    "CreateOrderRequest",
    "VerifyPaymentRequest",
    "TestPaymentRequest",
    # Upload
    "StorageKind",
    "UploadResult",
    "PresignedUrlRequest",
    "PresignedUrlResponse",
    "DeleteFileRequest",
    "UploadConfigResponse",
]
