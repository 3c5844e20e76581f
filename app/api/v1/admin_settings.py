"""Admin API routes for platform settings and integration checks."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import ValidationException
from app.models.setting import SettingCategory
from app.schemas.common import APIResponse
from app.schemas.email import TestEmailRequest
from app.schemas.payment import TestPaymentRequest
from app.schemas.settings import CATEGORY_MODELS, CategorySettings, SettingsUpdateRequest
from app.services.email_service import EmailType, create_email_transport, get_email_service
from app.services.payment_service import check_gateway_connection
from app.services.settings_service import (
    check_email_configuration,
    check_storage_configuration,
    clear_settings_cache,
    get_resolved_settings,
)
from app.services.settings_store import MASKED, get_settings_store
from app.utils.permissions import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/settings", tags=["Admin Settings"])


def _normalize_values(model: type[CategorySettings], values: dict[str, Any]) -> dict[str, Any]:
    """Key known fields by their camelCase name and check their types.

    Unknown keys are stored as sent. The masked placeholder is passed through
    so the store can keep the existing secret.
    """
    normalized: dict[str, Any] = {}
    to_check: dict[str, Any] = {}

    for name, value in values.items():
        field_name = model.field_for_key(name)
        if field_name is None:
            normalized[name] = value
            continue

        alias = model.model_fields[field_name].alias or field_name
        normalized[alias] = value
        if value != MASKED:
            to_check[field_name] = value

    try:
        validated = model.model_validate(to_check)
    except ValidationError as e:
        raise ValidationException([
            {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ])

    for field_name in to_check:
        alias = model.model_fields[field_name].alias or field_name
        normalized[alias] = getattr(validated, field_name)

    return normalized


@router.get("")
@require_admin()
async def get_all_settings() -> APIResponse:
    """Get all settings grouped by category (secrets masked)."""
    resolved = await get_resolved_settings()

    return APIResponse(
        status="success",
        data={
            category.value: resolved.category(category).masked(MASKED)
            for category in SettingCategory
        },
    )


@router.put("")
@require_admin()
async def update_settings(
    request: SettingsUpdateRequest,
    db: AsyncSession = Depends(get_db),
) -> APIResponse:
    """Save one category's settings and drop the settings cache."""
    if not request.settings:
        raise ValidationException("No settings data provided")

    model = CATEGORY_MODELS[request.category]
    values = _normalize_values(model, request.settings)

    await get_settings_store().save_category(db, request.category, values)
    await db.commit()
    clear_settings_cache()

    resolved = await get_resolved_settings()
    return APIResponse(
        status="success",
        data=resolved.category(request.category).masked(MASKED),
        message="Settings updated successfully",
    )


@router.post("/test-email")
@require_admin()
async def test_email(request: TestEmailRequest) -> APIResponse:
    """Check the SMTP settings, verify the login and send a test email."""
    check = await check_email_configuration()
    if not check.success:
        return APIResponse(status="error", message=check.error)

    transport = await create_email_transport()
    try:
        await transport.verify()
    except Exception as e:
        logger.error(f"SMTP verification failed for {transport.host}:{transport.port}: {e}")
        return APIResponse(
            status="error",
            message="Could not connect to the SMTP server. Check settings and server logs.",
        )

    result = await get_email_service().send_email(
        request.email,
        EmailType.WELCOME,
        {"first_name": "Test", "verification_required": False},
    )

    if result.success:
        return APIResponse(status="success", message="Test email sent successfully")
    return APIResponse(
        status="error",
        message="Failed to send test email. Check settings and server logs.",
    )


@router.post("/test-storage")
@require_admin()
async def test_storage() -> APIResponse:
    """Check that the storage settings are complete for the configured provider."""
    check = await check_storage_configuration()

    if check.success:
        return APIResponse(status="success", message=check.message)
    return APIResponse(status="error", message=check.error)


@router.post("/test-payment")
@require_admin()
async def test_payment(request: TestPaymentRequest) -> APIResponse:
    """Check a payment gateway's credentials with one API call."""
    result = await check_gateway_connection(request.gateway)

    if result.success:
        return APIResponse(status="success", message=result.message)
    return APIResponse(status="error", message=result.error)
