"""Public settings API routes (no authentication)."""

from fastapi import APIRouter

from app.schemas.common import APIResponse
from app.services.settings_service import get_settings_resolver

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/public")
async def get_public_settings() -> APIResponse:
    """Site identity, branding, analytics ids and checkout options.

    Served from defaults when the settings store is unavailable.
    """
    resolved = await get_settings_resolver().get_settings_or_defaults()
    payments = resolved.payments

    return APIResponse(
        status="success",
        data={
            "general": resolved.general.model_dump(by_alias=True),
            "branding": resolved.branding.model_dump(by_alias=True),
            "analytics": {
                "googleAnalyticsId": resolved.integrations.google_analytics_id,
                "facebookPixelId": resolved.integrations.facebook_pixel_id,
            },
            "payments": {
                "defaultCurrency": payments.default_currency,
                "enableRazorpay": payments.enable_razorpay,
                "enableStripe": payments.enable_stripe,
                "enablePaypal": payments.enable_paypal,
                "razorpayKeyId": payments.razorpay_key_id if payments.enable_razorpay else "",
                "stripePublicKey": payments.stripe_public_key if payments.enable_stripe else "",
                "paypalClientId": payments.paypal_client_id if payments.enable_paypal else "",
            },
        },
    )
