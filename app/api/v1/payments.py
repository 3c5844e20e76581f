"""Payment API routes: Stripe intents, Razorpay orders, verification and webhooks."""

import logging

from fastapi import APIRouter, Header, Request

from app.exceptions import ValidationException
from app.models.setting import SettingCategory
from app.schemas.common import APIResponse
from app.schemas.payment import (
    CreateOrderRequest,
    CreatePaymentIntentRequest,
    VerifyPaymentRequest,
)
from app.services.payment_service import (
    construct_stripe_event,
    create_razorpay_order,
    create_stripe_payment_intent,
    validate_payment_amount,
    verify_razorpay_signature,
)
from app.services.settings_service import resolve_category
from app.utils.permissions import require_authenticated
from app.utils.request_context import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


async def _check_amount(amount: float, currency: str | None) -> str:
    if not currency:
        payment_settings = await resolve_category(SettingCategory.PAYMENTS)
        currency = payment_settings.default_currency

    if not validate_payment_amount(amount, currency):
        raise ValidationException([{
            "field": "amount",
            "message": f"Amount is below the minimum charge for {currency.upper()}",
        }])
    return currency


@router.post("/create-intent")
@require_authenticated()
async def create_intent(request: CreatePaymentIntentRequest) -> APIResponse:
    """Create a Stripe payment intent for the signed-in user."""
    currency = await _check_amount(request.amount, request.currency)

    result = await create_stripe_payment_intent(
        request.amount,
        currency,
        metadata={**request.metadata, "user_id": get_current_user_id()},
    )

    if not result.success:
        return APIResponse(status="error", message=result.error)

    return APIResponse(
        data={
            "client_secret": result.client_secret,
            "payment_intent_id": result.payment_intent_id,
        },
    )


@router.post("/create-order")
@require_authenticated()
async def create_order(request: CreateOrderRequest) -> APIResponse:
    """Create a Razorpay order for the signed-in user."""
    currency = await _check_amount(request.amount, request.currency)

    result = await create_razorpay_order(
        request.amount,
        request.receipt,
        currency,
        notes={**request.notes, "user_id": get_current_user_id()},
    )

    if not result.success:
        return APIResponse(status="error", message=result.error)

    return APIResponse(
        data={
            "order_id": result.order_id,
            "amount": result.amount,
            "currency": result.currency,
        },
    )


@router.post("/verify")
@require_authenticated()
async def verify_payment(request: VerifyPaymentRequest) -> APIResponse:
    """Verify the signature Razorpay checkout returns to the browser."""
    verified = await verify_razorpay_signature(
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
    )

    if not verified:
        logger.warning(f"Razorpay signature mismatch for order {request.razorpay_order_id}")
        return APIResponse(status="error", message="Payment verification failed")

    return APIResponse(
        data={"order_id": request.razorpay_order_id, "payment_id": request.razorpay_payment_id},
        message="Payment verified successfully",
    )


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
) -> APIResponse:
    """Receive Stripe events; the signature replaces user authentication."""
    payload = await request.body()

    event = await construct_stripe_event(payload, stripe_signature)
    if event is None:
        raise ValidationException([{"field": "Stripe-Signature", "message": "Invalid signature"}])

    logger.info(f"Stripe webhook received: {event.type} ({event.id})")
    return APIResponse(data={"received": True, "type": event.type})
