"""Payment gateway clients (Stripe, Razorpay) built from resolved settings.

Client factories return None when a gateway is disabled or has no
credentials; every operation turns that into a "not configured" result
instead of raising.
"""

import asyncio
import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import razorpay
import stripe

from app.config import get_settings
from app.models.setting import SettingCategory
from app.schemas.payment import (
    PaymentFetchResult,
    PaymentIntentResult,
    PaymentMethod,
    PaymentOrderResult,
    RefundResult,
)
from app.schemas.settings import ConfigCheckResult, PaymentSettings
from app.services.settings_service import check_payment_configuration, resolve_category

logger = logging.getLogger(__name__)

# Minimum charge per currency accepted by the gateways
MINIMUM_AMOUNTS = {
    "USD": 0.50,
    "EUR": 0.50,
    "GBP": 0.30,
    "INR": 1.00,
}


async def _payment_settings() -> PaymentSettings:
    return await resolve_category(SettingCategory.PAYMENTS)


def to_minor_units(amount: float) -> int:
    """Convert an amount to the smallest currency unit (cents, paise)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


async def create_stripe_client() -> stripe.StripeClient | None:
    """Create a Stripe client, or None if Stripe is disabled or has no secret key."""
    payment_settings = await _payment_settings()
    secret_key = payment_settings.stripe_secret_key or get_settings().stripe_secret_key

    if not payment_settings.enable_stripe or not secret_key:
        return None

    return stripe.StripeClient(secret_key)


async def create_razorpay_client() -> razorpay.Client | None:
    """Create a Razorpay client, or None if Razorpay is disabled or has no credentials."""
    payment_settings = await _payment_settings()
    env = get_settings()
    key_id = payment_settings.razorpay_key_id or env.razorpay_key_id
    key_secret = payment_settings.razorpay_key_secret or env.razorpay_key_secret

    if not payment_settings.enable_razorpay or not key_id or not key_secret:
        return None

    return razorpay.Client(auth=(key_id, key_secret))


async def create_stripe_payment_intent(
    amount: float,
    currency: str | None = None,
    metadata: dict[str, str] | None = None,
) -> PaymentIntentResult:
    """Create a Stripe payment intent for ``amount`` in major units."""
    try:
        client = await create_stripe_client()
        if not client:
            return PaymentIntentResult(success=False, error="Stripe not configured or disabled")

        payment_settings = await _payment_settings()
        intent_currency = (currency or payment_settings.default_currency or "usd").lower()

        intent = await asyncio.to_thread(
            client.payment_intents.create,
            params={
                "amount": to_minor_units(amount),
                "currency": intent_currency,
                "metadata": metadata or {},
                "automatic_payment_methods": {"enabled": True},
            },
        )

        return PaymentIntentResult(
            success=True,
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
        )
    except Exception as e:
        logger.error(f"Stripe payment intent creation failed: {e}")
        return PaymentIntentResult(success=False, error="Failed to create payment intent")


async def create_razorpay_order(
    amount: float,
    receipt: str,
    currency: str | None = None,
    notes: dict[str, str] | None = None,
) -> PaymentOrderResult:
    """Create a Razorpay order for ``amount`` in major units."""
    try:
        client = await create_razorpay_client()
        if not client:
            return PaymentOrderResult(success=False, error="Razorpay not configured or disabled")

        payment_settings = await _payment_settings()
        order_currency = (currency or payment_settings.default_currency or "INR").upper()

        order = await asyncio.to_thread(
            client.order.create,
            data={
                "amount": to_minor_units(amount),
                "currency": order_currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )

        return PaymentOrderResult(
            success=True,
            order_id=order["id"],
            amount=order["amount"],
            currency=order["currency"],
        )
    except Exception as e:
        logger.error(f"Razorpay order creation failed: {e}")
        return PaymentOrderResult(success=False, error="Failed to create payment order")


async def construct_stripe_event(payload: str | bytes, signature: str) -> stripe.Event | None:
    """Verify a Stripe webhook and return its event, or None if verification fails."""
    client = await create_stripe_client()
    payment_settings = await _payment_settings()
    webhook_secret = payment_settings.stripe_webhook_secret or get_settings().stripe_webhook_secret

    if not client or not webhook_secret:
        logger.error("Stripe webhook verification failed: Not configured")
        return None

    try:
        return client.construct_event(payload, signature, webhook_secret)
    except Exception as e:
        logger.error(f"Stripe webhook verification failed: {e}")
        return None


async def verify_stripe_webhook(payload: str | bytes, signature: str) -> bool:
    return await construct_stripe_event(payload, signature) is not None


async def verify_razorpay_signature(order_id: str, payment_id: str, signature: str) -> bool:
    """Verify a Razorpay checkout signature.

    The signature is the hex HMAC-SHA256 of ``{order_id}|{payment_id}``
    keyed with the Razorpay key secret.
    """
    payment_settings = await _payment_settings()
    key_secret = payment_settings.razorpay_key_secret or get_settings().razorpay_key_secret

    if not key_secret:
        logger.error("Razorpay key secret not configured")
        return False

    expected = hmac.new(
        key_secret.encode(),
        f"{order_id}|{payment_id}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected.encode(), signature.encode())


async def process_stripe_refund(
    payment_intent_id: str,
    amount: float | None = None,
    reason: str | None = None,
) -> RefundResult:
    """Refund a Stripe payment intent, fully unless ``amount`` is given."""
    try:
        client = await create_stripe_client()
        if not client:
            return RefundResult(success=False, error="Stripe not configured or disabled")

        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount:
            params["amount"] = to_minor_units(amount)
        if reason:
            params["reason"] = reason

        refund = await asyncio.to_thread(client.refunds.create, params=params)

        return RefundResult(
            success=True,
            refund_id=refund.id,
            amount=refund.amount / 100,
            status=refund.status,
        )
    except Exception as e:
        logger.error(f"Stripe refund failed: {e}")
        return RefundResult(success=False, error="Failed to process refund")


async def process_razorpay_refund(
    payment_id: str,
    amount: float | None = None,
    notes: dict[str, str] | None = None,
) -> RefundResult:
    """Refund a Razorpay payment, fully unless ``amount`` is given."""
    try:
        client = await create_razorpay_client()
        if not client:
            return RefundResult(success=False, error="Razorpay not configured or disabled")

        data: dict[str, Any] = {}
        if amount:
            data["amount"] = to_minor_units(amount)
        if notes:
            data["notes"] = notes

        refund = await asyncio.to_thread(client.payment.refund, payment_id, data)

        return RefundResult(
            success=True,
            refund_id=refund["id"],
            amount=refund["amount"] / 100,
            status=refund.get("status"),
        )
    except Exception as e:
        logger.error(f"Razorpay refund failed: {e}")
        return RefundResult(success=False, error="Failed to process refund")


async def fetch_razorpay_payment(payment_id: str) -> PaymentFetchResult:
    try:
        client = await create_razorpay_client()
        if not client:
            return PaymentFetchResult(success=False, error="Razorpay not configured or disabled")

        payment = await asyncio.to_thread(client.payment.fetch, payment_id)
        return PaymentFetchResult(success=True, payment=payment)
    except Exception as e:
        logger.error(f"Failed to fetch Razorpay payment {payment_id}: {e}")
        return PaymentFetchResult(success=False, error="Failed to fetch payment")


async def check_gateway_connection(gateway: PaymentMethod) -> ConfigCheckResult:
    """Check a gateway's configuration, then make one authenticated API call."""
    config_result = await check_payment_configuration(gateway)
    if not config_result.success:
        return config_result

    try:
        if gateway == PaymentMethod.STRIPE:
            client = await create_stripe_client()
            if not client:
                return ConfigCheckResult(success=False, error="Stripe client could not be created")
            await asyncio.to_thread(client.balance.retrieve)
            return ConfigCheckResult(success=True, message="Stripe connection tested successfully")

        if gateway == PaymentMethod.RAZORPAY:
            client = await create_razorpay_client()
            if not client:
                return ConfigCheckResult(success=False, error="Razorpay client could not be created")
            await asyncio.to_thread(client.order.all, {"count": 1})
            return ConfigCheckResult(success=True, message="Razorpay connection tested successfully")

        return ConfigCheckResult(
            success=True,
            message="PayPal configuration appears valid (connection test not available)",
        )
    except Exception as e:
        logger.error(f"{gateway.value} connection test failed: {e}")
        return ConfigCheckResult(success=False, error=f"{gateway.value} connection test failed")


def get_recommended_payment_method(currency: str, country: str | None = None) -> PaymentMethod:
    """Razorpay for Indian customers and INR, Stripe otherwise."""
    if currency.upper() == "INR" or country == "IN":
        return PaymentMethod.RAZORPAY
    return PaymentMethod.STRIPE


def validate_payment_amount(amount: float, currency: str) -> bool:
    """Check the amount meets the gateway minimum for the currency."""
    return amount >= MINIMUM_AMOUNTS.get(currency.upper(), 0.50)
