"""Payment-related Pydantic schemas."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    RAZORPAY = "razorpay"
    PAYPAL = "paypal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentIntentResult(BaseModel):
    """Outcome of creating a Stripe payment intent."""

    success: bool
    client_secret: str | None = None
    payment_intent_id: str | None = None
    error: str | None = None


class PaymentOrderResult(BaseModel):
    """Outcome of creating a Razorpay order."""

    success: bool
    order_id: str | None = None
    amount: int | None = None  # smallest currency unit
    currency: str | None = None
    error: str | None = None


class RefundResult(BaseModel):
    """Outcome of a refund on either gateway."""

    success: bool
    refund_id: str | None = None
    amount: float | None = None
    status: str | None = None
    error: str | None = None


class PaymentFetchResult(BaseModel):
    success: bool
    payment: dict[str, Any] | None = None
    error: str | None = None


class CreatePaymentIntentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    metadata: dict[str, str] = Field(default_factory=dict)


class CreateOrderRequest(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    receipt: str = Field(..., min_length=1, max_length=40)
    notes: dict[str, str] = Field(default_factory=dict)


class VerifyPaymentRequest(BaseModel):
    """Razorpay checkout callback fields."""

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class TestPaymentRequest(BaseModel):
    gateway: PaymentMethod
