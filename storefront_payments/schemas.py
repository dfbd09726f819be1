"""
Pydantic schemas for request/response validation.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Webhook Models
# =============================================================================

class YocoWebhookEvent(BaseModel):
    """
    Body of a Yoco webhook notification, parsed only after verification.

    Example: {"id": "evt_...", "type": "payment.succeeded",
              "createdDate": "...", "payload": {...}}
    """
    id: str = Field(..., min_length=1, description="Provider event identifier")
    type: str = Field(..., min_length=1, description="Event type, e.g. payment.succeeded")
    created_date: Optional[str] = Field(None, alias="createdDate")
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "allow"}


class WebhookResponse(BaseModel):
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")


# =============================================================================
# Checkout Models
# =============================================================================

class CheckoutRequest(BaseModel):
    """Server-side checkout request from the storefront."""
    order_id: str = Field(..., alias="orderId", min_length=1)
    amount: int = Field(..., gt=0, description="Amount in cents")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    customer_email: str = Field(..., alias="customerEmail", min_length=3)

    model_config = {"populate_by_name": True}


class YocoCheckoutResponse(BaseModel):
    order_number: str = Field(..., alias="orderNumber")
    checkout_id: Optional[str] = Field(None, alias="checkoutId")
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")
    checkout: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class StripeCheckoutResponse(BaseModel):
    order_number: str = Field(..., alias="orderNumber")
    session_id: str = Field(..., alias="sessionId")
    url: Optional[str] = None

    model_config = {"populate_by_name": True}


class YocoPopupConfig(BaseModel):
    public_key: str = Field(..., alias="publicKey")
    currency: str
    name: str
    description: str
    sdk_url: str = Field(..., alias="sdkUrl")

    model_config = {"populate_by_name": True}


class StripePublicConfig(BaseModel):
    publishable_key: str = Field(..., alias="publishableKey")

    model_config = {"populate_by_name": True}


# =============================================================================
# Health
# =============================================================================

class HealthResponse(BaseModel):
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
