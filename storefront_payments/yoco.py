"""
Yoco gateway client.

Server-side checkout creation, popup configuration for the browser SDK,
and order/tracking number generation.
"""

import logging
import secrets
from datetime import datetime
from typing import Any, Optional

import httpx

from storefront_payments.config import Settings

logger = logging.getLogger(__name__)

YOCO_SDK_URL = "https://js.yoco.com/sdk/v1/checkout.js"


class YocoCheckoutError(Exception):
    """Yoco rejected or failed a checkout creation request."""


class YocoConfigurationError(Exception):
    """A required Yoco key is not configured."""


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-YYYYMM-NNNN, e.g. ORD-202610-0042."""
    now = now or datetime.now()
    return f"ORD-{now.year}{now.month:02d}-{secrets.randbelow(10000):04d}"


def generate_tracking_number() -> str:
    """CF + 6 digits + SA, e.g. CF004217SA."""
    return f"CF{secrets.randbelow(1000000):06d}SA"


def popup_config(settings: Settings) -> dict[str, str]:
    """Configuration the storefront needs to open the Yoco popup."""
    if not settings.YOCO_PUBLIC_KEY:
        raise YocoConfigurationError(
            "Yoco public key not configured. Please check YOCO_PUBLIC_KEY environment variable."
        )
    return {
        "public_key": settings.YOCO_PUBLIC_KEY,
        "currency": settings.YOCO_CURRENCY,
        "name": settings.STORE_NAME,
        "description": settings.STORE_DESCRIPTION,
        "sdk_url": YOCO_SDK_URL,
    }


async def create_yoco_checkout(
    client: httpx.AsyncClient,
    settings: Settings,
    amount: int,
    currency: str,
    metadata: dict[str, str],
) -> dict[str, Any]:
    """
    Create a server-side Yoco checkout (webhook-based flow).

    Args:
        client: shared HTTP client
        amount: amount in cents
        currency: ISO currency code
        metadata: orderId, orderNumber and customerEmail

    Raises:
        YocoConfigurationError: secret key not set
        YocoCheckoutError: Yoco returned an error or could not be reached
    """
    if not settings.YOCO_SECRET_KEY:
        raise YocoConfigurationError("Yoco secret key not configured")

    url = f"{settings.YOCO_API_URL.rstrip('/')}/checkouts"
    logger.info(f"Creating Yoco checkout: amount={amount} {currency}, order={metadata.get('orderNumber')}")

    try:
        response = await client.post(
            url,
            headers={"Authorization": f"Bearer {settings.YOCO_SECRET_KEY}"},
            json={"amount": amount, "currency": currency, "metadata": metadata},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as e:
        logger.error(f"Failed to reach Yoco: {e}")
        raise YocoCheckoutError(f"Yoco checkout creation failed: {e}") from e

    if response.is_error:
        message = None
        try:
            error_data = response.json()
            if isinstance(error_data, dict):
                message = error_data.get("message")
        except ValueError:
            pass
        reason = message or response.reason_phrase
        logger.error(f"Yoco checkout creation failed: status={response.status_code}, reason={reason}")
        raise YocoCheckoutError(f"Yoco checkout creation failed: {reason}")

    try:
        checkout = response.json()
    except ValueError:
        checkout = None
    if not isinstance(checkout, dict):
        logger.error(f"Yoco returned a non-object checkout body: status={response.status_code}")
        raise YocoCheckoutError("Yoco checkout creation failed: invalid response")

    logger.info(f"Yoco checkout created: {checkout.get('id')}")
    return checkout
