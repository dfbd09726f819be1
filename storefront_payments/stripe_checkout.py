"""
Stripe card checkout: hosted checkout sessions and the publishable key
handed to the storefront.
"""

import logging

import stripe

from storefront_payments.config import Settings

logger = logging.getLogger(__name__)


class StripeConfigurationError(Exception):
    """A required Stripe key is not configured."""


def get_publishable_key(settings: Settings) -> str:
    if not settings.STRIPE_PUBLISHABLE_KEY:
        raise StripeConfigurationError("STRIPE_PUBLISHABLE_KEY is not set")
    return settings.STRIPE_PUBLISHABLE_KEY


def create_checkout_session(
    settings: Settings,
    order_id: str,
    order_number: str,
    amount: int,
    currency: str,
    customer_email: str,
):
    """
    Create a hosted Stripe checkout session for a single order total.

    Raises:
        StripeConfigurationError: secret key not set
        stripe.StripeError: Stripe rejected the request
    """
    if not settings.STRIPE_SECRET_KEY:
        raise StripeConfigurationError("STRIPE_SECRET_KEY is not set")

    logger.info(f"Creating Stripe checkout session: order={order_number}, amount={amount} {currency}")

    session = stripe.checkout.Session.create(
        api_key=settings.STRIPE_SECRET_KEY,
        stripe_version=settings.STRIPE_API_VERSION,
        mode="payment",
        payment_method_types=["card"],
        customer_email=customer_email,
        line_items=[{
            "price_data": {
                "currency": currency.lower(),
                "unit_amount": amount,
                "product_data": {"name": f"{settings.STORE_NAME} order {order_number}"},
            },
            "quantity": 1,
        }],
        success_url=f"{settings.FRONTEND_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.FRONTEND_URL}/checkout/cancel?order={order_number}",
        metadata={"orderId": order_id, "orderNumber": order_number},
        idempotency_key=f"checkout_{order_id}_{order_number}",
    )

    logger.info(f"Stripe checkout session created: {session.id}")
    return session
