import hmac
import json
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated, AsyncGenerator

import httpx
import stripe
from fastapi import FastAPI, Response, Request, Depends, Header, HTTPException, status, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from storefront_payments.analytics import AnalyticsBackendError, DEFAULT_PERIOD, fetch_visitor_analytics
from storefront_payments.config import Settings, get_settings, settings
from storefront_payments.logging_utils import setup_logging, RequestLoggingMiddleware, log_webhook_data
from storefront_payments.metrics import (
    record_checkout_outcome,
    record_webhook_outcome,
    get_metrics,
    get_metrics_content_type,
)
from storefront_payments.schemas import (
    CheckoutRequest,
    ErrorResponse,
    HealthResponse,
    StripeCheckoutResponse,
    StripePublicConfig,
    WebhookResponse,
    YocoCheckoutResponse,
    YocoPopupConfig,
    YocoWebhookEvent,
)
from storefront_payments.storage import init_db, check_db_health, get_db, record_webhook_event
from storefront_payments.stripe_checkout import StripeConfigurationError, create_checkout_session, get_publishable_key
from storefront_payments.webhook_verifier import WebhookVerifier
from storefront_payments.yoco import (
    YocoCheckoutError,
    YocoConfigurationError,
    create_yoco_checkout,
    generate_order_number,
    popup_config,
)


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Storefront Payments API",
    description="Checkout, Yoco webhook verification and admin analytics proxy",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

@lru_cache()
def get_webhook_verifier() -> WebhookVerifier:
    """Verifier built once from the startup configuration."""
    current = get_settings()
    return WebhookVerifier(
        current.YOCO_WEBHOOK_SECRET,
        verify_all_signatures=current.WEBHOOK_VERIFY_ALL_SIGNATURES,
    )


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient() as client:
        yield client


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(
    response: Response,
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
) -> HealthResponse:
    """
    Readiness probe - 200 only if the webhook secret decodes and the
    database schema is applied, otherwise 503.
    """
    if not verifier.configured:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="YOCO_WEBHOOK_SECRET not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Webhook Route
# =============================================================================

def _reject_webhook(request: Request, webhook_id: str | None, result: str, status_code: int, detail: str):
    record_webhook_outcome(result)
    log_webhook_data(request=request, webhook_id=webhook_id, dup=False, result=result)
    raise HTTPException(status_code=status_code, detail=detail)


@app.post(
    "/webhooks/yoco",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing headers or stale timestamp"},
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"description": "Validation error"},
    }
)
async def yoco_webhook(
    request: Request,
    webhook_id: Annotated[str | None, Header(alias="webhook-id")] = None,
    webhook_timestamp: Annotated[str | None, Header(alias="webhook-timestamp")] = None,
    webhook_signature: Annotated[str | None, Header(alias="webhook-signature")] = None,
    verifier: WebhookVerifier = Depends(get_webhook_verifier),
    db: Session = Depends(get_db),
) -> WebhookResponse:
    """
    Receive a Yoco notification.

    The raw body is verified before it is parsed: timestamp freshness
    first, then the HMAC signature. Redeliveries of the same webhook-id
    are acknowledged without being recorded twice.
    """
    raw_body = await request.body()
    logger.debug(f"Webhook body size: {len(raw_body)} bytes")

    if not webhook_id or not webhook_timestamp or not webhook_signature:
        logger.error("Missing webhook-id, webhook-timestamp or webhook-signature header")
        _reject_webhook(request, webhook_id, "missing_headers", status.HTTP_400_BAD_REQUEST, "missing webhook headers")

    if not verifier.validate_timestamp(webhook_timestamp, settings.WEBHOOK_TOLERANCE_MINUTES):
        logger.error(f"Stale webhook rejected: {webhook_id}")
        _reject_webhook(request, webhook_id, "stale_timestamp", status.HTTP_400_BAD_REQUEST, "stale webhook")

    if not verifier.validate_signature(webhook_id, webhook_timestamp, raw_body, webhook_signature):
        logger.error(f"Invalid webhook signature: {webhook_id}")
        _reject_webhook(request, webhook_id, "invalid_signature", status.HTTP_401_UNAUTHORIZED, "invalid signature")

    try:
        event = YocoWebhookEvent.model_validate(json.loads(raw_body))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON: {e}")
        _reject_webhook(request, webhook_id, "validation_error", status.HTTP_422_UNPROCESSABLE_ENTITY, f"Invalid JSON: {e}")
    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        _reject_webhook(request, webhook_id, "validation_error", status.HTTP_422_UNPROCESSABLE_ENTITY, str(e))

    success, is_duplicate = record_webhook_event(
        db=db,
        webhook_id=webhook_id,
        event_id=event.id,
        event_type=event.type,
        webhook_timestamp=webhook_timestamp,
        payload=raw_body.decode("utf-8", errors="replace"),
    )
    if not success:
        record_webhook_outcome("error")
        log_webhook_data(request=request, webhook_id=webhook_id, dup=False, result="error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record webhook event"
        )

    result = "duplicate" if is_duplicate else "accepted"
    logger.info(f"Yoco webhook processed: {webhook_id}, type={event.type}, result={result}")
    record_webhook_outcome(result)
    log_webhook_data(request=request, webhook_id=webhook_id, dup=is_duplicate, result=result)

    return WebhookResponse(status="ok")


# =============================================================================
# Checkout Routes
# =============================================================================

@app.get("/payments/yoco/config", response_model=YocoPopupConfig)
async def yoco_config(current: Settings = Depends(get_settings)) -> YocoPopupConfig:
    try:
        return YocoPopupConfig(**popup_config(current))
    except YocoConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.post(
    "/checkout/yoco",
    response_model=YocoCheckoutResponse,
    responses={502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def yoco_checkout(
    checkout_request: CheckoutRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    current: Settings = Depends(get_settings),
) -> YocoCheckoutResponse:
    order_number = generate_order_number()
    try:
        checkout = await create_yoco_checkout(
            client,
            current,
            amount=checkout_request.amount,
            currency=checkout_request.currency or current.YOCO_CURRENCY,
            metadata={
                "orderId": checkout_request.order_id,
                "orderNumber": order_number,
                "customerEmail": checkout_request.customer_email,
            },
        )
    except YocoConfigurationError as e:
        record_checkout_outcome("yoco", "failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except YocoCheckoutError as e:
        record_checkout_outcome("yoco", "failed")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    record_checkout_outcome("yoco", "created")
    return YocoCheckoutResponse(
        order_number=order_number,
        checkout_id=checkout.get("id"),
        redirect_url=checkout.get("redirectUrl"),
        checkout=checkout,
    )


@app.get("/payments/stripe/config", response_model=StripePublicConfig)
async def stripe_config(current: Settings = Depends(get_settings)) -> StripePublicConfig:
    try:
        return StripePublicConfig(publishable_key=get_publishable_key(current))
    except StripeConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@app.post(
    "/checkout/stripe",
    response_model=StripeCheckoutResponse,
    responses={502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def stripe_checkout(
    checkout_request: CheckoutRequest,
    current: Settings = Depends(get_settings),
) -> StripeCheckoutResponse:
    # sync handler: the stripe SDK blocks, FastAPI runs it in the threadpool
    order_number = generate_order_number()
    try:
        session = create_checkout_session(
            current,
            order_id=checkout_request.order_id,
            order_number=order_number,
            amount=checkout_request.amount,
            currency=checkout_request.currency or current.YOCO_CURRENCY,
            customer_email=checkout_request.customer_email,
        )
    except StripeConfigurationError as e:
        record_checkout_outcome("stripe", "failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout session creation failed: {e}")
        record_checkout_outcome("stripe", "failed")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Stripe checkout creation failed")

    record_checkout_outcome("stripe", "created")
    return StripeCheckoutResponse(order_number=order_number, session_id=session.id, url=session.url)


# =============================================================================
# Admin Analytics Route
# =============================================================================

@app.get("/admin/visitors/analytics")
async def admin_visitor_analytics(
    period: Annotated[str, Query(min_length=1, description="Reporting period, e.g. 7d, 30d")] = DEFAULT_PERIOD,
    x_admin_key: Annotated[str | None, Header(alias="X-Admin-Key")] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
    current: Settings = Depends(get_settings),
) -> JSONResponse:
    """Proxy visitor analytics from the backend service for admins."""
    if not x_admin_key:
        return JSONResponse(
            {"error": "Unauthorized - Please login to view analytics"},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    if not current.ADMIN_API_KEY or not hmac.compare_digest(
        x_admin_key.encode("utf-8"), current.ADMIN_API_KEY.encode("utf-8")
    ):
        return JSONResponse(
            {"error": "Forbidden - Admin access required"},
            status_code=status.HTTP_403_FORBIDDEN,
        )

    try:
        data = await fetch_visitor_analytics(
            client, current.BACKEND_URL, period, timeout=current.HTTP_TIMEOUT_SECONDS
        )
    except AnalyticsBackendError as e:
        logger.error(f"Backend analytics error: {e}")
        return JSONResponse(
            {"success": False, "error": e.error, "details": e.details},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Admin visitor analytics proxy failed: {e}")
        return JSONResponse(
            {"error": "Internal server error - failed to fetch analytics"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.info("Visitor analytics fetched successfully from backend")
    return JSONResponse({"success": True, "data": data, "source": "backend"})


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
