"""
Admin visitor analytics proxy: forwards to the backend analytics service
and unwraps its {"success": ..., "data": ...} envelope.
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = "7d"


class AnalyticsBackendError(Exception):
    """The backend answered, but not with usable analytics."""

    def __init__(self, error: str, details: str):
        super().__init__(f"{error}: {details}")
        self.error = error
        self.details = details


async def fetch_visitor_analytics(
    client: httpx.AsyncClient,
    backend_url: str,
    period: str = DEFAULT_PERIOD,
    timeout: float = 10.0,
) -> Any:
    """
    Fetch visitor analytics for period from the backend.

    Raises:
        AnalyticsBackendError: non-2xx status or success=false envelope
        httpx.HTTPError: backend unreachable
    """
    url = f"{backend_url.rstrip('/')}/api/visitors/analytics"
    logger.info(f"Fetching visitor analytics from backend: {url}?period={period}")

    response = await client.get(url, params={"period": period}, timeout=timeout)
    logger.debug(f"Backend response status: {response.status_code}")

    if response.is_error:
        raise AnalyticsBackendError(
            "Failed to fetch analytics from backend",
            f"Backend returned {response.status_code}: {response.reason_phrase}",
        )

    backend_data = response.json()
    if not isinstance(backend_data, dict):
        backend_data = {}
    if not backend_data.get("success"):
        raise AnalyticsBackendError(
            "Backend returned error",
            backend_data.get("message") or "Unknown backend error",
        )

    return backend_data.get("data")
