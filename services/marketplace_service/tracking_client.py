"""Best-effort carrier tracking lookup.

Used when an admin records a tracking number; the carrier's status text is
mapped onto the order progression by ``order_flow.status_from_tracking``.
Any failure yields ``None`` so the status update proceeds without it.
"""

from __future__ import annotations

from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

_DEFAULT_TIMEOUT = 10.0


async def fetch_tracking_status(
    tracking_number: str, timeout: float = _DEFAULT_TIMEOUT
) -> Optional[str]:
    settings = get_settings()
    headers = {"Content-Type": "application/json"}
    if settings.TRACKING_API_KEY:
        headers["Tracktry-Api-Key"] = settings.TRACKING_API_KEY
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                settings.TRACKING_API_URL,
                headers=headers,
                json={"tracking_number": tracking_number},
            )
    except httpx.HTTPError as exc:
        logger.error("Tracking API request failed: %s", exc)
        return None

    if response.status_code >= 400:
        logger.error(
            "Tracking API error %s: %s", response.status_code, response.text[:500]
        )
        return None

    try:
        items = (response.json().get("data") or {}).get("items") or []
    except (ValueError, AttributeError):
        logger.error("Tracking API returned an unexpected body")
        return None
    if not items:
        return None
    return items[0].get("status")
