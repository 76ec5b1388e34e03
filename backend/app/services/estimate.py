"""Live intraday valuation estimates from the fundgz feed."""

import logging
import math
from typing import Any

from pydantic import ValidationError

from app.config import ESTIMATE_BASE_URL, ESTIMATE_TIMEOUT
from app.models.fund import FundEstimate
from app.services.errors import FeedError
from app.services.jsonp import JsonpChannel, jsonp_channel, timestamp_ms

logger = logging.getLogger(__name__)

ESTIMATE_CALLBACK = "jsonpgz"


def coerce_percent(value: Any) -> float | str | None:
    """Return ``value`` as a float when it is a finite number, else unchanged.

    The feed sends a placeholder string in place of the percentage when no
    estimate is being published (e.g. outside trading hours).
    """
    if value is None or isinstance(value, bool):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return value
    return number if math.isfinite(number) else value


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class EstimateService:
    def __init__(self, channel: JsonpChannel | None = None):
        self.channel = channel or jsonp_channel

    async def fetch_estimate(self, fund_code: str) -> FundEstimate | None:
        """Fetch the live estimate, or None when the feed gives nothing usable.

        A missing callback, a non-object payload, a timeout and an unreachable
        feed all count as "no estimate" so the caller can fall back.
        """
        url = f"{ESTIMATE_BASE_URL}/js/{fund_code}.js?rt={timestamp_ms()}"
        try:
            result = await self.channel.send(
                url, timeout=ESTIMATE_TIMEOUT, callback=ESTIMATE_CALLBACK
            )
        except FeedError as e:
            logger.warning(f"Estimate feed failed for {fund_code}: {e}")
            return None

        payload = result.payload
        if not isinstance(payload, dict):
            logger.info(f"No live estimate for {fund_code}")
            return None

        gsz = _text(payload.get("gsz"))
        try:
            return FundEstimate(
                code=fund_code,
                name=_text(payload.get("name")) or "",
                dwjz=_text(payload.get("dwjz")),
                gsz=gsz,
                gztime=_text(payload.get("gztime")) if gsz else None,
                jzrq=_text(payload.get("jzrq")),
                gszzl=coerce_percent(payload.get("gszzl")),
            )
        except ValidationError as e:
            logger.warning(f"Malformed estimate payload for {fund_code}: {e}")
            return None


# Global instance
estimate_service = EstimateService()
