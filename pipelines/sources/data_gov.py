"""data.gov.in daily mandi price ingestor.

Turns records from the "Current daily price of various commodities from various
markets" resource into ``PriceObservation`` rows for the forecast engine.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping

import httpx

from pipelines.common import fetch_json
from pipelines.model import PriceObservation

DATA_GOV_RESOURCE_ID = "9ef84268-d588-465a-a308-a864a43d0070"
DATA_GOV_BASE_URL = f"https://api.data.gov.in/resource/{DATA_GOV_RESOURCE_ID}"
DATA_GOV_KEY_ENV = "DATA_GOV_API_KEY"
DEFAULT_RECORD_LIMIT = 60

logger = logging.getLogger(__name__)


def resolve_api_key(api_key: str | None = None) -> str | None:
    resolved = api_key or os.getenv(DATA_GOV_KEY_ENV)
    if not resolved:
        logger.warning(
            "data.gov.in API key missing. Skipping mandi price fetch. "
            "Set %s or pass api_key explicitly.",
            DATA_GOV_KEY_ENV,
        )
    return resolved


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_observation(record: Mapping[str, Any], commodity: str | None = None) -> PriceObservation:
    """Map a raw mandi record onto the strict ``PriceObservation`` shape."""

    return PriceObservation(
        date=str(record.get("arrival_date") or ""),
        price=record.get("modal_price"),
        market=_optional_text(record.get("market")),
        variety=_optional_text(record.get("variety")),
        commodity=_optional_text(record.get("commodity")) or commodity,
        raw_payload=dict(record),
    )


async def fetch_mandi_prices(
    commodity: str,
    *,
    api_key: str | None = None,
    limit: int | None = None,
    params: Mapping[str, Any] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[PriceObservation]:
    """Fetch recent mandi price records for ``commodity``.

    Returns an empty list when no API key is configured or the payload has no
    records; HTTP errors propagate after retries.
    """

    resolved_key = resolve_api_key(api_key)
    if not resolved_key:
        return []
    if limit is None:
        limit = int(os.getenv("DATA_GOV_RECORD_LIMIT", str(DEFAULT_RECORD_LIMIT)))

    request_params: dict[str, Any] = {
        "api-key": resolved_key,
        "format": "json",
        "filters[commodity]": commodity,
        "limit": limit,
    }
    if params:
        request_params.update(params)

    payload = await fetch_json(DATA_GOV_BASE_URL, params=request_params, transport=transport)

    records = payload.get("records") if isinstance(payload, Mapping) else None
    if not isinstance(records, list):
        logger.warning("data.gov.in returned no records for %s.", commodity)
        return []

    observations = [
        to_observation(record, commodity)
        for record in records
        if isinstance(record, Mapping)
    ]
    logger.info("Fetched %s mandi records for %s.", len(observations), commodity)
    return observations


__all__ = [
    "DATA_GOV_BASE_URL",
    "DATA_GOV_KEY_ENV",
    "DEFAULT_RECORD_LIMIT",
    "fetch_mandi_prices",
    "resolve_api_key",
    "to_observation",
]
