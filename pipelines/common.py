"""Shared utilities for retrieving external API responses."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

DEFAULT_TIMEOUT_SECONDS = 30.0
_DEFAULT_WAIT = wait_exponential(min=1, max=16)
_DEFAULT_STOP = stop_after_attempt(5)

logger = logging.getLogger(__name__)


Headers = Mapping[str, str] | None
Params = Mapping[str, Any] | None


def is_retryable(exc: BaseException) -> bool:
    """Retry transport failures, throttling and server errors only."""

    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


@retry(
    retry=retry_if_exception(is_retryable),
    wait=_DEFAULT_WAIT,
    stop=_DEFAULT_STOP,
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def fetch_json(
    url: str,
    *,
    headers: Headers = None,
    params: Params = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """GET ``url`` and return the decoded JSON payload.

    Transient failures are retried with exponential backoff; client errors such
    as 401/403/404 are raised on the first attempt. ``transport`` lets callers
    swap the network layer, e.g. ``httpx.MockTransport`` in tests.
    """

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.get(url, headers=headers, params=params)

    response.raise_for_status()
    return response.json()


__all__ = ["fetch_json", "is_retryable", "DEFAULT_TIMEOUT_SECONDS"]
