"""Batch job that fetches mandi prices for tracked commodities and persists them."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Iterable

from dotenv import load_dotenv

from jobs.config import DEFAULT_LOAD_COMMODITIES, iter_commodities
from pipelines.sources.data_gov import fetch_mandi_prices
from storage.db import connect, upsert_price_observations

load_dotenv()

logger = logging.getLogger(__name__)


def _resolve_commodities() -> tuple[str, ...]:
    requested = os.getenv("LOAD_COMMODITIES")
    if requested:
        names = [name.strip() for name in requested.split(",") if name.strip()]
        selected = iter_commodities(names)
        if selected:
            return selected
        logger.warning(
            "LOAD_COMMODITIES=%s did not match any catalog commodity; falling back to defaults.",
            requested,
        )
    return DEFAULT_LOAD_COMMODITIES


async def load_all_async(commodities: Iterable[str] | None = None) -> int:
    """Fetch recent mandi prices for each commodity and upsert them into DuckDB."""

    commodities = tuple(commodities) if commodities is not None else _resolve_commodities()
    total_written = 0
    conn = connect()
    try:
        for commodity in commodities:
            logger.info("Fetching mandi prices for %s...", commodity)
            observations = await fetch_mandi_prices(commodity)
            if not observations:
                logger.warning("No observations fetched for %s; skipping write.", commodity)
                continue
            written = upsert_price_observations(conn, observations, commodity=commodity)
            logger.info("Persisted %s records for %s.", written, commodity)
            total_written += written
        return total_written
    finally:
        conn.close()


def main(commodities: Iterable[str] | None = None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    written = asyncio.run(load_all_async(commodities))
    logger.info("Load-all job finished (records written=%s).", written)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
