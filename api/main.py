"""FastAPI service exposing mandi price forecasts and stored observations."""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import duckdb
import httpx
from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from jobs.config import (
    DEFAULT_COMMODITY,
    DEFAULT_SEARCH_LIMIT,
    ConfigurationError,
    ForecastSettings,
    search_commodities,
)
from pipelines.forecast import EmptyDataError
from pipelines.model import ForecastResult, PriceObservation
from pipelines.sources.data_gov import fetch_mandi_prices, resolve_api_key
from storage.db import build_observations_query, connect, fetch_price_observations
from storage.exports import EXPORT_COLUMNS, export_to_csv, export_to_parquet

DEFAULT_LIMIT = 200
MAX_LIMIT = 2000
ALLOWED_FORMATS = {"json", "csv", "parquet"}
ALLOWED_SOURCES = {"live", "store"}
load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ForecastSettings.from_env()
    yield


app = FastAPI(title="Mandi Price Forecast API", version="0.1.0", lifespan=lifespan)


def _configure_cors() -> None:
    raw_origins = os.getenv("API_CORS_ORIGINS", "*")
    origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )


_configure_cors()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/commodities")
def get_commodities(
    q: str | None = Query(None, description="Case-insensitive text to search for"),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=100),
) -> dict[str, Any]:
    items = search_commodities(q, limit=limit)
    return {"count": len(items), "items": items}


def _read_stored(commodity: str, limit: int | None = None) -> list[PriceObservation]:
    try:
        conn = connect(read_only=True)
    except duckdb.Error as exc:
        raise HTTPException(status_code=503, detail="Observation store unavailable") from exc
    try:
        return fetch_price_observations(conn, commodity, limit=limit)
    except duckdb.Error as exc:  # pragma: no cover - defensive
        raise HTTPException(status_code=500, detail="Database query failed") from exc
    finally:
        conn.close()


async def _read_live(commodity: str) -> list[PriceObservation]:
    if not resolve_api_key():
        raise HTTPException(status_code=503, detail="API key not configured")
    try:
        return await fetch_mandi_prices(commodity)
    except httpx.HTTPError as exc:
        logger.error("Mandi price fetch failed for %s: %s", commodity, exc)
        raise HTTPException(status_code=502, detail="Upstream price API request failed") from exc


@app.get("/forecast", response_model=ForecastResult)
async def get_forecast(
    crop: str = Query(DEFAULT_COMMODITY, min_length=1, description="Commodity name"),
    source: str = Query("live", description="Observation source: live or store"),
):
    src = source.lower()
    if src not in ALLOWED_SOURCES:
        raise HTTPException(status_code=400, detail=f"Unsupported source '{source}'.")

    try:
        engine = ForecastSettings.from_env().engine()
    except ConfigurationError as exc:
        logger.error("Invalid forecast configuration: %s", exc)
        raise HTTPException(status_code=500, detail=f"Invalid forecast configuration: {exc}") from exc

    if src == "store":
        # DuckDB calls block; keep them off the event loop.
        observations = await run_in_threadpool(_read_stored, crop)
    else:
        observations = await _read_live(crop)

    try:
        return engine.run(observations, crop)
    except EmptyDataError as exc:
        raise HTTPException(
            status_code=404,
            detail=f"No valid price data for \"{crop}\". Try another crop.",
        ) from exc


@app.get("/observations")
def get_observations(
    background_tasks: BackgroundTasks,
    crop: str = Query(..., min_length=1, description="Commodity name"),
    format: str = Query("json", description="Response format: json, csv, or parquet"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Maximum records returned"),
):
    fmt = format.lower()
    if fmt not in ALLOWED_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{format}'.")

    if fmt == "json":
        observations = _read_stored(crop, limit=limit)
        payload = {
            "count": len(observations),
            "items": [obs.model_dump(mode="json", exclude={"raw_payload"}) for obs in observations],
        }
        return JSONResponse(content=payload)

    query = build_observations_query(columns=EXPORT_COLUMNS, limit=limit)
    suffix = ".csv" if fmt == "csv" else ".parquet"
    media_type = "text/csv" if fmt == "csv" else "application/vnd.apache.parquet"
    filename = f"{crop.lower().replace(' ', '_')}_observations{suffix}"
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        dest = Path(tmp.name)

    try:
        conn = connect(read_only=True)
    except duckdb.Error as exc:
        dest.unlink(missing_ok=True)
        raise HTTPException(status_code=503, detail="Observation store unavailable") from exc
    try:
        if fmt == "csv":
            export_to_csv(conn, dest, query=query, params=[crop])
        else:
            export_to_parquet(conn, dest, query=query, params=[crop])
    except duckdb.Error as exc:  # pragma: no cover - defensive
        dest.unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail="Database export failed") from exc
    finally:
        conn.close()

    background_tasks.add_task(dest.unlink, missing_ok=True)
    return FileResponse(dest, media_type=media_type, filename=filename, background=background_tasks)
