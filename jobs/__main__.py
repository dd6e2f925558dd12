"""Command-line entrypoint for batch jobs and ad-hoc forecasts."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import Iterable

import duckdb
import httpx
from dotenv import load_dotenv

from jobs.config import (
    COMMODITY_CATALOG,
    ConfigurationError,
    DEFAULT_COMMODITY,
    ForecastSettings,
    iter_commodities,
    search_commodities,
)
from jobs.load_all import main as run_load_all
from pipelines.forecast import EmptyDataError
from pipelines.model import ForecastResult, PriceObservation
from pipelines.sources.data_gov import DATA_GOV_KEY_ENV, fetch_mandi_prices, resolve_api_key
from storage.db import connect, fetch_price_observations

SOURCES = ("live", "store")


def _resolve_commodities_from_cli(names: Iterable[str] | None) -> tuple[str, ...]:
    if not names:
        return tuple()
    commodities = iter_commodities(names)
    known = {name.lower() for name in commodities}
    unknown = {name for name in names if name.lower() not in known}
    if unknown:
        raise SystemExit(f"Unknown commodities: {', '.join(sorted(unknown))}")
    return commodities


def _load_observations(commodity: str, source: str) -> list[PriceObservation]:
    if source == "store":
        conn = connect(read_only=True)
        try:
            return fetch_price_observations(conn, commodity)
        finally:
            conn.close()
    return asyncio.run(fetch_mandi_prices(commodity))


def _format_result(result: ForecastResult) -> list[str]:
    last = result.historical[-1]
    lines = [
        f"{result.commodity}: {len(result.historical)} observations, "
        f"last {last.date} = {last.price:g}"
    ]
    lines.extend(f"  {point.label}: {point.price}" for point in result.forecast)
    if result.advice:
        lines.append(result.advice.message)
    return lines


def _run_forecast(commodity: str, source: str) -> int:
    try:
        engine = ForecastSettings.from_env().engine()
    except ConfigurationError as exc:
        print(f"Invalid forecast configuration: {exc}")
        return 1
    if source == "live" and not resolve_api_key():
        print(f"API key not configured. Set {DATA_GOV_KEY_ENV} to fetch live prices.")
        return 1

    try:
        observations = _load_observations(commodity, source)
    except httpx.HTTPError as exc:
        print(f"Price API request failed: {exc}")
        return 1
    except duckdb.Error as exc:
        print(f"Observation store unavailable: {exc}")
        return 1

    try:
        result = engine.run(observations, commodity)
    except EmptyDataError:
        print(f"No valid price data for '{commodity}'.")
        return 1
    for line in _format_result(result):
        print(line)
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Mandi price forecast job runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    load_parser = subparsers.add_parser(
        "load-all", help="Fetch mandi prices for tracked commodities and persist to DuckDB"
    )
    load_parser.add_argument(
        "--commodities",
        help="Comma-separated list of commodities to load (defaults to LOAD_COMMODITIES or the built-in set)",
    )
    load_parser.add_argument(
        "--log-level",
        help="Override LOG_LEVEL for this invocation (e.g. DEBUG, INFO)",
    )

    list_parser = subparsers.add_parser("list-commodities", help="Show catalog commodities")
    list_parser.add_argument("--query", help="Only show commodities containing this text")

    forecast_parser = subparsers.add_parser("forecast", help="Print a price forecast")
    forecast_parser.add_argument("--crop", default=DEFAULT_COMMODITY)
    forecast_parser.add_argument("--source", choices=SOURCES, default="live")

    args = parser.parse_args(argv)

    if args.command == "list-commodities":
        names = (
            search_commodities(args.query, limit=len(COMMODITY_CATALOG))
            if args.query
            else COMMODITY_CATALOG
        )
        for name in names:
            print(name)
        return 0

    if args.command == "forecast":
        logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))
        return _run_forecast(args.crop, args.source)

    if args.command == "load-all":
        names_arg = args.commodities.split(",") if args.commodities else None
        names_arg = [item.strip() for item in names_arg or [] if item.strip()]
        commodities = _resolve_commodities_from_cli(names_arg)
        if args.log_level:
            os.environ["LOG_LEVEL"] = args.log_level
        if commodities:
            return run_load_all(commodities)
        return run_load_all(None)

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
