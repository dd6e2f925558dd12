"""DuckDB persistence utilities for raw mandi price observations."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, Sequence

import duckdb

from pipelines.forecast import coerce_price, parse_date
from pipelines.model import PriceObservation

DB_ENV_VAR = "MANDI_PRICES_DB_PATH"
DEFAULT_DB_PATH = Path("data/mandi_prices.duckdb")

PRICE_OBSERVATIONS_TABLE = "price_observations"
OBSERVATION_COLUMNS = "commodity, arrival_date, observed_on, market, variety, price, raw_payload"


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def get_database_path(override: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the DuckDB file path from an explicit override or environment variable."""

    if override is not None:
        return Path(override)
    env_value = os.getenv(DB_ENV_VAR)
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def connect(
    path: str | os.PathLike[str] | None = None,
    *,
    read_only: bool = False,
    ensure: bool = True,
) -> duckdb.DuckDBPyConnection:
    """Create a DuckDB connection, optionally ensuring schema availability."""

    db_path = get_database_path(path)
    if not read_only:
        _ensure_parent_dir(db_path)
    conn = duckdb.connect(str(db_path), read_only=read_only)
    if ensure and not read_only:
        ensure_price_observations_table(conn)
    return conn


def ensure_price_observations_table(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the observation table if it does not already exist.

    ``price`` is nullable: records are stored as received and cleaned at
    forecast time. ``ingest_seq`` is the record's position in the upstream
    batch, so reads can replay the source order.
    """

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {PRICE_OBSERVATIONS_TABLE} (
            commodity TEXT NOT NULL,
            arrival_date TEXT NOT NULL,
            observed_on DATE,
            market TEXT NOT NULL,
            variety TEXT NOT NULL,
            price DOUBLE,
            ingest_seq INTEGER NOT NULL,
            raw_payload JSON,
            PRIMARY KEY (commodity, arrival_date, market, variety)
        )
        """
    )
    conn.execute(
        f"""
        CREATE INDEX IF NOT EXISTS idx_{PRICE_OBSERVATIONS_TABLE}_commodity
        ON {PRICE_OBSERVATIONS_TABLE} (commodity)
        """
    )


def _serialize_observation(obs: PriceObservation, commodity: str, seq: int) -> tuple:
    return (
        obs.commodity or commodity,
        obs.date,
        parse_date(obs.date),
        obs.market or "",
        obs.variety or "",
        coerce_price(obs.price),
        seq,
        json.dumps(obs.raw_payload) if obs.raw_payload is not None else None,
    )


def upsert_price_observations(
    conn: duckdb.DuckDBPyConnection,
    observations: Iterable[PriceObservation],
    *,
    commodity: str,
) -> int:
    """Insert or replace a batch of observations for ``commodity``.

    Within the batch the first record for each
    ``(commodity, arrival_date, market, variety)`` key wins; later repeats
    are discarded. Rows from earlier batches with the same key are replaced.

    Returns
    -------
    int
        Number of rows written to the database.
    """

    serialized: list[tuple] = []
    seen: set[tuple] = set()
    for seq, obs in enumerate(observations):
        row = _serialize_observation(obs, commodity, seq)
        key = (row[0], row[1], row[3], row[4])
        if key in seen:
            continue
        seen.add(key)
        serialized.append(row)
    if not serialized:
        return 0

    conn.executemany(
        f"""
        INSERT OR REPLACE INTO {PRICE_OBSERVATIONS_TABLE} (
            commodity,
            arrival_date,
            observed_on,
            market,
            variety,
            price,
            ingest_seq,
            raw_payload
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        serialized,
    )
    return len(serialized)


def build_observations_query(
    *, columns: str = OBSERVATION_COLUMNS, limit: int | None = None
) -> str:
    """SQL selecting one commodity's observations; binds the commodity as ``?``."""

    sql = (
        f"SELECT {columns} "
        f"FROM {PRICE_OBSERVATIONS_TABLE} WHERE lower(commodity) = lower(?) "
        f"ORDER BY observed_on, ingest_seq, market, variety"
    )
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    return sql


def fetch_price_observations(
    conn: duckdb.DuckDBPyConnection,
    commodity: str,
    *,
    limit: int | None = None,
) -> list[PriceObservation]:
    """Query stored records and reconstruct ``PriceObservation`` models."""

    cursor = conn.execute(build_observations_query(limit=limit), [commodity])
    results: list[PriceObservation] = []
    for row in cursor.fetchall():
        payload = row[6]
        results.append(
            PriceObservation(
                commodity=row[0],
                date=row[1],
                market=row[3] or None,
                variety=row[4] or None,
                price=row[5],
                raw_payload=json.loads(payload) if isinstance(payload, str) else payload,
            )
        )
    return results


__all__ = [
    "connect",
    "ensure_price_observations_table",
    "upsert_price_observations",
    "fetch_price_observations",
    "build_observations_query",
    "PRICE_OBSERVATIONS_TABLE",
    "OBSERVATION_COLUMNS",
    "get_database_path",
]
