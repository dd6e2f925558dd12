"""Weighted moving average price forecast with a quantized linear trend.

The engine is a pure computation: it receives raw ``PriceObservation`` records,
keeps the ones with a usable date and price, and projects the smoothed current
price level forward with a fixed per-step growth or decay factor.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Sequence

from pipelines.advice import derive_advice
from pipelines.model import CleanedObservation, ForecastPoint, ForecastResult, PriceObservation

DEFAULT_WINDOW_SIZE = 7
DEFAULT_TREND_WINDOW = 3
DEFAULT_HORIZON = 7

# Oldest to newest slot of the smoothing window.
WEIGHTS: tuple[float, ...] = (0.10, 0.10, 0.15, 0.15, 0.20, 0.15, 0.15)
FALLBACK_WEIGHT = 0.10

RISING_FACTOR = 1.01
FALLING_FACTOR = 0.99
FLAT_FACTOR = 1.0

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y")
_SENTINEL_VALUES = {"", "NA", "N/A", "-", "null", "None"}

logger = logging.getLogger(__name__)


class EmptyDataError(ValueError):
    """Raised when no usable price observations remain after cleaning."""


def parse_date(raw_date: str | None) -> date | None:
    if not raw_date:
        return None
    value = raw_date.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def coerce_price(value: Any) -> float | None:
    """Return ``value`` as a finite, non-negative float, or ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        stripped = value.strip().replace(",", "")
        if stripped in _SENTINEL_VALUES:
            return None
        try:
            numeric = float(stripped)
        except ValueError:
            return None
    else:
        return None

    if math.isnan(numeric) or math.isinf(numeric) or numeric < 0:
        return None
    return numeric


def clean(raw_observations: Iterable[PriceObservation]) -> list[CleanedObservation]:
    """Validate, sort and deduplicate raw observations.

    Records with a missing or non-numeric price, or an unparseable date, are
    dropped. Survivors are sorted by date (stable, so input order breaks ties)
    and only the first record for each date is kept.

    Raises
    ------
    EmptyDataError
        If no record survives.
    """

    parsed: list[tuple[date, CleanedObservation]] = []
    dropped = 0
    for obs in raw_observations:
        price = coerce_price(obs.price)
        observed_on = parse_date(obs.date)
        if price is None or observed_on is None:
            dropped += 1
            continue
        parsed.append(
            (observed_on, CleanedObservation(date=obs.date, price=price, market=obs.market))
        )

    if dropped:
        logger.debug("Dropped %s malformed price records.", dropped)

    parsed.sort(key=lambda item: item[0])

    seen: set[date] = set()
    cleaned: list[CleanedObservation] = []
    for observed_on, obs in parsed:
        if observed_on in seen:
            continue
        seen.add(observed_on)
        cleaned.append(obs)

    if not cleaned:
        raise EmptyDataError("No usable price observations.")
    return cleaned


def weighted_average(prices: Sequence[float]) -> float:
    """Normalized weighted mean; ``prices[i]`` is scaled by ``WEIGHTS[i]``."""

    if not prices:
        raise EmptyDataError("Cannot average an empty price window.")
    weights = [WEIGHTS[i] if i < len(WEIGHTS) else FALLBACK_WEIGHT for i in range(len(prices))]
    total = sum(price * weight for price, weight in zip(prices, weights))
    return total / sum(weights)


def trend_slope(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their zero-based index."""

    n = len(values)
    if n <= 1:
        return 0.0
    sum_x = sum(range(n))
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))
    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def trend_factor(slope: float) -> float:
    if slope > 0:
        return RISING_FACTOR
    if slope < 0:
        return FALLING_FACTOR
    return FLAT_FACTOR


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}.")


def forecast(
    cleaned: Sequence[CleanedObservation],
    window_size: int = DEFAULT_WINDOW_SIZE,
    trend_window: int = DEFAULT_TREND_WINDOW,
    horizon: int = DEFAULT_HORIZON,
) -> list[ForecastPoint]:
    """Project ``horizon`` steps from the weighted average of the latest prices."""

    _require_positive("window_size", window_size)
    _require_positive("trend_window", trend_window)
    _require_positive("horizon", horizon)
    if not cleaned:
        raise EmptyDataError("Forecast requires at least one cleaned observation.")

    recent_prices = [obs.price for obs in cleaned[-window_size:]]
    level = weighted_average(recent_prices)
    factor = trend_factor(trend_slope(recent_prices[-trend_window:]))

    return [
        ForecastPoint(label=f"+{step}", price=_round_half_up(max(0.0, level * factor**step)))
        for step in range(1, horizon + 1)
    ]


@dataclass(frozen=True)
class ForecastEngine:
    """Bundles forecast parameters so callers can configure them once."""

    window_size: int = DEFAULT_WINDOW_SIZE
    trend_window: int = DEFAULT_TREND_WINDOW
    horizon: int = DEFAULT_HORIZON

    def __post_init__(self) -> None:
        _require_positive("window_size", self.window_size)
        _require_positive("trend_window", self.trend_window)
        _require_positive("horizon", self.horizon)

    def clean(self, raw_observations: Iterable[PriceObservation]) -> list[CleanedObservation]:
        return clean(raw_observations)

    def forecast(self, cleaned: Sequence[CleanedObservation]) -> list[ForecastPoint]:
        return forecast(
            cleaned,
            window_size=self.window_size,
            trend_window=self.trend_window,
            horizon=self.horizon,
        )

    def run(self, raw_observations: Iterable[PriceObservation], commodity: str) -> ForecastResult:
        historical = self.clean(raw_observations)
        points = self.forecast(historical)
        return ForecastResult(
            commodity=commodity,
            historical=historical,
            forecast=points,
            advice=derive_advice(historical, points),
        )


__all__ = [
    "DEFAULT_WINDOW_SIZE",
    "DEFAULT_TREND_WINDOW",
    "DEFAULT_HORIZON",
    "WEIGHTS",
    "EmptyDataError",
    "ForecastEngine",
    "clean",
    "coerce_price",
    "forecast",
    "parse_date",
    "trend_factor",
    "trend_slope",
    "weighted_average",
]
