"""Static configuration for tracked commodities and forecast parameters."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

from pipelines.forecast import (
    DEFAULT_HORIZON,
    DEFAULT_TREND_WINDOW,
    DEFAULT_WINDOW_SIZE,
    ForecastEngine,
)

COMMODITY_CATALOG: tuple[str, ...] = (
    "Rice", "Wheat", "Maize", "Millet", "Sorghum", "Pearl Millet", "Barley",
    "Lentils", "Chickpeas", "Pigeon Pea", "Black Gram", "Green Gram",
    "Groundnut", "Mustard", "Sesame", "Sunflower", "Soybean",
    "Sugarcane", "Cotton", "Jute", "Tobacco",
    "Tomato", "Potato", "Onion", "Cauliflower", "Cabbage", "Pea", "Bean", "Brinjal",
    "Okra", "Spinach", "Carrot", "Radish", "Cucumber", "Bottle Gourd", "Ridge Gourd",
    "Snake Gourd", "Bitter Gourd", "Tea", "Coffee", "Turmeric", "Ginger", "Garlic",
    "Chilli", "Betel Leaf", "Arecanut", "Cashew", "Cardamom", "Pepper", "Rubber",
    "Coconut", "Apple", "Mango", "Banana", "Orange", "Grapes", "Guava", "Papaya",
    "Pomegranate", "Pineapple", "Lemon", "Lime", "Watermelon", "Muskmelon",
)

DEFAULT_COMMODITY = "Onion"
DEFAULT_LOAD_COMMODITIES: tuple[str, ...] = ("Onion", "Tomato", "Potato", "Wheat", "Rice")
DEFAULT_SEARCH_LIMIT = 10


class ConfigurationError(ValueError):
    """Raised when an environment setting cannot be used."""


def _int_setting(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}.") from exc
    if value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {raw!r}.")
    return value


@dataclass(frozen=True)
class ForecastSettings:
    """Forecast parameters, overridable through the environment."""

    window_size: int = DEFAULT_WINDOW_SIZE
    trend_window: int = DEFAULT_TREND_WINDOW
    horizon: int = DEFAULT_HORIZON

    @classmethod
    def from_env(cls) -> "ForecastSettings":
        """Read ``FORECAST_*`` variables; raises ``ConfigurationError`` on bad values."""

        return cls(
            window_size=_int_setting("FORECAST_WINDOW_SIZE", DEFAULT_WINDOW_SIZE),
            trend_window=_int_setting("FORECAST_TREND_WINDOW", DEFAULT_TREND_WINDOW),
            horizon=_int_setting("FORECAST_HORIZON", DEFAULT_HORIZON),
        )

    def engine(self) -> ForecastEngine:
        return ForecastEngine(
            window_size=self.window_size,
            trend_window=self.trend_window,
            horizon=self.horizon,
        )


def get_commodity(name: str) -> str | None:
    """Return the catalog spelling of ``name`` (case-insensitive), if listed."""

    wanted = name.strip().lower()
    for commodity in COMMODITY_CATALOG:
        if commodity.lower() == wanted:
            return commodity
    return None


def search_commodities(query: str | None, limit: int = DEFAULT_SEARCH_LIMIT) -> list[str]:
    if not query or not query.strip():
        return []
    needle = query.strip().lower()
    matches = [item for item in COMMODITY_CATALOG if needle in item.lower()]
    return matches[:limit]


def iter_commodities(names: Iterable[str] | None = None) -> tuple[str, ...]:
    if names is None:
        return DEFAULT_LOAD_COMMODITIES
    selected = []
    for name in names:
        commodity = get_commodity(name)
        if commodity and commodity not in selected:
            selected.append(commodity)
    return tuple(selected)


__all__ = [
    "COMMODITY_CATALOG",
    "ConfigurationError",
    "DEFAULT_COMMODITY",
    "DEFAULT_LOAD_COMMODITIES",
    "ForecastSettings",
    "get_commodity",
    "iter_commodities",
    "search_commodities",
]
