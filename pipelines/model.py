"""Canonical data model for commodity price observations and forecasts."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class PriceObservation(BaseModel):
    """A single raw price record as mapped from an upstream source.

    Only the shape is enforced here; ``price`` and ``date`` are validated by the
    forecast engine, which drops records it cannot use.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    date: str = Field(
        ..., description="Calendar date as received from the source (e.g. '21/03/2024')."
    )
    price: Optional[Any] = Field(
        default=None,
        description="Price level as received; may be missing, textual or numeric.",
    )
    market: Optional[str] = Field(
        default=None, description="Market or location label, if the source provides one."
    )
    variety: Optional[str] = Field(
        default=None, description="Produce variety label (e.g. 'Red'), if reported."
    )
    commodity: Optional[str] = Field(
        default=None, description="Commodity name the record belongs to."
    )
    raw_payload: Optional[Any] = Field(
        default=None,
        description="Raw upstream record retained for traceability and debugging.",
    )


class CleanedObservation(BaseModel):
    """Validated observation used as historical input to the forecast."""

    model_config = ConfigDict(frozen=True)

    date: str = Field(..., description="Date label echoed from the source record.")
    price: float = Field(..., ge=0, description="Finite, non-negative price.")
    market: Optional[str] = Field(default=None, description="Market label passed through.")


class ForecastPoint(BaseModel):
    """One projected step of the forecast horizon."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: str = Field(
        ...,
        alias="date",
        description="Relative horizon offset such as '+1'.",
    )
    price: int = Field(..., ge=0, description="Projected price rounded to whole units.")


class AdviceAction(str, Enum):
    hold = "hold"
    sell = "sell"
    stable = "stable"


class MarketAdvice(BaseModel):
    """Qualitative sell/hold hint derived from the forecast."""

    model_config = ConfigDict(frozen=True)

    action: AdviceAction
    percent_change: float = Field(
        ..., description="Change from the last observed price to the first forecast, in %."
    )
    message: str


class ForecastResult(BaseModel):
    """Output contract served to presentation layers."""

    model_config = ConfigDict(frozen=True)

    commodity: str
    historical: list[CleanedObservation]
    forecast: list[ForecastPoint]
    advice: Optional[MarketAdvice] = None


__all__ = [
    "PriceObservation",
    "CleanedObservation",
    "ForecastPoint",
    "AdviceAction",
    "MarketAdvice",
    "ForecastResult",
]
