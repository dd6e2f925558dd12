"""Sell/hold hint comparing the last observed price with the next forecast step."""

from __future__ import annotations

from typing import Sequence

from pipelines.model import AdviceAction, CleanedObservation, ForecastPoint, MarketAdvice


def derive_advice(
    historical: Sequence[CleanedObservation],
    forecast: Sequence[ForecastPoint],
) -> MarketAdvice | None:
    """Return a hint, or ``None`` when either reference price is missing or zero."""

    if not historical or not forecast:
        return None
    last_price = historical[-1].price
    next_price = forecast[0].price
    if not last_price or not next_price:
        return None

    change = (next_price - last_price) / last_price * 100
    if next_price > last_price:
        action = AdviceAction.hold
        message = f"Hold your crop, price may rise by {change:.1f}%."
    elif next_price < last_price:
        action = AdviceAction.sell
        message = f"Better to sell soon, price may drop by {abs(change):.1f}%."
    else:
        action = AdviceAction.stable
        message = "Prices look stable."

    return MarketAdvice(action=action, percent_change=round(change, 1), message=message)


__all__ = ["derive_advice"]
