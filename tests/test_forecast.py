import math

import pytest

from pipelines.forecast import (
    EmptyDataError,
    ForecastEngine,
    clean,
    coerce_price,
    forecast,
    parse_date,
    trend_factor,
    trend_slope,
    weighted_average,
)
from pipelines.model import CleanedObservation, PriceObservation


def _obs(date, price, market=None):
    return PriceObservation(date=date, price=price, market=market)


def _cleaned(*prices):
    return [
        CleanedObservation(date=f"{day:02d}/01/2024", price=price)
        for day, price in enumerate(prices, start=1)
    ]


def test_clean_drops_missing_and_non_numeric_prices():
    raw = [
        _obs("01/01/2024", "100"),
        _obs("02/01/2024", None),
        _obs("03/01/2024", "abc"),
        _obs("04/01/2024", "NaN"),
        _obs("05/01/2024", "inf"),
        _obs("06/01/2024", 120),
    ]

    cleaned = clean(raw)

    assert [obs.date for obs in cleaned] == ["01/01/2024", "06/01/2024"]
    assert [obs.price for obs in cleaned] == [100.0, 120.0]


def test_clean_sorts_by_parsed_date():
    raw = [
        _obs("03/02/2024", "30"),
        _obs("01/01/2024", "10"),
        _obs("15/01/2024", "20"),
    ]

    cleaned = clean(raw)

    assert [obs.date for obs in cleaned] == ["01/01/2024", "15/01/2024", "03/02/2024"]


def test_clean_keeps_first_record_for_duplicate_dates():
    raw = [
        _obs("02/01/2024", "200", market="Lasalgaon"),
        _obs("01/01/2024", "100"),
        _obs("02/01/2024", "250", market="Pimpalgaon"),
    ]

    cleaned = clean(raw)

    assert len(cleaned) == 2
    assert cleaned[1].price == 200.0
    assert cleaned[1].market == "Lasalgaon"


def test_clean_output_has_no_duplicate_dates_and_is_ordered():
    raw = [_obs(f"{day:02d}/03/2024", str(day * 10)) for day in (5, 3, 5, 1, 3, 2)]

    cleaned = clean(raw)
    parsed = [parse_date(obs.date) for obs in cleaned]

    assert len(set(parsed)) == len(parsed)
    assert parsed == sorted(parsed)


def test_clean_drops_unparseable_dates_and_negative_prices():
    raw = [_obs("not-a-date", "100"), _obs("01/01/2024", "-5"), _obs("2024-01-02", "7")]

    cleaned = clean(raw)

    assert [obs.date for obs in cleaned] == ["2024-01-02"]


def test_clean_passes_market_through():
    cleaned = clean([_obs("01/01/2024", "100", market="Azadpur")])

    assert cleaned[0].market == "Azadpur"


def test_clean_raises_when_nothing_usable():
    with pytest.raises(EmptyDataError):
        clean([_obs("01/01/2024", None), _obs("02/01/2024", "n/a")])

    with pytest.raises(EmptyDataError):
        clean([])


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,250", 1250.0),
        (" 42.5 ", 42.5),
        (0, 0.0),
        (True, None),
        ("NA", None),
        (float("nan"), None),
        ([1], None),
    ],
)
def test_coerce_price(raw, expected):
    assert coerce_price(raw) == expected


def test_parse_date_accepts_known_formats():
    assert parse_date("21/03/2024").isoformat() == "2024-03-21"
    assert parse_date("2024-03-21").isoformat() == "2024-03-21"
    assert parse_date("21-03-2024").isoformat() == "2024-03-21"
    assert parse_date("") is None
    assert parse_date("31/02/2024") is None


def test_weighted_average_normalizes_by_used_weights():
    assert weighted_average([100, 100, 110]) == pytest.approx(36.5 / 0.35)


def test_weighted_average_full_window():
    prices = [10, 20, 30, 40, 50, 60, 70]
    weights = [0.10, 0.10, 0.15, 0.15, 0.20, 0.15, 0.15]
    expected = sum(p * w for p, w in zip(prices, weights)) / sum(weights)

    assert weighted_average(prices) == pytest.approx(expected)


def test_weighted_average_uses_fallback_weight_beyond_table():
    prices = [100] * 7 + [200]
    expected = (100 * 1.0 + 200 * 0.10) / 1.10

    assert weighted_average(prices) == pytest.approx(expected)


def test_trend_slope_matches_least_squares():
    assert trend_slope([100, 100, 110]) == pytest.approx(5.0)
    assert trend_slope([3, 2, 1]) == pytest.approx(-1.0)
    assert trend_slope([5, 5, 5]) == 0
    assert trend_slope([5]) == 0
    assert trend_slope([]) == 0


def test_trend_factor_depends_only_on_sign():
    assert trend_factor(0.0001) == 1.01
    assert trend_factor(500) == 1.01
    assert trend_factor(-0.0001) == 0.99
    assert trend_factor(0) == 1.0


def test_forecast_rising_example():
    raw = [
        _obs("01/01/2024", "100"),
        _obs("02/01/2024", "100"),
        _obs("03/01/2024", "110"),
    ]

    points = forecast(clean(raw))

    level = 36.5 / 0.35
    expected = [math.floor(level * 1.01**k + 0.5) for k in range(1, 8)]
    assert [p.price for p in points] == expected
    assert expected == [105, 106, 107, 109, 110, 111, 112]
    assert [p.label for p in points] == ["+1", "+2", "+3", "+4", "+5", "+6", "+7"]


def test_forecast_single_observation_is_flat():
    points = forecast(_cleaned(123.4))

    assert [p.price for p in points] == [123] * 7


def test_forecast_falling_trend_is_non_increasing():
    points = forecast(_cleaned(200, 190, 180, 170, 160))
    prices = [p.price for p in points]

    assert prices == sorted(prices, reverse=True)
    assert prices[-1] < prices[0]


def test_forecast_rising_trend_is_non_decreasing():
    prices = [p.price for p in forecast(_cleaned(50, 60, 55, 70, 80, 90))]

    assert prices == sorted(prices)


def test_forecast_uses_only_last_window():
    old_noise = _cleaned(10_000, 1, 10_000, 100, 100, 100, 100, 100, 100, 100)

    assert [p.price for p in forecast(old_noise)] == [100] * 7


def test_forecast_respects_horizon_and_non_negative_prices():
    points = forecast(_cleaned(0, 0, 0), horizon=3)

    assert len(points) == 3
    assert all(p.price >= 0 for p in points)


@pytest.mark.parametrize("kwargs", [{"window_size": 0}, {"trend_window": -1}, {"horizon": 0}])
def test_forecast_rejects_non_positive_parameters(kwargs):
    with pytest.raises(ValueError):
        forecast(_cleaned(100), **kwargs)


def test_forecast_requires_cleaned_data():
    with pytest.raises(EmptyDataError):
        forecast([])


def test_engine_run_is_deterministic():
    raw = [_obs(f"{day:02d}/05/2024", str(1000 + day * 7)) for day in range(1, 12)]
    engine = ForecastEngine()

    first = engine.run(raw, "Onion")
    second = engine.run(raw, "Onion")

    assert first == second
    assert first.model_dump() == second.model_dump()


def test_engine_run_builds_result_with_advice():
    raw = [_obs("01/01/2024", "100"), _obs("02/01/2024", "100"), _obs("03/01/2024", "110")]

    result = ForecastEngine(horizon=2).run(raw, "Onion")

    assert result.commodity == "Onion"
    assert len(result.historical) == 3
    assert [p.price for p in result.forecast] == [105, 106]
    assert result.advice is not None
    assert result.advice.action == "sell"


def test_engine_rejects_bad_configuration():
    with pytest.raises(ValueError):
        ForecastEngine(window_size=0)
