import asyncio

import httpx
import pytest
from tenacity import wait_none

from pipelines.common import fetch_json, is_retryable
from pipelines.sources.data_gov import fetch_mandi_prices, to_observation

SAMPLE_PAYLOAD = {
    "total": 3,
    "records": [
        {
            "state": "Maharashtra",
            "district": "Nashik",
            "market": "Lasalgaon",
            "commodity": "Onion",
            "variety": "Red",
            "arrival_date": "21/03/2024",
            "min_price": "1200",
            "max_price": "1800",
            "modal_price": "1550",
        },
        {
            "market": "Pimpalgaon",
            "commodity": "Onion",
            "arrival_date": "22/03/2024",
            "modal_price": "",
        },
        "not-a-record",
    ],
}


def test_to_observation_maps_mandi_fields():
    obs = to_observation(SAMPLE_PAYLOAD["records"][0])

    assert obs.date == "21/03/2024"
    assert obs.price == "1550"
    assert obs.market == "Lasalgaon"
    assert obs.commodity == "Onion"
    assert obs.variety == "Red"
    assert obs.raw_payload["variety"] == "Red"


def test_to_observation_tolerates_missing_fields():
    obs = to_observation({}, commodity="Tomato")

    assert obs.date == ""
    assert obs.price is None
    assert obs.market is None
    assert obs.commodity == "Tomato"


def test_fetch_mandi_prices_builds_request_and_normalizes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        return httpx.Response(200, json=SAMPLE_PAYLOAD)

    observations = asyncio.run(
        fetch_mandi_prices(
            "Onion",
            api_key="secret",
            limit=25,
            transport=httpx.MockTransport(handler),
        )
    )

    assert [obs.date for obs in observations] == ["21/03/2024", "22/03/2024"]
    params = seen["url"].params
    assert params["api-key"] == "secret"
    assert params["format"] == "json"
    assert params["filters[commodity]"] == "Onion"
    assert params["limit"] == "25"


def test_fetch_mandi_prices_skips_without_api_key(monkeypatch):
    monkeypatch.delenv("DATA_GOV_API_KEY", raising=False)

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("network should not be touched")

    result = asyncio.run(fetch_mandi_prices("Onion", transport=httpx.MockTransport(handler)))

    assert result == []


def test_fetch_mandi_prices_handles_payload_without_records(monkeypatch):
    monkeypatch.setenv("DATA_GOV_API_KEY", "secret")
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"message": "ok"}))

    assert asyncio.run(fetch_mandi_prices("Onion", transport=transport)) == []


def test_fetch_json_raises_client_errors_without_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, json={"error": "forbidden"})

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(fetch_json("https://example.test/data", transport=httpx.MockTransport(handler)))

    assert len(calls) == 1


def test_fetch_json_retries_server_errors():
    responses = iter([httpx.Response(503), httpx.Response(200, json={"records": []})])
    fast_fetch = fetch_json.retry_with(wait=wait_none())

    payload = asyncio.run(
        fast_fetch(
            "https://example.test/data",
            transport=httpx.MockTransport(lambda request: next(responses)),
        )
    )

    assert payload == {"records": []}


@pytest.mark.parametrize(
    "status, expected",
    [(429, True), (500, True), (503, True), (400, False), (404, False)],
)
def test_is_retryable_status_codes(status, expected):
    request = httpx.Request("GET", "https://example.test")
    response = httpx.Response(status, request=request)
    exc = httpx.HTTPStatusError("boom", request=request, response=response)

    assert is_retryable(exc) is expected


def test_is_retryable_transport_errors():
    assert is_retryable(httpx.ConnectError("down")) is True
    assert is_retryable(ValueError("nope")) is False
