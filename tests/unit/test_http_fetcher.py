"""Unit tests for HttpSeriesFetcher."""

from datetime import datetime, timezone

import httpx
import pytest

from src.metricsync.errors import FetchError
from src.metricsync.fetchers.http import HttpSeriesFetcher
from src.metricsync.models import Quality

ROWS = [
    {"id": "s1", "metricId": "cpu", "value": 12.5, "timestamp": "2024-01-01T00:00:00Z", "quality": "good"},
    {"id": "s2", "metricId": "cpu", "value": 14, "timestamp": "2024-01-01T01:00:00Z", "quality": "warning"},
]


def _fetcher(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSeriesFetcher("http://metrics.test/api/", "res-1", client=client, **kwargs), client


@pytest.mark.asyncio
async def test_fetch_parses_samples():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=ROWS)

    fetcher, client = _fetcher(handler)
    async with client:
        samples = await fetcher("cpu-series")

    assert seen[0].url.path == "/api/resource/res-1/series/cpu-series/data"
    assert [s.value for s in samples] == [12.5, 14.0]
    assert samples[1].quality == Quality.WARNING
    assert samples[0].timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_query_parameters_are_sent():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    fetcher, client = _fetcher(
        handler,
        start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        end_date="2024-01-31",
        aggregation="day",
    )
    async with client:
        assert await fetcher("cpu") == []

    params = seen[0].url.params
    assert params["startDate"] == "2024-01-01T00:00:00+00:00"
    assert params["endDate"] == "2024-01-31"
    assert params["aggregation"] == "day"


def test_params_omit_unset_values():
    fetcher = HttpSeriesFetcher("http://metrics.test", "res-1", aggregation="hour")
    assert fetcher.params() == {"aggregation": "hour"}


@pytest.mark.asyncio
async def test_http_error_status_raises_fetch_error():
    fetcher, client = _fetcher(lambda request: httpx.Response(503, text="busy"))
    async with client:
        with pytest.raises(FetchError) as exc_info:
            await fetcher("cpu")
    assert exc_info.value.status_code == 503
    assert exc_info.value.metric_id == "cpu"


@pytest.mark.asyncio
async def test_transport_error_raises_fetch_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    fetcher, client = _fetcher(handler)
    async with client:
        with pytest.raises(FetchError, match="failed"):
            await fetcher("cpu")


@pytest.mark.asyncio
async def test_invalid_json_raises_fetch_error():
    fetcher, client = _fetcher(lambda request: httpx.Response(200, text="<html>"))
    async with client:
        with pytest.raises(FetchError, match="invalid JSON"):
            await fetcher("cpu")


@pytest.mark.asyncio
async def test_non_list_payload_raises_fetch_error():
    fetcher, client = _fetcher(lambda request: httpx.Response(200, json={"data": ROWS}))
    async with client:
        with pytest.raises(FetchError, match="expected a list"):
            await fetcher("cpu")


@pytest.mark.asyncio
async def test_malformed_row_raises_fetch_error():
    rows = [{"id": "s1", "metricId": "cpu", "value": "high", "timestamp": "2024-01-01T00:00:00Z"}]
    fetcher, client = _fetcher(lambda request: httpx.Response(200, json=rows))
    async with client:
        with pytest.raises(FetchError, match="malformed sample"):
            await fetcher("cpu")


@pytest.mark.asyncio
async def test_injected_client_is_not_closed():
    fetcher, client = _fetcher(lambda request: httpx.Response(200, json=[]))
    async with fetcher:
        await fetcher("cpu")
    assert client.is_closed is False
    await client.aclose()


def test_from_config_reads_fetcher_keys():
    values = {"fetcher.base_url": "https://api.example.com/", "fetcher.timeout_seconds": 2.5}

    class _Config:
        def get(self, key):
            return values[key]

    fetcher = HttpSeriesFetcher.from_config(_Config(), "res-9", aggregation="week")
    assert fetcher.url_for("s") == "https://api.example.com/resource/res-9/series/s/data"
    assert fetcher.timeout_seconds == 2.5
    assert fetcher.aggregation == "week"


@pytest.mark.asyncio
async def test_nan_value_in_body_raises_fetch_error():
    body = b'[{"id": "s1", "metricId": "cpu", "value": NaN, "timestamp": "2024-01-01T00:00:00Z"}]'
    fetcher, client = _fetcher(
        lambda request: httpx.Response(200, content=body, headers={"content-type": "application/json"})
    )
    async with client:
        with pytest.raises(FetchError, match="non-finite"):
            await fetcher("cpu")
