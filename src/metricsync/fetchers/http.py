"""HTTP fetcher for series data endpoints.

Wire shape::

    GET {base_url}/resource/{resource_id}/series/{series_id}/data
        ?startDate=...&endDate=...&aggregation=...
    -> [{"id", "metricId", "value", "timestamp", "quality"}, ...]
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import httpx
import structlog

from ..errors import FetchError, SampleParseError
from ..models import Sample

logger = structlog.get_logger(__name__)


def _format_param(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class HttpSeriesFetcher:
    """Async callable ``fetcher(series_id) -> list[Sample]`` bound to one resource.

    Every failure (transport, non-2xx status, malformed body) is raised as
    FetchError so the polling layer can retry it.
    """

    def __init__(
        self,
        base_url: str,
        resource_id: str,
        *,
        start_date: Optional[datetime | str] = None,
        end_date: Optional[datetime | str] = None,
        aggregation: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.resource_id = resource_id
        self.start_date = start_date
        self.end_date = end_date
        self.aggregation = aggregation
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: Any, resource_id: str, **kwargs: Any) -> "HttpSeriesFetcher":
        return cls(
            config.get("fetcher.base_url"),
            resource_id,
            timeout_seconds=float(config.get("fetcher.timeout_seconds")),
            **kwargs,
        )

    def url_for(self, series_id: str) -> str:
        return f"{self.base_url}/resource/{self.resource_id}/series/{series_id}/data"

    def params(self) -> dict[str, str]:
        raw = {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "aggregation": self.aggregation,
        }
        return {key: _format_param(value) for key, value in raw.items() if value is not None}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpSeriesFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def __call__(self, series_id: str) -> list[Sample]:
        url = self.url_for(series_id)
        try:
            resp = await self._get_client().get(url, params=self.params())
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("series_fetch_http_error", series_id=series_id, status_code=status)
            raise FetchError(f"GET {url} returned HTTP {status}", metric_id=series_id, status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.warning("series_fetch_transport_error", series_id=series_id, error=str(exc))
            raise FetchError(f"GET {url} failed: {exc}", metric_id=series_id) from exc
        except ValueError as exc:
            raise FetchError(f"GET {url} returned invalid JSON: {exc}", metric_id=series_id) from exc

        if not isinstance(payload, list):
            raise FetchError(f"GET {url} returned {type(payload).__name__}, expected a list", metric_id=series_id)

        try:
            samples = [Sample.from_dict(item) for item in payload]
        except SampleParseError as exc:
            raise FetchError(str(exc), metric_id=series_id) from exc

        logger.debug("series_fetched", series_id=series_id, samples=len(samples))
        return samples
