"""
Fetch collaborator boundary.

The engine only needs two calls: raw time-series rows for a filter set and a
window, and pre-aggregated distributions for the pie charts. Empty id lists
mean "no filter on this dimension" and are sent as-is.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Optional, Protocol, Union

import httpx

from .bucketing import is_hourly_range
from .exceptions import FetchError

logger = logging.getLogger(__name__)

GraphResponse = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]

DEFAULT_TIMEOUT = 30.0
SUCCESS_STATUS = 1


class AnalyticsFetcher(Protocol):
    async def fetch_graph(
        self,
        event_ids: Sequence[int],
        platform_ids: Sequence[int],
        pos_ids: Sequence[int],
        source_ids: Sequence[int],
        start: datetime,
        end: datetime,
    ) -> GraphResponse: ...

    async def fetch_pie_chart(
        self,
        event_ids: Sequence[int],
        platform_ids: Sequence[int],
        pos_ids: Sequence[int],
        source_ids: Sequence[int],
        start: datetime,
        end: datetime,
    ) -> Mapping[str, Any]: ...


def extract_records(response: Optional[GraphResponse]) -> list[Mapping[str, Any]]:
    """Rows from either a bare list or a ``{data: [...]}`` response"""
    if not response:
        return []
    if isinstance(response, Mapping):
        rows = response.get("data") or response.get("records") or []
    else:
        rows = response
    return list(rows)


def format_request_time(moment: datetime, end_of_day: bool) -> str:
    """Day-aligned request bounds: ``YYYY-MM-DD 00:00:01`` / ``YYYY-MM-DD 23:59:59``"""
    suffix = "23:59:59" if end_of_day else "00:00:01"
    return f"{moment:%Y-%m-%d} {suffix}"


def build_request_body(
    event_ids: Sequence[int],
    platform_ids: Sequence[int],
    pos_ids: Sequence[int],
    source_ids: Sequence[int],
    start: datetime,
    end: datetime,
) -> dict[str, Any]:
    return {
        "filter": {
            "eventId": list(event_ids),
            "platform": list(platform_ids),
            "pos": list(pos_ids),
            "source": list(source_ids),
        },
        "startTime": format_request_time(start, end_of_day=False),
        "endTime": format_request_time(end, end_of_day=True),
        "isHourly": is_hourly_range(start, end),
    }


class HttpAnalyticsFetcher:
    """AnalyticsFetcher over the dashboard's JSON HTTP API"""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout=timeout, connect=10.0),
            headers={"Content-Type": "application/json"},
        )
        logger.info(f"Initialized HTTP analytics fetcher: {self.base_url}")

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.post(url, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Analytics API timeout on {path}: {e}")
            raise FetchError(f"Request to {path} timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Analytics API error on {path}: {e}")
            raise FetchError(
                f"Request to {path} failed: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Analytics API transport error on {path}: {e}")
            raise FetchError(f"Failed to reach {path}: {e}") from e
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {path}: {e}") from e

        if not isinstance(payload, dict) or payload.get("status") != SUCCESS_STATUS:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise FetchError(f"{path} returned an unsuccessful status: {message or 'unknown'}")
        return payload

    async def fetch_graph(
        self,
        event_ids: Sequence[int],
        platform_ids: Sequence[int],
        pos_ids: Sequence[int],
        source_ids: Sequence[int],
        start: datetime,
        end: datetime,
    ) -> dict[str, Any]:
        """Pre-aggregated ``/graphV2`` first, granular ``/graph`` on any failure"""
        body = build_request_body(event_ids, platform_ids, pos_ids, source_ids, start, end)
        try:
            payload = await self._post("/graphV2", body)
        except FetchError as e:
            logger.warning(f"graphV2 failed ({e}), falling back to /graph")
            payload = await self._post("/graph", body)

        records = extract_records(payload)
        logger.debug(f"Fetched {len(records)} graph records")
        return {"data": records}

    async def fetch_pie_chart(
        self,
        event_ids: Sequence[int],
        platform_ids: Sequence[int],
        pos_ids: Sequence[int],
        source_ids: Sequence[int],
        start: datetime,
        end: datetime,
    ) -> dict[str, Any]:
        body = build_request_body(event_ids, platform_ids, pos_ids, source_ids, start, end)
        payload = await self._post("/pieChart", body)
        return {"data": payload.get("data") or {}}

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
