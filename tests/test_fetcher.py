"""
Tests for the HTTP fetch collaborator, driven through httpx.MockTransport
"""

import asyncio
import json
from datetime import datetime

import httpx
import pytest

from core.exceptions import FetchError
from core.fetcher import HttpAnalyticsFetcher, build_request_body, extract_records

START = datetime(2024, 1, 1, 9, 30)
END = datetime(2024, 1, 2, 18, 0)
BASE_URL = "http://analytics.test/api"


def make_fetcher(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAnalyticsFetcher(BASE_URL, client=client), client


def fetch_graph(fetcher):
    async def run():
        return await fetcher.fetch_graph([1, 2], [], [0], [], START, END)

    return asyncio.run(run())


@pytest.mark.fetcher
class TestRequestBody:
    def test_day_aligned_bounds_and_passthrough_ids(self):
        body = build_request_body([1], [], [], [5], START, END)

        assert body["startTime"] == "2024-01-01 00:00:01"
        assert body["endTime"] == "2024-01-02 23:59:59"
        assert body["isHourly"] is True
        assert body["filter"] == {"eventId": [1], "platform": [], "pos": [], "source": [5]}

    def test_extract_records(self):
        assert extract_records({"data": [{"a": 1}]}) == [{"a": 1}]
        assert extract_records([{"a": 1}]) == [{"a": 1}]
        assert extract_records(None) == []


@pytest.mark.fetcher
class TestHttpAnalyticsFetcher:
    def test_graph_v2_used_when_successful(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"status": 1, "data": [{"eventId": 1, "count": 3}]})

        fetcher, _ = make_fetcher(handler)
        response = fetch_graph(fetcher)

        assert response == {"data": [{"eventId": 1, "count": 3}]}
        assert [path for path, _ in seen] == ["/api/graphV2"]
        assert seen[0][1]["filter"]["eventId"] == [1, 2]
        assert seen[0][1]["filter"]["pos"] == [0]

    @pytest.mark.parametrize(
        "v2_response",
        [httpx.Response(500, json={}), httpx.Response(200, json={"status": 0, "message": "busy"})],
    )
    def test_falls_back_to_graph(self, v2_response):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            if request.url.path.endswith("/graphV2"):
                return v2_response
            return httpx.Response(200, json={"status": 1, "data": [{"eventId": 2}]})

        fetcher, _ = make_fetcher(handler)
        assert fetch_graph(fetcher) == {"data": [{"eventId": 2}]}
        assert seen == ["/api/graphV2", "/api/graph"]

    def test_failing_fallback_raises_fetch_error(self):
        def handler(request):
            return httpx.Response(503, json={})

        fetcher, _ = make_fetcher(handler)
        with pytest.raises(FetchError) as exc_info:
            fetch_graph(fetcher)
        assert exc_info.value.status_code == 503

    def test_transport_error_becomes_fetch_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher, _ = make_fetcher(handler)
        with pytest.raises(FetchError):
            fetch_graph(fetcher)

    def test_pie_chart(self):
        def handler(request):
            assert request.url.path == "/api/pieChart"
            return httpx.Response(200, json={"status": 1, "data": {"platform": {"0": {"count": 4}}}})

        fetcher, _ = make_fetcher(handler)

        async def run():
            return await fetcher.fetch_pie_chart([1], [], [], [], START, END)

        assert asyncio.run(run()) == {"data": {"platform": {"0": {"count": 4}}}}

    def test_pie_chart_unsuccessful_status(self):
        def handler(request):
            return httpx.Response(200, json={"status": 0})

        fetcher, _ = make_fetcher(handler)

        async def run():
            return await fetcher.fetch_pie_chart([1], [], [], [], START, END)

        with pytest.raises(FetchError):
            asyncio.run(run())

    def test_injected_client_left_open(self):
        fetcher, client = make_fetcher(lambda request: httpx.Response(200, json={"status": 1}))

        async def run():
            async with fetcher:
                pass

        asyncio.run(run())
        assert not client.is_closed

    def test_owned_client_closed(self):
        async def run():
            async with HttpAnalyticsFetcher(BASE_URL) as fetcher:
                client = fetcher.client
            return client

        assert asyncio.run(run()).is_closed
