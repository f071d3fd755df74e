"""
Test Configuration and Fixtures for the Panel Analytics Engine
==============================================================

Shared fixtures for the aggregation engine tests:

1. **Record Factories**: Raw rows in the fetch collaborator's JSON shape
2. **Catalogs and Profiles**: Event catalog plus a three-panel dashboard profile
3. **Fake Fetcher**: Async fetch collaborator with per-call gates for ordering control
4. **Frozen Clock**: Deterministic "now" for day comparison and snapshots
"""

import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import (
    DashboardProfile,
    DateRangeState,
    EventConfig,
    FilterState,
    FunnelConfig,
    FunnelStage,
    PanelConfig,
    PercentageConfig,
)

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# =============================================================================
# TEST DATA FACTORIES
# =============================================================================


def make_record(
    event_id: Any,
    timestamp: datetime,
    count: int,
    success: Optional[int] = None,
    fail: int = 0,
    **fields: Any,
) -> dict[str, Any]:
    """Raw row as the fetch collaborator returns it (camelCase keys)"""
    row = {
        "eventId": event_id,
        "timestamp": timestamp.isoformat(),
        "count": count,
        "successCount": count - fail if success is None else success,
        "failCount": fail,
    }
    row.update(fields)
    return row


class FakeFetcher:
    """
    In-memory fetch collaborator.

    ``gates`` holds asyncio.Events consumed one per graph call, so a test can
    decide in which order overlapping fetches resolve. ``responder`` maps the
    call arguments to rows; otherwise ``records`` is returned.
    """

    def __init__(self, records: Optional[list] = None, pie: Optional[dict] = None):
        self.records = records or []
        self.pie = pie
        self.calls: list[dict[str, Any]] = []
        self.pie_calls: list[dict[str, Any]] = []
        self.gates: list[asyncio.Event] = []
        self.error: Optional[Exception] = None
        self.responder: Optional[Callable[[dict[str, Any]], list]] = None

    async def fetch_graph(self, event_ids, platform_ids, pos_ids, source_ids, start, end):
        call = {
            "event_ids": list(event_ids),
            "platform_ids": list(platform_ids),
            "pos_ids": list(pos_ids),
            "source_ids": list(source_ids),
            "start": start,
            "end": end,
        }
        self.calls.append(call)
        gate = self.gates.pop(0) if self.gates else None
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        rows = self.responder(call) if self.responder else self.records
        return {"data": list(rows)}

    async def fetch_pie_chart(self, event_ids, platform_ids, pos_ids, source_ids, start, end):
        self.pie_calls.append({"event_ids": list(event_ids)})
        return self.pie or {}


# =============================================================================
# STANDARD TEST FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def base_timestamp():
    """Standard base timestamp for all tests."""
    return datetime(2024, 1, 1, 10, 0, 0)


@pytest.fixture(scope="session")
def event_catalog():
    return {"1": "Login Success", "2": "Checkout", "3": "Payment", "4": "UPI", "5": "Card"}


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def hourly_records(base_timestamp):
    """Two events over three hours of Jan 1"""
    return [
        make_record(1, base_timestamp, 10, success=8, fail=2),
        make_record(2, base_timestamp, 5, success=5),
        make_record(1, base_timestamp + timedelta(hours=1), 7, success=7),
        make_record(2, base_timestamp + timedelta(hours=1, minutes=30), 3, success=2, fail=1),
        make_record(1, base_timestamp + timedelta(hours=2), 4, success=4),
    ]


@pytest.fixture
def frozen_now():
    return datetime(2024, 1, 3, 10, 0, 0)


@pytest.fixture
def clock(frozen_now):
    return lambda: frozen_now


@pytest.fixture
def day_range():
    return DateRangeState(datetime(2024, 1, 1), datetime(2024, 1, 2))


@pytest.fixture
def dashboard_profile():
    """Three panels: main series, checkout funnel, percentage with day overlay"""
    events = [
        EventConfig("1", "Login Success", "#3b82f6"),
        EventConfig("2", "Checkout", "#10b981"),
        EventConfig("3", "Payment", "#ef4444", is_error_event=1),
    ]
    return DashboardProfile(
        profile_id="profile-1",
        profile_name="Checkout health",
        feature_id="42",
        panels=[
            PanelConfig(
                panel_id="main",
                panel_name="Main",
                events=events[:2],
                default_filters=FilterState(events=[1, 2]),
            ),
            PanelConfig(
                panel_id="funnel",
                panel_name="Checkout funnel",
                events=events,
                default_filters=FilterState(events=[1, 2, 3], platforms=[0]),
                funnel_config=FunnelConfig(
                    stages=[FunnelStage("1", "Login Success"), FunnelStage("2", "Checkout")],
                    multiple_child_events=["3"],
                ),
            ),
            PanelConfig(
                panel_id="ratio",
                panel_name="Payment ratio",
                events=events,
                pie_charts_enabled=True,
                daily_deviation_curve=True,
                percentage_config=PercentageConfig(parent_events=["2"], child_events=["3"]),
            ),
        ],
        auto_refresh_seconds=0,
        default_days=1,
    )


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def fetcher_factory():
    """FakeFetcher constructor, for tests that seed rows or a pie payload"""
    return FakeFetcher
