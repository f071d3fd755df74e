"""
Tests for model invariants: derived funnel percentages, filter coercion,
sub-filter parsing and panel status
"""

from datetime import datetime

import pytest

from models import (
    FilterState,
    FunnelStageData,
    PanelData,
    SubFilter,
    SubFilterDimension,
)


@pytest.mark.edge_case
class TestFunnelStageData:
    def test_percentages_derived_from_counts(self):
        stage = FunnelStageData("2", "B", count=30, first_stage_count=120, previous_stage_count=60)
        assert stage.percentage == pytest.approx(25)
        assert stage.dropoff_percentage == pytest.approx(50)

    @pytest.mark.parametrize("first,previous", [(0, 0), (-5, None)])
    def test_division_by_zero_yields_zero(self, first, previous):
        stage = FunnelStageData("2", "B", count=30, first_stage_count=first, previous_stage_count=previous)
        assert stage.percentage == 0.0
        assert stage.dropoff_percentage == 0.0


@pytest.mark.filters
class TestFilterState:
    def test_to_and_from_dict(self):
        state = FilterState.from_dict({"events": ["3", 1], "pos": None})
        assert state.to_dict() == {"events": [1, 3], "platforms": [], "pos": [], "sources": []}
        assert state.is_all("pos")
        assert not state.is_all("events")

    def test_unknown_dimension(self):
        with pytest.raises(KeyError):
            FilterState().get("colour")


@pytest.mark.funnel
class TestSubFilter:
    def test_status_wins_over_cache(self):
        sub_filter = SubFilter.from_dict({"statusCodes": [200, ""], "cacheStatus": ["HIT"]})
        assert sub_filter == SubFilter(SubFilterDimension.STATUS, ("200",))

    def test_empty_lists_mean_no_filter(self):
        assert SubFilter.from_dict({"statusCodes": [], "cacheStatus": []}) is None
        assert SubFilter.from_dict(None) is None


@pytest.mark.panel_store
class TestPanelDataStatus:
    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({}, "idle"),
            ({"loading": True}, "loading"),
            ({"error": "x"}, "failed"),
            ({"error": "x", "last_updated": datetime(2024, 1, 1)}, "stale"),
            ({"last_updated": datetime(2024, 1, 1)}, "ready"),
        ],
    )
    def test_status(self, fields, expected):
        assert PanelData(panel_id="p", **fields).status == expected
