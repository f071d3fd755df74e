"""
Tests for the child/parent percentage series
"""

from datetime import datetime, timedelta

import pytest

from core.percentage import compute_percentage_for_config, compute_percentage_series
from models import PercentageConfig, SubFilter, SubFilterDimension

START = datetime(2024, 1, 1)
END = START + timedelta(days=1)


def row(event_id, hour, count, success=0, **fields):
    return {
        "eventId": event_id,
        "timestamp": START + timedelta(hours=hour),
        "count": count,
        "successCount": success,
        **fields,
    }


@pytest.mark.percentage
class TestPercentageSeries:
    def test_ratio_per_bucket(self):
        records = [
            row(1, 10, 100, success=90),
            row(2, 10, 45),
            row(1, 11, 50, success=50),
            row(2, 11, 10, success=10),
        ]
        series = compute_percentage_series(records, ["1"], ["2"], START, END)

        assert [p.date for p in series.points] == ["Jan 1, 10 AM", "Jan 1, 11 AM"]
        assert [p.percentage for p in series.points] == pytest.approx([50, 20])
        assert (series.total_parent, series.total_child) == (140, 55)
        assert series.percentage == pytest.approx(55 / 140 * 100)
        assert series.min_percentage == pytest.approx(20)
        assert series.max_percentage == pytest.approx(50)

    def test_multiple_parents_and_children(self):
        records = [row(1, 10, 60), row(3, 10, 40), row(2, 10, 10), row(4, 10, 15)]
        series = compute_percentage_series(records, ["1", "3"], ["2", "4"], START, END)
        assert series.points[0].percentage == pytest.approx(25)

    def test_sub_filter_replaces_totals(self):
        sub_filter = SubFilter(SubFilterDimension.STATUS, ("200",))
        records = [
            row(1, 10, 100, status="200"),
            row(2, 10, 80, status="200"),
            row(2, 10, 20, status="500"),
        ]
        series = compute_percentage_series(records, ["1"], ["2"], START, END, sub_filter=sub_filter)
        assert series.points[0].percentage == pytest.approx(80)

    def test_daily_buckets_for_long_ranges(self):
        records = [row(1, 1, 10), row(1, 30, 10), row(2, 30, 5)]
        series = compute_percentage_series(records, ["1"], ["2"], START, START + timedelta(days=30))
        assert [(p.date, p.percentage) for p in series.points] == [("Jan 1", 0.0), ("Jan 2", 50.0)]

    def test_from_config(self):
        config = PercentageConfig(parent_events=["1"], child_events=["2"])
        series = compute_percentage_for_config([row(1, 10, 4), row(2, 10, 1)], config, START, END)
        assert series.percentage == pytest.approx(25)

    @pytest.mark.edge_case
    def test_zero_parent_is_zero_percent(self):
        series = compute_percentage_series([row(2, 10, 5)], ["1"], ["2"], START, END)
        assert series.points[0].percentage == 0.0
        assert series.percentage == 0.0

    @pytest.mark.edge_case
    def test_empty(self):
        series = compute_percentage_series([], ["1"], ["2"], START, END)
        assert series.points == ()
        assert (series.min_percentage, series.max_percentage, series.percentage) == (0.0, 0.0, 0.0)
