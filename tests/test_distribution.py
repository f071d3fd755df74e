"""
Tests for pie chart distribution normalization
"""

import pytest

from core.distribution import build_pie_chart_data
from models import PieChartData


@pytest.mark.distribution
class TestBuildPieChartData:
    def test_name_value_lists(self):
        data = build_pie_chart_data(
            {"platform": [{"name": "iOS", "value": 40}, {"name": "Android", "value": 60}]}
        )

        assert [s.name for s in data.platform] == ["Android", "iOS"]
        assert data.share("platform") == pytest.approx({"Android": 60.0, "iOS": 40.0})
        assert data.pos == ()

    def test_keyed_aggregates_pick_first_positive_metric(self):
        data = build_pie_chart_data(
            {
                "data": {
                    "pos": {
                        "1": {"count": 10, "successCount": 9, "failCount": 1},
                        "2": {"count": 0, "avgDelay": 30},
                        "3": {"count": 0, "medianDelay": 0, "modeDelay": 4},
                        "others": {"count": 5},
                    }
                }
            }
        )

        by_id = {s.id: s for s in data.pos}
        assert [s.id for s in data.pos] == ["2", "1", "others", "3"]
        assert by_id["2"].metric_type == "avgDelay"
        assert by_id["3"].metric_type == "modeDelay"
        assert by_id["1"].name == "POS 1"
        assert (by_id["1"].success_count, by_id["1"].fail_count) == (9, 1)
        assert by_id["others"].name == "Others"

    def test_source_names(self):
        data = build_pie_chart_data({"source": {"7": {"count": 3}}})
        assert data.source[0].name == "Source 7"

    @pytest.mark.edge_case
    @pytest.mark.parametrize("response", [None, {}, {"data": []}])
    def test_empty_responses(self, response):
        assert build_pie_chart_data(response) == PieChartData()

    @pytest.mark.edge_case
    def test_share_of_empty_total(self):
        data = build_pie_chart_data({"platform": [{"name": "iOS", "value": 0}]})
        assert data.share("platform") == {"iOS": 0.0}
