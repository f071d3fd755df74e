#!/usr/bin/env python3
"""
Test Suite for ProfileConfigManager
===================================

Test Categories:
1. Profile Saving and Loading
2. JSON Serialization/Deserialization of panel configs
3. Download Link Generation
4. Error Handling for malformed profiles
"""

import base64
import json

import pytest

from core.config_manager import ProfileConfigManager
from core.exceptions import ProfileConfigError
from models import (
    DashboardProfile,
    GraphType,
    MetricMode,
    SubFilterDimension,
)


@pytest.mark.config_management
class TestProfileConfigManagerSaveLoad:
    def test_save_profile_structure(self, dashboard_profile):
        profile_json = ProfileConfigManager.save_profile(dashboard_profile)

        data = json.loads(profile_json)
        assert "saved_at" in data
        assert data["profile"]["profileId"] == "profile-1"
        assert data["profile"]["defaultSettings"] == {"autoRefresh": 0, "defaultDays": 1}
        assert [p["panelId"] for p in data["profile"]["panels"]] == ["main", "funnel", "ratio"]

    def test_round_trip(self, dashboard_profile):
        loaded = ProfileConfigManager.load_profile(ProfileConfigManager.save_profile(dashboard_profile))
        assert loaded == dashboard_profile

    def test_load_bare_profile_object(self):
        raw = {
            "profileId": "p",
            "profileName": "Raw",
            "featureId": 3,
            "defaultSettings": {"autoRefresh": 30, "defaultDays": 14},
            "panels": [
                {
                    "panelId": "a",
                    "panelName": "Panel A",
                    "events": [{"eventId": 5, "eventName": "Pay", "isErrorEvent": 1}],
                    "filterConfig": {
                        "events": [5],
                        "platforms": ["0", "1"],
                        "graphType": "funnel",
                        "funnelConfig": {
                            "stages": [{"eventId": 5, "eventName": "Pay"}],
                            "multipleChildEvents": [6, 7],
                            "filters": {"statusCodes": ["200"], "cacheStatus": ["HIT"]},
                            "metricMode": "avgDelay",
                        },
                    },
                    "visualizations": {
                        "lineGraph": {"showLegend": False},
                        "pieCharts": [{"type": "platform", "enabled": True}],
                    },
                }
            ],
        }
        profile = ProfileConfigManager.load_profile(json.dumps(raw))

        assert isinstance(profile, DashboardProfile)
        assert (profile.feature_id, profile.auto_refresh_seconds, profile.default_days) == ("3", 30, 14)
        panel = profile.panels[0]
        assert panel.graph_type == GraphType.FUNNEL
        assert panel.default_filters.platforms == frozenset({0, 1})
        assert not panel.show_legend
        assert panel.pie_charts_enabled
        assert panel.events[0].is_error_event == 1
        assert panel.funnel_config.multiple_child_events == ["6", "7"]
        assert panel.funnel_config.metric_mode == MetricMode.AVG_DELAY
        # status codes win over cache status
        assert panel.funnel_config.sub_filter.dimension == SubFilterDimension.STATUS
        assert panel.event_catalog == {"5": "Pay"}


@pytest.mark.config_management
class TestProfileConfigManagerErrors:
    @pytest.mark.parametrize("payload", ["{not json", "[1, 2]", '{"profile": {"panels": []}}'])
    def test_malformed_profiles(self, payload):
        with pytest.raises(ProfileConfigError):
            ProfileConfigManager.load_profile(payload)

    def test_unknown_graph_type(self):
        payload = json.dumps(
            {"profileId": "p", "panels": [{"panelId": "a", "filterConfig": {"graphType": "radar"}}]}
        )
        with pytest.raises(ValueError):
            ProfileConfigManager.load_profile(payload)


@pytest.mark.config_management
class TestDownloadLink:
    def test_create_download_link(self, dashboard_profile):
        profile_json = ProfileConfigManager.save_profile(dashboard_profile)
        link = ProfileConfigManager.create_download_link(profile_json, "profile.json")

        assert link.startswith('<a href="data:application/json;base64,')
        assert 'download="profile.json"' in link
        encoded = link.split("base64,")[1].split('"')[0]
        assert base64.b64decode(encoded).decode() == profile_json
