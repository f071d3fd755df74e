"""
Core Aggregation Engine for Panel Analytics
===========================================

This module contains the panel analytics engine:
- SeriesBuilder: Time-bucketed per-event series (Polars with pandas fallback)
- FunnelCalculator: Funnel stages, drop-off and final-stage fan-out
- DayComparisonBuilder: Per-day hourly overlay series
- PanelDataStore: Per-panel fetch/aggregate snapshots and refresh policy
- ProfileConfigManager: Dashboard profile persistence

Usage:
    from core import PanelDataStore, build_series, compute_funnel, build_day_comparison
"""

from .auto_refresh import AutoRefreshTimer
from .config_manager import ProfileConfigManager
from .day_comparison import (
    DayComparisonBuilder,
    build_day_comparison,
    smooth_series,
    summarize_day_comparison,
)
from .distribution import build_pie_chart_data
from .exceptions import AnalyticsError, FetchError, ProfileConfigError, UnknownPanelError
from .fetcher import AnalyticsFetcher, HttpAnalyticsFetcher
from .filter_resolution import resolve_date_range, resolve_panel_filters
from .funnel import FunnelCalculator, compute_funnel
from .panel_store import PanelDataStore
from .percentage import compute_percentage_series
from .series_builder import SeriesBuilder, build_series

__all__ = [
    "AnalyticsError",
    "AnalyticsFetcher",
    "AutoRefreshTimer",
    "DayComparisonBuilder",
    "FetchError",
    "FunnelCalculator",
    "HttpAnalyticsFetcher",
    "PanelDataStore",
    "ProfileConfigError",
    "ProfileConfigManager",
    "SeriesBuilder",
    "UnknownPanelError",
    "build_day_comparison",
    "build_pie_chart_data",
    "build_series",
    "compute_funnel",
    "compute_percentage_series",
    "resolve_date_range",
    "resolve_panel_filters",
    "smooth_series",
    "summarize_day_comparison",
]
