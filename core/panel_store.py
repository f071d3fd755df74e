"""
Panel data store.

Owns the per-panel PanelData snapshots of one dashboard session. Each
refresh resolves the panel's filters and date range, awaits the fetch
collaborator and runs the pure aggregations; the resulting snapshot then
replaces the panel's entry as a whole.

Filter and date-range edits never refetch on their own. They mark every
panel dirty and raise ``pending_refresh`` until the panels are refreshed.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, tzinfo
from types import MappingProxyType
from typing import Any, Optional

from models import (
    FILTER_DIMENSIONS,
    DashboardProfile,
    DateRangeState,
    FilterState,
    PanelConfig,
    PanelData,
)

from .auto_refresh import AutoRefreshTimer
from .day_comparison import DayComparisonBuilder
from .distribution import build_pie_chart_data
from .exceptions import UnknownPanelError
from .fetcher import AnalyticsFetcher, extract_records
from .filter_resolution import resolve_date_range, resolve_panel_filters
from .funnel import FunnelCalculator
from .percentage import compute_percentage_for_config
from .series_builder import SeriesBuilder


class PanelDataStore:
    """Per-panel fetch, aggregate and snapshot bookkeeping"""

    def __init__(
        self,
        profile: DashboardProfile,
        fetcher: AnalyticsFetcher,
        date_range: Optional[DateRangeState] = None,
        global_filters: Optional[FilterState] = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        use_polars: bool = True,
    ):
        self.profile = profile
        self.fetcher = fetcher
        self.tz = tz
        self._clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)

        self.series_builder = SeriesBuilder(use_polars=use_polars, tz=tz)
        self.day_comparison_builder = DayComparisonBuilder(tz=tz)

        self._global_filters = global_filters or FilterState()
        self._global_range = date_range or DateRangeState.last_days(
            profile.default_days, now=self._clock()
        )
        self._overrides: dict[str, FilterState] = {}
        self._panel_ranges: dict[str, DateRangeState] = {}

        self._panels: dict[str, PanelData] = {
            panel.panel_id: PanelData(panel_id=panel.panel_id, show_legend=panel.show_legend)
            for panel in profile.panels
        }
        self.main_view: Optional[PanelData] = (
            self._panels[self.primary_panel_id] if self.primary_panel_id else None
        )

        self._tokens: dict[str, int] = {}
        self._in_flight: dict[str, tuple[FilterState, DateRangeState]] = {}
        self._dirty: set[str] = set()

        self._timer = AutoRefreshTimer(self._auto_refresh_tick, profile.auto_refresh_seconds)

    # ----- read side -------------------------------------------------------

    @property
    def panels_data_map(self) -> MappingProxyType:
        """Read-only view of panel id -> latest PanelData snapshot"""
        return MappingProxyType(self._panels)

    @property
    def primary_panel_id(self) -> Optional[str]:
        return self.profile.panels[0].panel_id if self.profile.panels else None

    @property
    def pending_refresh(self) -> bool:
        return bool(self._dirty)

    @property
    def dirty_panels(self) -> frozenset:
        return frozenset(self._dirty)

    @property
    def global_filters(self) -> FilterState:
        return self._global_filters

    @property
    def date_range(self) -> DateRangeState:
        return self._global_range

    def _panel_config(self, panel_id: str) -> PanelConfig:
        panel = self.profile.get_panel(panel_id)
        if panel is None:
            raise UnknownPanelError(panel_id)
        return panel

    def get_panel_filters(self, panel_id: str) -> FilterState:
        panel = self._panel_config(panel_id)
        return resolve_panel_filters(
            panel.default_filters,
            self._overrides.get(panel_id),
            self._global_filters,
            is_primary=panel_id == self.primary_panel_id,
        )

    def get_panel_date_range(self, panel_id: str) -> DateRangeState:
        self._panel_config(panel_id)
        return resolve_date_range(self._panel_ranges.get(panel_id), self._global_range)

    # ----- write side ------------------------------------------------------

    def _mark_all_dirty(self):
        self._dirty.update(self._panels)

    def set_global_filters(self, filters: FilterState):
        self._global_filters = filters
        self._mark_all_dirty()

    def set_panel_filters(self, panel_id: str, filters: Optional[FilterState]):
        """Set (or with None, clear) a panel's own filter override"""
        self._panel_config(panel_id)
        if filters is None:
            self._overrides.pop(panel_id, None)
        else:
            self._overrides[panel_id] = filters
        self._mark_all_dirty()

    def set_date_range(self, date_range: DateRangeState):
        self._global_range = date_range
        self._mark_all_dirty()

    def set_panel_date_range(self, panel_id: str, date_range: Optional[DateRangeState]):
        self._panel_config(panel_id)
        if date_range is None:
            self._panel_ranges.pop(panel_id, None)
        else:
            self._panel_ranges[panel_id] = date_range
        self._mark_all_dirty()

    def _store(self, data: PanelData):
        self._panels[data.panel_id] = data
        if data.panel_id == self.primary_panel_id:
            self.main_view = data

    # ----- refresh ---------------------------------------------------------

    async def refresh_panel(self, panel_id: str) -> PanelData:
        """
        Fetch and aggregate one panel.

        A call for a panel that is already loading the same filters/date
        range is a no-op. A call with different parameters supersedes the
        in-flight one, whose result is discarded when it arrives. Fetch
        failures are recorded on the panel and never raised.

        Returns:
            The panel's PanelData after this call
        """
        config = self._panel_config(panel_id)
        filters = self.get_panel_filters(panel_id)
        date_range = self.get_panel_date_range(panel_id)
        params = (filters, date_range)

        current = self._panels[panel_id]
        if current.loading and self._in_flight.get(panel_id) == params:
            self.logger.debug(f"Panel {panel_id} is already loading these parameters")
            return current

        token = self._tokens.get(panel_id, 0) + 1
        self._tokens[panel_id] = token
        self._in_flight[panel_id] = params
        self._dirty.discard(panel_id)
        self._store(replace(current, loading=True))

        try:
            ids = [sorted(filters.get(dimension)) for dimension in FILTER_DIMENSIONS]
            response = await self.fetcher.fetch_graph(*ids, date_range.start, date_range.end)
            pie_response = None
            if config.pie_charts_enabled:
                pie_response = await self.fetcher.fetch_pie_chart(
                    *ids, date_range.start, date_range.end
                )
            data = self._aggregate(
                config, extract_records(response), pie_response, filters, date_range
            )
        except asyncio.CancelledError:
            if token == self._tokens.get(panel_id):
                self._in_flight.pop(panel_id, None)
                self._store(replace(self._panels[panel_id], loading=False))
                self.logger.debug(f"Refresh of panel {panel_id} cancelled")
            raise
        except Exception as e:
            if token != self._tokens.get(panel_id):
                self.logger.debug(f"Discarding stale failure for panel {panel_id}")
                return self._panels[panel_id]
            self.logger.error(f"Refresh of panel {panel_id} failed: {str(e)}")
            self._in_flight.pop(panel_id, None)
            # last good snapshot stays intact, with the filters that produced it
            failed = replace(
                self._panels[panel_id],
                loading=False,
                error=str(e) or type(e).__name__,
            )
            self._store(failed)
            return failed

        if token != self._tokens.get(panel_id):
            self.logger.debug(f"Discarding stale result for panel {panel_id} (token {token})")
            return self._panels[panel_id]

        self._in_flight.pop(panel_id, None)
        self._store(data)
        self.logger.info(
            f"Panel {panel_id} refreshed: {len(data.graph_data)} buckets, "
            f"{len(data.event_keys)} events"
        )
        return data

    def _aggregate(
        self,
        config: PanelConfig,
        records: list[Any],
        pie_response: Optional[Any],
        filters: FilterState,
        date_range: DateRangeState,
    ) -> PanelData:
        series = self.series_builder.build(
            records, date_range.start, date_range.end, config.event_catalog, config.events
        )

        funnel_stages = None
        if config.funnel_config is not None:
            stages = FunnelCalculator(config.funnel_config).compute(records, config.event_catalog)
            funnel_stages = tuple(stages)

        percentage_series = None
        if config.percentage_config is not None:
            percentage_series = compute_percentage_for_config(
                records, config.percentage_config, date_range.start, date_range.end, tz=self.tz
            )

        day_comparison = None
        if config.daily_deviation_curve:
            # the overlay needs an explicit selection; "all" means the panel's events
            selected = [str(e) for e in sorted(filters.events)] or [
                event.event_id for event in config.events
            ]
            day_comparison = tuple(
                self.day_comparison_builder.build(
                    records, selected, config.event_catalog, now=self._clock()
                )
            )

        return PanelData(
            panel_id=config.panel_id,
            graph_data=tuple(series.points),
            event_keys=tuple(series.event_keys),
            pie_chart_data=build_pie_chart_data(pie_response) if pie_response is not None else None,
            loading=False,
            error=None,
            filters=filters,
            date_range=date_range,
            show_legend=config.show_legend,
            funnel_stages=funnel_stages,
            percentage_series=percentage_series,
            day_comparison=day_comparison,
            last_updated=self._clock(),
        )

    async def refresh_all(self) -> MappingProxyType:
        """Refresh every panel in profile order, one at a time"""
        for panel in self.profile.panels:
            await self.refresh_panel(panel.panel_id)
        return self.panels_data_map

    # ----- auto refresh ----------------------------------------------------

    async def _auto_refresh_tick(self):
        if self.primary_panel_id is not None:
            await self.refresh_panel(self.primary_panel_id)

    @property
    def auto_refresh_running(self) -> bool:
        return self._timer.running

    def start_auto_refresh(self):
        """Start the profile's auto-refresh interval; needs a running event loop"""
        self._timer.start()

    def set_auto_refresh(self, seconds: float):
        """Replace the interval, cancelling any running timer first; 0 disables"""
        self._timer.set_interval(seconds)

    def close(self):
        self._timer.stop()
