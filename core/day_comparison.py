"""
Day-wise comparison builder.

Regroups raw rows by local calendar day and hour of day to overlay up to
seven 24-hour series. Cells without contributing rows stay ``None`` so the
chart can tell "no data" from a measured zero; a live "today" series stops
at the present hour instead of dropping to zero.

Unlike the panel filters, an empty event selection here means "nothing
selected" and yields all-``None`` series rather than "all events".
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime, tzinfo
from typing import Optional

import pandas as pd

from models import DailyTotal, DayComparisonInsights, DayComparisonSeries, HourlyDeviationPoint

from .bucketing import bucket_label, day_label, range_days, to_local
from .monitoring import performance_monitor, performance_report
from .records import EventCatalog, EventKeyRegistry, RawRecord, normalize_records

MAX_COMPARISON_DAYS = 7
HOURS_PER_DAY = 24
DEFAULT_SMOOTHING_WINDOW = 3

DAY_COLORS = (
    "#8b5cf6",  # purple
    "#06b6d4",  # cyan
    "#f59e0b",  # amber
    "#10b981",  # emerald
    "#ef4444",  # red
    "#ec4899",  # pink
    "#6366f1",  # indigo
)


class DayComparisonBuilder:
    """Builds per-day hourly overlay series"""

    def __init__(self, tz: Optional[tzinfo] = None, max_days: int = MAX_COMPARISON_DAYS):
        self.tz = tz
        self.max_days = max_days
        self._performance_metrics: dict[str, list[float]] = {}
        self.logger = logging.getLogger(__name__)

    def get_performance_report(self) -> dict[str, dict[str, float]]:
        return performance_report(self._performance_metrics)

    def _now(self, now: Optional[datetime]) -> datetime:
        if now is not None:
            return to_local(now, self.tz)
        return datetime.now(self.tz) if self.tz else datetime.now()

    def _cells(
        self,
        records: Iterable[RawRecord],
        event_keys_filter: Sequence[str],
        event_catalog: EventCatalog,
    ) -> tuple[list[date], dict[tuple[date, int], int]]:
        """All local days present plus (day, hour) -> summed count of selected events"""
        normalized = normalize_records(records)
        registry = EventKeyRegistry(event_catalog)
        selected = {str(key) for key in event_keys_filter}

        days = set()
        rows = []
        for record in normalized:
            local = to_local(record.timestamp, self.tz)
            days.add(local.date())
            if record.event_id in selected or registry.key_for(record.event_id) in selected:
                rows.append({"day": local.date(), "hour": local.hour, "count": record.count})

        if not rows:
            return sorted(days), {}

        frame = pd.DataFrame(rows, columns=["day", "hour", "count"])
        grouped = frame.groupby(["day", "hour"])["count"].sum()
        cells = {(day, int(hour)): int(total) for (day, hour), total in grouped.items()}
        return sorted(days), cells

    @performance_monitor("build")
    def build(
        self,
        records: Optional[Iterable[RawRecord]],
        event_keys_filter: Sequence[str],
        event_catalog: EventCatalog = None,
        now: Optional[datetime] = None,
        zero_fill_elapsed: bool = False,
    ) -> list[DayComparisonSeries]:
        """
        Build the overlay series.

        Args:
            records: Raw rows
            event_keys_filter: Event keys or event ids to sum; empty selects nothing
            event_catalog: Event id -> display name, for matching by event key
            now: Current wall-clock time (defaults to the real clock)
            zero_fill_elapsed: Report elapsed empty hours as 0 instead of None;
                hours of today from the current hour on stay None either way

        Returns:
            Up to ``max_days`` series, oldest first
        """
        days, cells = self._cells(records or [], event_keys_filter, event_catalog)
        days = days[-self.max_days:]
        if not event_keys_filter:
            self.logger.debug("Day comparison built with an empty event selection")

        current = self._now(now)
        series = []
        for index, day in enumerate(days):
            values: list[Optional[int]] = []
            for hour in range(HOURS_PER_DAY):
                value = cells.get((day, hour))
                if value is None and zero_fill_elapsed and event_keys_filter:
                    is_future = day > current.date() or (
                        day == current.date() and hour >= current.hour
                    )
                    value = None if is_future else 0
                values.append(value)

            series.append(
                DayComparisonSeries(
                    day_key=day.isoformat(),
                    label=day_label(day),
                    color=DAY_COLORS[index % len(DAY_COLORS)],
                    hourly_values=tuple(values),
                )
            )
        return series

    @performance_monitor("build_hourly_deviation")
    def build_hourly_deviation(
        self,
        records: Optional[Iterable[RawRecord]],
        event_keys_filter: Sequence[str],
        event_catalog: EventCatalog = None,
    ) -> list[HourlyDeviationPoint]:
        """Average/min/max per hour of day across the days that have data"""
        _, cells = self._cells(records or [], event_keys_filter, event_catalog)
        per_hour: dict[int, list[int]] = {}
        for (_, hour), total in cells.items():
            per_hour.setdefault(hour, []).append(total)

        points = []
        for hour in range(HOURS_PER_DAY):
            values = per_hour.get(hour)
            if not values:
                points.append(HourlyDeviationPoint(hour=hour, avg=0.0, min=0, max=0))
                continue
            points.append(
                HourlyDeviationPoint(
                    hour=hour, avg=sum(values) / len(values), min=min(values), max=max(values)
                )
            )
        return points

    @performance_monitor("build_daily_average")
    def build_daily_average(
        self,
        records: Optional[Iterable[RawRecord]],
        event_keys_filter: Sequence[str],
        range_start: datetime,
        range_end: datetime,
        event_catalog: EventCatalog = None,
    ) -> tuple[list[DailyTotal], float]:
        """Per-day totals and their average; only for ranges longer than a week"""
        if range_days(range_start, range_end) <= MAX_COMPARISON_DAYS:
            return [], 0.0

        _, cells = self._cells(records or [], event_keys_filter, event_catalog)
        per_day: dict[date, int] = {}
        for (day, _), total in cells.items():
            per_day[day] = per_day.get(day, 0) + total

        totals = []
        for day in sorted(per_day):
            start_of_day = datetime(day.year, day.month, day.day)
            totals.append(
                DailyTotal(
                    date=bucket_label(start_of_day, hourly=False),
                    day=start_of_day,
                    total=per_day[day],
                )
            )
        average = sum(t.total for t in totals) / len(totals) if totals else 0.0
        return totals, average


def smooth_series(
    series: Sequence[DayComparisonSeries], window: int = DEFAULT_SMOOTHING_WINDOW
) -> list[DayComparisonSeries]:
    """Centred moving average over non-null neighbours; null cells stay null"""
    half = window // 2
    smoothed = []
    for day in series:
        values = day.hourly_values
        result: list[Optional[int]] = []
        for index, value in enumerate(values):
            if value is None:
                result.append(None)
                continue
            neighbours = [
                v
                for v in values[max(0, index - half): index + half + 1]
                if v is not None
            ]
            result.append(round(sum(neighbours) / len(neighbours)))
        smoothed.append(
            DayComparisonSeries(
                day_key=day.day_key,
                label=day.label,
                color=day.color,
                hourly_values=tuple(result),
            )
        )
    return smoothed


def summarize_day_comparison(series: Sequence[DayComparisonSeries]) -> DayComparisonInsights:
    """Peak hour of the most recent day and how it compares to all days at that hour"""
    if not series:
        return DayComparisonInsights(peak_hour=None, peak_value=None, today_vs_average_pct=None)

    latest = series[-1]
    peak_hour: Optional[int] = None
    peak_value: Optional[int] = None
    for hour, value in enumerate(latest.hourly_values):
        if value is not None and (peak_value is None or value > peak_value):
            peak_hour, peak_value = hour, value

    if peak_hour is None:
        return DayComparisonInsights(peak_hour=None, peak_value=None, today_vs_average_pct=None)

    at_peak = [s.hourly_values[peak_hour] for s in series if s.hourly_values[peak_hour] is not None]
    average = sum(at_peak) / len(at_peak)
    today_vs_average = (peak_value - average) / average * 100 if average > 0 else None
    return DayComparisonInsights(
        peak_hour=peak_hour, peak_value=float(peak_value), today_vs_average_pct=today_vs_average
    )


def build_day_comparison(
    records: Optional[Iterable[RawRecord]],
    event_keys_filter: Sequence[str],
    event_catalog: EventCatalog = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> list[DayComparisonSeries]:
    """Pure convenience wrapper around DayComparisonBuilder.build"""
    return DayComparisonBuilder(tz=tz).build(records, event_keys_filter, event_catalog, now)
