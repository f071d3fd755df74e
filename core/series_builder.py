"""
Time bucketing & series builder.

Turns raw per-event rows into the ordered, chart-ready bucket series used by
every panel. Buckets hold overall count/success/fail totals plus a per-event
breakdown keyed by the event's field-name key.

Aggregation runs on Polars when available and falls back to pandas on any
Polars failure; both engines produce identical output.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, tzinfo
from typing import Any, Optional

import pandas as pd
import polars as pl

from logging_config import log_dataframe_info
from models import AggregatedPoint, BreakdownTotals, EventConfig, EventTotals, SeriesResult

from .bucketing import bucket_label, is_hourly_range, sort_key, to_local
from .monitoring import performance_monitor, performance_report
from .records import EventCatalog, EventKeyRegistry, RawRecord, normalize_records

GROUP_COLUMNS = ["bucket", "event_id"]

# (bucket, event id) -> breakdown value -> [count, success_count]
Breakdowns = dict[tuple[str, str], dict[str, list[int]]]
VALUE_COLUMNS = ["count", "success_count", "fail_count", "weighted_delay", "delay_weight"]


class SeriesBuilder:
    """Builds bucketed panel series from raw event rows"""

    def __init__(self, use_polars: bool = True, tz: Optional[tzinfo] = None):
        self.use_polars = use_polars
        self.tz = tz
        self._performance_metrics: dict[str, list[float]] = {}
        self.logger = logging.getLogger(__name__)

    def get_performance_report(self) -> dict[str, dict[str, float]]:
        return performance_report(self._performance_metrics)

    @performance_monitor("build")
    def build(
        self,
        records: Optional[Iterable[RawRecord]],
        range_start: datetime,
        range_end: datetime,
        event_catalog: EventCatalog = None,
        event_configs: Iterable[EventConfig] = (),
    ) -> SeriesResult:
        """
        Aggregate records into time buckets.

        Args:
            records: Raw rows (EventRecord or JSON-like mappings)
            range_start: Start of the requested window
            range_end: End of the requested window
            event_catalog: Event id -> display name (mapping or EventConfig list)
            event_configs: Optional event configs carrying error/avg flags

        Returns:
            SeriesResult with points sorted by bucket timestamp and event keys
            in first-seen order
        """
        normalized = normalize_records(records)
        if not normalized:
            return SeriesResult(points=[], event_keys=[])

        hourly = is_hourly_range(range_start, range_end)
        configs = list(event_configs)
        registry = EventKeyRegistry(event_catalog or configs, configs)

        bucket_timestamps: dict[str, datetime] = {}
        rows: list[dict[str, Any]] = []
        by_status: Breakdowns = defaultdict(dict)
        by_cache: Breakdowns = defaultdict(dict)
        for record in normalized:
            label = bucket_label(to_local(record.timestamp, self.tz), hourly)
            if label not in bucket_timestamps:
                bucket_timestamps[label] = record.timestamp
            registry.key_for(record.event_id)
            if record.status is not None:
                _add_breakdown(by_status[label, record.event_id], record.status, record)
            if record.cache_status is not None:
                _add_breakdown(by_cache[label, record.event_id], record.cache_status, record)
            rows.append(
                {
                    "bucket": label,
                    "event_id": record.event_id,
                    "count": record.count,
                    "success_count": record.success_count,
                    "fail_count": record.fail_count,
                    "weighted_delay": record.avg_delay * record.count,
                    "delay_weight": record.count if record.avg_delay else 0,
                }
            )

        self.logger.debug(
            f"Bucketing {len(rows)} records into {len(bucket_timestamps)} "
            f"{'hourly' if hourly else 'daily'} buckets"
        )
        aggregated = self._aggregate(rows)
        return self._assemble(aggregated, bucket_timestamps, registry, by_status, by_cache)

    def _aggregate(self, rows: list[dict[str, Any]]) -> list[tuple]:
        if self.use_polars:
            try:
                return self._aggregate_polars(rows)
            except Exception as e:
                self.logger.warning(f"Polars aggregation failed: {str(e)}, falling back to Pandas")
        return self._aggregate_pandas(rows)

    @performance_monitor("_aggregate_polars")
    def _aggregate_polars(self, rows: list[dict[str, Any]]) -> list[tuple]:
        df = pl.DataFrame(
            rows,
            schema={
                "bucket": pl.Utf8,
                "event_id": pl.Utf8,
                "count": pl.Int64,
                "success_count": pl.Int64,
                "fail_count": pl.Int64,
                "weighted_delay": pl.Float64,
                "delay_weight": pl.Int64,
            },
        )
        log_dataframe_info(df, "series rows (polars)", self.logger)
        grouped = df.group_by(GROUP_COLUMNS, maintain_order=True).agg(
            [pl.col(column).sum() for column in VALUE_COLUMNS]
        )
        return grouped.rows()

    @performance_monitor("_aggregate_pandas")
    def _aggregate_pandas(self, rows: list[dict[str, Any]]) -> list[tuple]:
        df = pd.DataFrame(rows, columns=GROUP_COLUMNS + VALUE_COLUMNS)
        log_dataframe_info(df, "series rows (pandas)", self.logger)
        grouped = df.groupby(GROUP_COLUMNS, sort=False)[VALUE_COLUMNS].sum().reset_index()
        return list(grouped.itertuples(index=False, name=None))

    def _assemble(
        self,
        aggregated: list[tuple],
        bucket_timestamps: dict[str, datetime],
        registry: EventKeyRegistry,
        by_status: Breakdowns,
        by_cache: Breakdowns,
    ) -> SeriesResult:
        avg_events = {info.event_id for info in registry.event_keys() if info.is_avg_event}
        per_bucket: dict[str, dict[str, EventTotals]] = {label: {} for label in bucket_timestamps}
        for bucket, event_id, count, success, fail, weighted_delay, delay_weight in aggregated:
            avg_delay = None
            if event_id in avg_events:
                avg_delay = float(weighted_delay) / int(delay_weight) if delay_weight else 0.0
            per_bucket[bucket][event_id] = EventTotals(
                count=int(count),
                success_count=int(success),
                fail_count=int(fail),
                avg_delay=avg_delay,
                status=_breakdown_totals(by_status.get((bucket, event_id))),
                cache=_breakdown_totals(by_cache.get((bucket, event_id))),
            )

        event_order = [info.event_id for info in registry.event_keys()]
        points = []
        for label, timestamp in bucket_timestamps.items():
            totals_by_id = per_bucket[label]
            events = {
                registry.key_for(event_id): totals_by_id[event_id]
                for event_id in event_order
                if event_id in totals_by_id
            }
            points.append(
                AggregatedPoint(
                    date=label,
                    timestamp=timestamp,
                    count=sum(t.count for t in events.values()),
                    success_count=sum(t.success_count for t in events.values()),
                    fail_count=sum(t.fail_count for t in events.values()),
                    events=events,
                )
            )

        points.sort(key=lambda point: sort_key(point.timestamp))
        return SeriesResult(points=points, event_keys=registry.event_keys())


def _add_breakdown(sums: dict[str, list[int]], value: str, record) -> None:
    entry = sums.setdefault(value, [0, 0])
    entry[0] += record.count
    entry[1] += record.success_count


def _breakdown_totals(sums: Optional[dict[str, list[int]]]) -> dict[str, BreakdownTotals]:
    if not sums:
        return {}
    return {value: BreakdownTotals(count, success) for value, (count, success) in sums.items()}


def build_series(
    records: Optional[Iterable[RawRecord]],
    range_start: datetime,
    range_end: datetime,
    event_catalog: EventCatalog = None,
    tz: Optional[tzinfo] = None,
) -> SeriesResult:
    """Pure convenience wrapper around SeriesBuilder.build"""
    return SeriesBuilder(tz=tz).build(records, range_start, range_end, event_catalog)
