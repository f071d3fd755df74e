"""
Child/parent percentage series.

Per time bucket: (sum of child events / sum of parent events) x 100.
Rows count their successCount when positive, else their count. An optional
status / cache sub-filter replaces the unfiltered totals.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, tzinfo
from typing import Optional

from models import PercentageConfig, PercentagePoint, PercentageSeries, SubFilter

from .bucketing import bucket_label, is_hourly_range, sort_key, to_local
from .records import RawRecord, normalize_records

logger = logging.getLogger(__name__)


def compute_percentage_series(
    records: Optional[Iterable[RawRecord]],
    parent_events: Sequence[str],
    child_events: Sequence[str],
    range_start: datetime,
    range_end: datetime,
    sub_filter: Optional[SubFilter] = None,
    tz: Optional[tzinfo] = None,
) -> PercentageSeries:
    """
    Build the percentage series for one panel window.

    Args:
        records: Raw rows
        parent_events: Event ids summed as the denominator
        child_events: Event ids summed as the numerator
        range_start: Start of the window (decides hourly vs daily buckets)
        range_end: End of the window
        sub_filter: Optional status / cache restriction
        tz: Timezone used for bucket labels

    Returns:
        PercentageSeries with points sorted by bucket timestamp
    """
    parents = {str(e) for e in parent_events}
    children = {str(e) for e in child_events}
    hourly = is_hourly_range(range_start, range_end)

    buckets: dict[str, dict] = {}
    for record in normalize_records(records):
        if sub_filter is not None and not sub_filter.matches(record):
            continue
        is_parent = record.event_id in parents
        is_child = record.event_id in children
        if not (is_parent or is_child):
            continue

        label = bucket_label(to_local(record.timestamp, tz), hourly)
        bucket = buckets.setdefault(
            label, {"timestamp": record.timestamp, "parent": 0, "child": 0}
        )
        value = record.success_count if record.success_count > 0 else record.count
        # an event listed on both sides counts towards both
        if is_parent:
            bucket["parent"] += value
        if is_child:
            bucket["child"] += value

    points = sorted(
        (
            PercentagePoint(
                date=label,
                timestamp=bucket["timestamp"],
                parent_count=bucket["parent"],
                child_count=bucket["child"],
            )
            for label, bucket in buckets.items()
        ),
        key=lambda point: sort_key(point.timestamp),
    )
    logger.debug(f"Percentage series built with {len(points)} buckets")
    return PercentageSeries(
        points=tuple(points),
        total_parent=sum(p.parent_count for p in points),
        total_child=sum(p.child_count for p in points),
    )


def compute_percentage_for_config(
    records: Optional[Iterable[RawRecord]],
    config: PercentageConfig,
    range_start: datetime,
    range_end: datetime,
    tz: Optional[tzinfo] = None,
) -> PercentageSeries:
    return compute_percentage_series(
        records,
        config.parent_events,
        config.child_events,
        range_start,
        range_end,
        sub_filter=config.sub_filter,
        tz=tz,
    )
