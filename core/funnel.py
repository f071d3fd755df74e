"""
Funnel stage calculator.

Sums raw rows per declared stage (in declaration order), optionally fans
the final stage out into several child events, and derives percentage of
first stage and stage-to-stage drop-off from the counts.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Any, Optional

import numpy as np
import pandas as pd

from models import (
    CountSource,
    EventRecord,
    FunnelConfig,
    FunnelStage,
    FunnelStageData,
    MetricMode,
    SubFilter,
)

from .bucketing import sanitize_event_key
from .monitoring import performance_monitor, performance_report
from .records import (
    EventCatalog,
    RawRecord,
    as_catalog,
    normalize_records,
    records_to_frame,
    resolve_event_name,
)

USER_METRICS = ("totalUsers", "newUsers", "uniqueUsers")

MULTIPLE_STAGE_ID = "multiple"


class FunnelCalculator:
    """Computes funnel stages from raw event rows"""

    def __init__(self, config: FunnelConfig):
        self.config = config
        self._performance_metrics: dict[str, list[float]] = {}
        self.logger = logging.getLogger(__name__)

    def get_performance_report(self) -> dict[str, dict[str, float]]:
        return performance_report(self._performance_metrics)

    @performance_monitor("compute")
    def compute(
        self, records: Optional[Iterable[RawRecord]], event_catalog: EventCatalog = None
    ) -> list[FunnelStageData]:
        """
        Calculate funnel stages.

        Args:
            records: Raw rows for the funnel's window
            event_catalog: Event id -> display name, used for unnamed stages/children

        Returns:
            Stages in declaration order (synthetic final stage last), with
            zero-count stages removed
        """
        config = self.config
        if not config.stages and not config.multiple_child_events:
            return []

        catalog = as_catalog(event_catalog)
        normalized = normalize_records(records)
        if config.sub_filter is not None:
            # the sub-filter replaces the unfiltered totals
            normalized = [r for r in normalized if config.sub_filter.matches(r)]

        totals = self._stage_totals(normalized)

        entries = [
            self._entry(
                stage.event_id,
                stage.event_name or resolve_event_name(stage.event_id, catalog),
                totals,
                normalized,
            )
            for stage in config.stages
        ]
        if config.multiple_child_events:
            children = [
                self._entry(child_id, resolve_event_name(child_id, catalog), totals, normalized)
                for child_id in config.multiple_child_events
            ]
            entries.append(self._combine_children(children))

        first_count = entries[0]["count"]
        stages = []
        previous_count: Optional[int] = None
        for entry in entries:
            stages.append(self._stage_data(entry, first_count, previous_count))
            previous_count = entry["count"]

        dropped = [stage.event_id for stage in stages if stage.count == 0]
        if dropped:
            self.logger.debug(f"Dropping zero-count funnel stages: {dropped}")
        return [stage for stage in stages if stage.count != 0]

    def _stage_totals(self, records: list[EventRecord]) -> pd.DataFrame:
        """Per-event counted value plus count-weighted delay sums"""
        frame = records_to_frame(records)
        if frame.empty:
            return pd.DataFrame(columns=["value", "weighted_delay", "delay_weight"])

        counts = frame["count"].astype("int64")
        successes = frame["success_count"].astype("int64")
        if self.config.count_source == CountSource.SUCCESS:
            frame["value"] = np.where(successes > 0, successes, counts)
        else:
            frame["value"] = counts
        frame["weighted_delay"] = frame["avg_delay"].astype("float64") * counts
        frame["delay_weight"] = counts
        return frame.groupby("event_id")[["value", "weighted_delay", "delay_weight"]].sum()

    def _entry(
        self,
        event_id: str,
        event_name: str,
        totals: pd.DataFrame,
        records: list[EventRecord],
    ) -> dict[str, Any]:
        if event_id in totals.index:
            row = totals.loc[event_id]
            count = int(row["value"])
            weighted_delay = float(row["weighted_delay"])
            delay_weight = int(row["delay_weight"])
        else:
            count, weighted_delay, delay_weight = 0, 0.0, 0

        users = _sum_user_metrics(event_id, event_name, records)
        return {
            "event_id": event_id,
            "event_name": event_name,
            "count": count,
            "weighted_delay": weighted_delay,
            "delay_weight": delay_weight,
            "total_users": users["totalUsers"],
            "new_users": users["newUsers"],
            "unique_users": users["uniqueUsers"],
            "is_multiple": False,
            "children": None,
        }

    def _combine_children(self, children: list[dict[str, Any]]) -> dict[str, Any]:
        combined = {
            "event_id": MULTIPLE_STAGE_ID,
            "event_name": self.config.final_stage_name,
            "is_multiple": len(children) > 1,
            "children": children,
        }
        for key in (
            "count",
            "weighted_delay",
            "delay_weight",
            "total_users",
            "new_users",
            "unique_users",
        ):
            combined[key] = sum(child[key] for child in children)
        return combined

    def _stage_data(
        self, entry: dict[str, Any], first_count: int, previous_count: Optional[int] = None
    ) -> FunnelStageData:
        avg_delay = None
        if self.config.metric_mode == MetricMode.AVG_DELAY:
            delay_weight = entry["delay_weight"]
            avg_delay = entry["weighted_delay"] / delay_weight if delay_weight else 0.0

        children = None
        if entry["children"] is not None:
            # children share the first-stage denominator
            children = tuple(self._stage_data(child, first_count) for child in entry["children"])

        return FunnelStageData(
            event_id=entry["event_id"],
            event_name=entry["event_name"],
            count=entry["count"],
            first_stage_count=first_count,
            previous_stage_count=previous_count,
            avg_delay=avg_delay,
            total_users=entry["total_users"],
            new_users=entry["new_users"],
            unique_users=entry["unique_users"],
            is_multiple=entry["is_multiple"],
            children=children,
        )


def _user_metric_value(
    record: EventRecord, metric: str, event_id: str, event_name: str
) -> Optional[float]:
    """First present of the naming conventions: plain, id-keyed, name-keyed"""
    candidates = (
        metric,
        f"{event_id}_{metric}",
        f"{sanitize_event_key(event_name)}_{metric}",
        f"{event_name}_{metric}",
    )
    for key in candidates:
        value = record.extra.get(key)
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    return None


def _sum_user_metrics(
    event_id: str, event_name: str, records: list[EventRecord]
) -> dict[str, int]:
    sums = {metric: 0.0 for metric in USER_METRICS}
    for record in records:
        if record.event_id != event_id:
            continue
        for metric in USER_METRICS:
            value = _user_metric_value(record, metric, event_id, event_name)
            if value is not None and value > 0:
                sums[metric] += value
    return {metric: int(total) for metric, total in sums.items()}


def compute_funnel(
    records: Optional[Iterable[RawRecord]],
    stages: Sequence[FunnelStage],
    final_children: Sequence[str] = (),
    sub_filter: Optional[SubFilter] = None,
    metric_mode: MetricMode = MetricMode.COUNT,
    event_catalog: EventCatalog = None,
    count_source: CountSource = CountSource.COUNT,
    final_stage_name: str = "Final Stage",
) -> list[FunnelStageData]:
    """Pure convenience wrapper around FunnelCalculator.compute"""
    config = FunnelConfig(
        stages=list(stages),
        multiple_child_events=[str(child) for child in final_children],
        sub_filter=sub_filter,
        metric_mode=metric_mode,
        count_source=count_source,
        final_stage_name=final_stage_name,
    )
    return FunnelCalculator(config).compute(records, event_catalog)
