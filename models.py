from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from math import ceil
from typing import Any, Optional

FILTER_DIMENSIONS = ("events", "platforms", "pos", "sources")

HOURLY_THRESHOLD_DAYS = 7


class MetricMode(Enum):
    COUNT = "count"
    AVG_DELAY = "avgDelay"


class CountSource(Enum):
    COUNT = "count"
    SUCCESS = "successCount"


class SubFilterDimension(Enum):
    STATUS = "status"
    CACHE = "cache"


class GraphType(Enum):
    LINE = "line"
    BAR = "bar"
    PERCENTAGE = "percentage"
    FUNNEL = "funnel"
    USER_FLOW = "user_flow"


def _id_set(values: Any) -> frozenset:
    """Coerce a list of ids from config/JSON into a frozenset of ints"""
    if not values:
        return frozenset()
    ids = set()
    for value in values:
        try:
            ids.add(int(value))
        except (TypeError, ValueError):
            continue
    return frozenset(ids)


@dataclass(frozen=True)
class EventRecord:
    """One raw time-series row returned by the fetch collaborator"""

    event_id: str
    timestamp: datetime
    count: int = 0
    success_count: int = 0
    fail_count: int = 0
    # None unless the event is configured as a delay (isAvgEvent) event
    avg_delay: Optional[float] = None
    status: Optional[str] = None
    cache_status: Optional[str] = None
    platform: Optional[int] = None
    pos: Optional[int] = None
    source: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class EventKeyInfo:
    """Event identity plus the field-name fragment used in aggregated rows"""

    event_id: str
    event_name: str
    event_key: str
    is_error_event: int = 0
    is_avg_event: int = 0


@dataclass(frozen=True)
class BreakdownTotals:
    """Count and success count for one status code or cache status"""

    count: int = 0
    success_count: int = 0


@dataclass(frozen=True)
class EventTotals:
    """Per-event sums inside a single time bucket"""

    count: int = 0
    success_count: int = 0
    fail_count: int = 0
    # None unless the event is configured as a delay (isAvgEvent) event
    avg_delay: Optional[float] = None
    status: dict[str, BreakdownTotals] = field(default_factory=dict)
    cache: dict[str, BreakdownTotals] = field(default_factory=dict)


@dataclass(frozen=True)
class AggregatedPoint:
    """One time bucket of a panel series"""

    date: str
    timestamp: datetime
    count: int
    success_count: int
    fail_count: int
    events: dict[str, EventTotals] = field(default_factory=dict)

    def as_row(self) -> dict[str, Any]:
        """Flatten into the chart row shape ({eventKey}_count etc.)"""
        row: dict[str, Any] = {
            "date": self.date,
            "timestamp": self.timestamp.isoformat(),
            "count": self.count,
            "successCount": self.success_count,
            "failCount": self.fail_count,
        }
        for event_key, totals in self.events.items():
            row[f"{event_key}_count"] = totals.count
            row[f"{event_key}_success"] = totals.success_count
            row[f"{event_key}_fail"] = totals.fail_count
            if totals.avg_delay is not None:
                row[f"{event_key}_avgDelay"] = totals.avg_delay
            for code, breakdown in totals.status.items():
                row[f"{event_key}_status_{code}_count"] = breakdown.count
                row[f"{event_key}_status_{code}_success"] = breakdown.success_count
            for cache_status, breakdown in totals.cache.items():
                row[f"{event_key}_cache_{cache_status}_count"] = breakdown.count
                row[f"{event_key}_cache_{cache_status}_success"] = breakdown.success_count
        return row


@dataclass(frozen=True)
class SeriesResult:
    points: list[AggregatedPoint]
    event_keys: list[EventKeyInfo]


@dataclass(frozen=True)
class FilterState:
    """
    Filter ids per dimension. An empty set means "all" for that dimension,
    never "none".
    """

    events: frozenset = frozenset()
    platforms: frozenset = frozenset()
    pos: frozenset = frozenset()
    sources: frozenset = frozenset()

    def __post_init__(self):
        for dimension in FILTER_DIMENSIONS:
            object.__setattr__(self, dimension, _id_set(getattr(self, dimension)))

    def get(self, dimension: str) -> frozenset:
        if dimension not in FILTER_DIMENSIONS:
            raise KeyError(dimension)
        return getattr(self, dimension)

    def is_all(self, dimension: str) -> bool:
        return not self.get(dimension)

    def to_dict(self) -> dict[str, list[int]]:
        return {dimension: sorted(self.get(dimension)) for dimension in FILTER_DIMENSIONS}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "FilterState":
        data = data or {}
        return cls(
            events=data.get("events"),
            platforms=data.get("platforms"),
            pos=data.get("pos"),
            sources=data.get("sources"),
        )


@dataclass(frozen=True)
class DateRangeState:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Date range start {self.start} is after end {self.end}")

    @property
    def days(self) -> int:
        return ceil((self.end - self.start) / timedelta(days=1))

    @property
    def is_hourly(self) -> bool:
        return self.days <= HOURLY_THRESHOLD_DAYS

    @classmethod
    def last_days(cls, days: int, now: Optional[datetime] = None) -> "DateRangeState":
        now = now or datetime.now()
        return cls(start=now - timedelta(days=days), end=now)


@dataclass(frozen=True)
class SubFilter:
    """Restricts counting to records whose status / cache status is listed"""

    dimension: SubFilterDimension
    values: tuple[str, ...]

    def matches(self, record: EventRecord) -> bool:
        if self.dimension == SubFilterDimension.STATUS:
            value = record.status
        else:
            value = record.cache_status
        return value is not None and str(value) in self.values

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["SubFilter"]:
        """Read the profile's {statusCodes, cacheStatus} filter block; status wins"""
        if not data:
            return None
        status_codes = [str(v) for v in data.get("statusCodes") or [] if v]
        cache_status = [str(v) for v in data.get("cacheStatus") or [] if v]
        if status_codes:
            return cls(SubFilterDimension.STATUS, tuple(status_codes))
        if cache_status:
            return cls(SubFilterDimension.CACHE, tuple(cache_status))
        return None

    def to_dict(self) -> dict[str, list[str]]:
        if self.dimension == SubFilterDimension.STATUS:
            return {"statusCodes": list(self.values)}
        return {"cacheStatus": list(self.values)}


@dataclass(frozen=True)
class FunnelStage:
    event_id: str
    event_name: str


@dataclass(frozen=True)
class FunnelStageData:
    """
    One rendered funnel stage. ``percentage`` and ``dropoff_percentage`` are
    derived from ``count`` and the reference counts, never stored.
    """

    event_id: str
    event_name: str
    count: int
    first_stage_count: int
    previous_stage_count: Optional[int] = None
    avg_delay: Optional[float] = None
    total_users: int = 0
    new_users: int = 0
    unique_users: int = 0
    is_multiple: bool = False
    children: Optional[tuple["FunnelStageData", ...]] = None

    @property
    def percentage(self) -> float:
        if self.first_stage_count <= 0:
            return 0.0
        return self.count / self.first_stage_count * 100

    @property
    def display_percentage(self) -> float:
        return min(max(self.percentage, 0.0), 100.0)

    @property
    def dropoff_percentage(self) -> float:
        if not self.previous_stage_count or self.previous_stage_count <= 0:
            return 0.0
        return (self.previous_stage_count - self.count) / self.previous_stage_count * 100


@dataclass
class FunnelConfig:
    """Configuration for a funnel panel"""

    stages: list[FunnelStage] = field(default_factory=list)
    multiple_child_events: list[str] = field(default_factory=list)
    sub_filter: Optional[SubFilter] = None
    metric_mode: MetricMode = MetricMode.COUNT
    count_source: CountSource = CountSource.COUNT
    final_stage_name: str = "Final Stage"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "type": "funnel",
            "stages": [
                {"eventId": stage.event_id, "eventName": stage.event_name}
                for stage in self.stages
            ],
            "multipleChildEvents": list(self.multiple_child_events),
            "filters": self.sub_filter.to_dict() if self.sub_filter else None,
            "metricMode": self.metric_mode.value,
            "countSource": self.count_source.value,
            "finalStageName": self.final_stage_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FunnelConfig":
        """Create from dictionary for JSON deserialization"""
        return cls(
            stages=[
                FunnelStage(str(stage["eventId"]), stage.get("eventName") or str(stage["eventId"]))
                for stage in data.get("stages", [])
            ],
            multiple_child_events=[str(e) for e in data.get("multipleChildEvents") or []],
            sub_filter=SubFilter.from_dict(data.get("filters")),
            metric_mode=MetricMode(data.get("metricMode", "count")),
            count_source=CountSource(data.get("countSource", "count")),
            final_stage_name=data.get("finalStageName", "Final Stage"),
        )


@dataclass
class PercentageConfig:
    """Configuration for a child/parent percentage panel"""

    parent_events: list[str] = field(default_factory=list)
    child_events: list[str] = field(default_factory=list)
    sub_filter: Optional[SubFilter] = None
    show_combined_percentage: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "percentage",
            "parentEvents": list(self.parent_events),
            "childEvents": list(self.child_events),
            "filters": self.sub_filter.to_dict() if self.sub_filter else None,
            "showCombinedPercentage": self.show_combined_percentage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PercentageConfig":
        return cls(
            parent_events=[str(e) for e in data.get("parentEvents") or []],
            child_events=[str(e) for e in data.get("childEvents") or []],
            sub_filter=SubFilter.from_dict(data.get("filters")),
            show_combined_percentage=data.get("showCombinedPercentage", True),
        )


@dataclass(frozen=True)
class EventConfig:
    event_id: str
    event_name: str
    color: str = "#3b82f6"
    is_error_event: int = 0
    is_avg_event: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventName": self.event_name,
            "color": self.color,
            "isErrorEvent": self.is_error_event,
            "isAvgEvent": self.is_avg_event,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventConfig":
        return cls(
            event_id=str(data["eventId"]),
            event_name=data.get("eventName") or f"Event {data['eventId']}",
            color=data.get("color", "#3b82f6"),
            is_error_event=int(data.get("isErrorEvent") or 0),
            is_avg_event=int(data.get("isAvgEvent") or 0),
        )


@dataclass
class PanelConfig:
    """Saved configuration of one dashboard panel"""

    panel_id: str
    panel_name: str
    events: list[EventConfig] = field(default_factory=list)
    default_filters: FilterState = field(default_factory=FilterState)
    graph_type: GraphType = GraphType.LINE
    show_legend: bool = True
    pie_charts_enabled: bool = False
    daily_deviation_curve: bool = False
    funnel_config: Optional[FunnelConfig] = None
    percentage_config: Optional[PercentageConfig] = None

    @property
    def event_catalog(self) -> dict[str, str]:
        return {event.event_id: event.event_name for event in self.events}

    def to_dict(self) -> dict[str, Any]:
        filter_config: dict[str, Any] = {
            **self.default_filters.to_dict(),
            "graphType": self.graph_type.value,
            "dailyDeviationCurve": self.daily_deviation_curve,
        }
        if self.funnel_config is not None:
            filter_config["funnelConfig"] = self.funnel_config.to_dict()
        if self.percentage_config is not None:
            filter_config["percentageConfig"] = self.percentage_config.to_dict()
        return {
            "panelId": self.panel_id,
            "panelName": self.panel_name,
            "events": [event.to_dict() for event in self.events],
            "filterConfig": filter_config,
            "visualizations": {
                "lineGraph": {"enabled": True, "showLegend": self.show_legend},
                "pieCharts": [
                    {"type": dimension, "enabled": self.pie_charts_enabled}
                    for dimension in ("platform", "pos", "source")
                ],
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PanelConfig":
        filter_config = data.get("filterConfig") or {}
        visualizations = data.get("visualizations") or {}
        line_graph = visualizations.get("lineGraph") or {}
        pie_charts = visualizations.get("pieCharts") or []
        funnel = filter_config.get("funnelConfig")
        percentage = filter_config.get("percentageConfig")
        return cls(
            panel_id=str(data["panelId"]),
            panel_name=data.get("panelName", str(data["panelId"])),
            events=[EventConfig.from_dict(e) for e in data.get("events") or []],
            default_filters=FilterState.from_dict(filter_config),
            graph_type=GraphType(filter_config.get("graphType", "line")),
            show_legend=line_graph.get("showLegend", True),
            pie_charts_enabled=any(chart.get("enabled") for chart in pie_charts),
            daily_deviation_curve=bool(filter_config.get("dailyDeviationCurve", False)),
            funnel_config=FunnelConfig.from_dict(funnel) if funnel else None,
            percentage_config=PercentageConfig.from_dict(percentage) if percentage else None,
        )


@dataclass
class DashboardProfile:
    """Saved dashboard: an ordered list of panels plus refresh defaults"""

    profile_id: str
    profile_name: str
    feature_id: str
    panels: list[PanelConfig] = field(default_factory=list)
    auto_refresh_seconds: int = 0
    default_days: int = 7

    def get_panel(self, panel_id: str) -> Optional[PanelConfig]:
        for panel in self.panels:
            if panel.panel_id == panel_id:
                return panel
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "profileId": self.profile_id,
            "profileName": self.profile_name,
            "featureId": self.feature_id,
            "defaultSettings": {
                "autoRefresh": self.auto_refresh_seconds,
                "defaultDays": self.default_days,
            },
            "panels": [panel.to_dict() for panel in self.panels],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DashboardProfile":
        settings = data.get("defaultSettings") or {}
        return cls(
            profile_id=str(data["profileId"]),
            profile_name=data.get("profileName", ""),
            feature_id=str(data.get("featureId", "")),
            panels=[PanelConfig.from_dict(p) for p in data.get("panels") or []],
            auto_refresh_seconds=int(settings.get("autoRefresh") or 0),
            default_days=int(settings.get("defaultDays") or 7),
        )


@dataclass(frozen=True)
class DistributionSlice:
    id: str
    name: str
    value: float
    metric_type: str = "count"
    success_count: int = 0
    fail_count: int = 0


@dataclass(frozen=True)
class PieChartData:
    platform: tuple[DistributionSlice, ...] = ()
    pos: tuple[DistributionSlice, ...] = ()
    source: tuple[DistributionSlice, ...] = ()

    def share(self, dimension: str) -> dict[str, float]:
        """Percentage of the dimension total held by each slice"""
        slices = getattr(self, dimension)
        total = sum(s.value for s in slices)
        if total <= 0:
            return {s.name: 0.0 for s in slices}
        return {s.name: s.value / total * 100 for s in slices}


@dataclass(frozen=True)
class PercentagePoint:
    date: str
    timestamp: datetime
    parent_count: int
    child_count: int

    @property
    def percentage(self) -> float:
        if self.parent_count <= 0:
            return 0.0
        return self.child_count / self.parent_count * 100


@dataclass(frozen=True)
class PercentageSeries:
    points: tuple[PercentagePoint, ...]
    total_parent: int
    total_child: int

    @property
    def percentage(self) -> float:
        if self.total_parent <= 0:
            return 0.0
        return self.total_child / self.total_parent * 100

    @property
    def min_percentage(self) -> float:
        return min((p.percentage for p in self.points), default=0.0)

    @property
    def max_percentage(self) -> float:
        return max((p.percentage for p in self.points), default=0.0)


@dataclass(frozen=True)
class DayComparisonSeries:
    """24 hourly values for one calendar day; ``None`` means no data"""

    day_key: str
    label: str
    color: str
    hourly_values: tuple[Optional[int], ...]


@dataclass(frozen=True)
class DayComparisonInsights:
    peak_hour: Optional[int]
    peak_value: Optional[float]
    today_vs_average_pct: Optional[float]


@dataclass(frozen=True)
class HourlyDeviationPoint:
    hour: int
    avg: float
    min: int
    max: int

    @property
    def deviation(self) -> int:
        return self.max - self.min


@dataclass(frozen=True)
class DailyTotal:
    date: str
    day: datetime
    total: int


@dataclass(frozen=True)
class PanelData:
    """
    Snapshot of one panel's latest aggregation. Replaced wholesale on every
    refresh, never mutated in place.
    """

    panel_id: str
    graph_data: tuple[AggregatedPoint, ...] = ()
    event_keys: tuple[EventKeyInfo, ...] = ()
    pie_chart_data: Optional[PieChartData] = None
    loading: bool = False
    error: Optional[str] = None
    filters: FilterState = field(default_factory=FilterState)
    date_range: Optional[DateRangeState] = None
    show_legend: bool = True
    funnel_stages: Optional[tuple[FunnelStageData, ...]] = None
    percentage_series: Optional[PercentageSeries] = None
    day_comparison: Optional[tuple[DayComparisonSeries, ...]] = None
    last_updated: Optional[datetime] = None

    @property
    def has_loaded(self) -> bool:
        return self.last_updated is not None

    @property
    def status(self) -> str:
        """loading | failed (never loaded) | stale (error over old data) | ready | idle"""
        if self.loading:
            return "loading"
        if self.error:
            return "stale" if self.has_loaded else "failed"
        return "ready" if self.has_loaded else "idle"
