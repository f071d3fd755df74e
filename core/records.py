"""
Record normalization for raw rows returned by the fetch collaborator.

Rows arrive as JSON-like mappings (camelCase keys) or as EventRecord
instances. Malformed numeric fields contribute zero instead of failing the
batch; rows without a usable timestamp cannot be bucketed and are skipped.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Union

import pandas as pd

from models import EventConfig, EventKeyInfo, EventRecord

from .bucketing import sanitize_event_key

logger = logging.getLogger(__name__)

RawRecord = Union[EventRecord, Mapping[str, Any]]
EventCatalog = Union[Mapping[str, str], Iterable[EventConfig], None]

_KNOWN_FIELDS = {
    "eventId",
    "event_id",
    "timestamp",
    "count",
    "successCount",
    "success_count",
    "failCount",
    "fail_count",
    "avgDelay",
    "avg_delay",
    "status",
    "cacheStatus",
    "cache_status",
    "platform",
    "pos",
    "source",
}

FRAME_COLUMNS = [
    "event_id",
    "timestamp",
    "count",
    "success_count",
    "fail_count",
    "avg_delay",
    "status",
    "cache_status",
]


def _as_count(value: Any) -> int:
    """Non-negative int from whatever the collaborator sent; junk becomes 0"""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


def _as_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _as_optional_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO strings and epoch seconds/milliseconds"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            # NaN, inf or outside the platform epoch range
            return None
    try:
        parsed = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def record_from_mapping(raw: Mapping[str, Any]) -> Optional[EventRecord]:
    """Build an EventRecord from a raw row, or None if it has no usable timestamp/event"""
    event_id = _first(raw, "eventId", "event_id")
    timestamp = parse_timestamp(raw.get("timestamp"))
    if event_id is None or timestamp is None:
        return None

    status = raw.get("status")
    cache_status = _first(raw, "cacheStatus", "cache_status")
    return EventRecord(
        event_id=str(event_id),
        timestamp=timestamp,
        count=_as_count(raw.get("count")),
        success_count=_as_count(_first(raw, "successCount", "success_count")),
        fail_count=_as_count(_first(raw, "failCount", "fail_count")),
        avg_delay=_as_float(_first(raw, "avgDelay", "avg_delay")),
        status=str(status) if status not in (None, "") else None,
        cache_status=str(cache_status) if cache_status not in (None, "") else None,
        platform=_as_optional_int(raw.get("platform")),
        pos=_as_optional_int(raw.get("pos")),
        source=_as_optional_int(raw.get("source")),
        extra={k: v for k, v in raw.items() if k not in _KNOWN_FIELDS},
    )


def normalize_records(rows: Optional[Iterable[RawRecord]]) -> list[EventRecord]:
    """Normalize a batch of rows, skipping (and logging) the unusable ones"""
    records: list[EventRecord] = []
    skipped = 0
    for row in rows or []:
        if isinstance(row, EventRecord):
            records.append(row)
            continue
        record = record_from_mapping(row) if isinstance(row, Mapping) else None
        if record is None:
            skipped += 1
            continue
        records.append(record)

    if skipped:
        logger.warning(f"Skipped {skipped} record(s) without a usable eventId/timestamp")
    return records


def as_catalog(catalog: EventCatalog) -> dict[str, str]:
    """Event id -> display name, from a mapping or a list of EventConfig"""
    if catalog is None:
        return {}
    if isinstance(catalog, Mapping):
        return {str(k): str(v) for k, v in catalog.items()}
    return {event.event_id: event.event_name for event in catalog}


def resolve_event_name(event_id: str, catalog: Mapping[str, str]) -> str:
    return catalog.get(event_id) or f"Event {event_id}"


class EventKeyRegistry:
    """
    Assigns per-event field-name keys in first-seen order.

    Aggregation is keyed by event id; the sanitized display name is only a
    label. When two names sanitize to the same key, the later event gets its
    id appended so the two never share a field.
    """

    def __init__(self, catalog: EventCatalog = None, configs: Iterable[EventConfig] = ()):
        self.catalog = as_catalog(catalog)
        self._configs = {config.event_id: config for config in configs}
        self._keys: dict[str, str] = {}
        self._used: set[str] = set()

    def key_for(self, event_id: str) -> str:
        if event_id in self._keys:
            return self._keys[event_id]

        key = sanitize_event_key(resolve_event_name(event_id, self.catalog))
        if key in self._used:
            base = f"{key}_{sanitize_event_key(event_id)}"
            key, n = base, 2
            while key in self._used:
                key = f"{base}_{n}"
                n += 1
        self._keys[event_id] = key
        self._used.add(key)
        return key

    def event_keys(self) -> list[EventKeyInfo]:
        infos = []
        for event_id, key in self._keys.items():
            config = self._configs.get(event_id)
            infos.append(
                EventKeyInfo(
                    event_id=event_id,
                    event_name=resolve_event_name(event_id, self.catalog),
                    event_key=key,
                    is_error_event=config.is_error_event if config else 0,
                    is_avg_event=config.is_avg_event if config else 0,
                )
            )
        return infos


def records_to_frame(records: Iterable[EventRecord]) -> pd.DataFrame:
    """Tabular view of normalized records for pandas aggregation"""
    rows = [
        {
            "event_id": r.event_id,
            "timestamp": r.timestamp,
            "count": r.count,
            "success_count": r.success_count,
            "fail_count": r.fail_count,
            "avg_delay": r.avg_delay,
            "status": r.status,
            "cache_status": r.cache_status,
        }
        for r in records
    ]
    if not rows:
        return pd.DataFrame(columns=FRAME_COLUMNS)
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)
