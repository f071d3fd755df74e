"""
Pie chart distributions (platform / POS / source).

The fetch collaborator returns either ready-made ``[{name, value}]`` slices
or keyed dicts of raw aggregates. Raw aggregates pick the first positive
metric of count, avgDelay, medianDelay, modeDelay.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from models import DistributionSlice, PieChartData

from .records import _as_count, _as_float

logger = logging.getLogger(__name__)

DIMENSIONS = ("platform", "pos", "source")
METRIC_FALLBACK = ("count", "avgDelay", "medianDelay", "modeDelay")
OTHERS_KEY = "others"


def _pick_metric(item: Mapping[str, Any]) -> tuple[float, str]:
    for metric in METRIC_FALLBACK:
        value = _as_float(item.get(metric))
        if value > 0:
            return value, metric
    return 0.0, "count"


def _slice(key: str, item: Any, dimension: str) -> DistributionSlice:
    if not isinstance(item, Mapping):
        # bare number keyed by name
        return DistributionSlice(id=str(key), name=str(key), value=_as_float(item))

    if "value" in item:
        value, metric_type = _as_float(item.get("value")), item.get("metricType", "count")
    else:
        value, metric_type = _pick_metric(item)

    if key == OTHERS_KEY:
        slice_id, name = OTHERS_KEY, "Others"
    else:
        slice_id = str(item.get("id", item.get(dimension, key)))
        name = item.get("name") or f"{dimension.upper() if dimension == 'pos' else dimension.title()} {slice_id}"

    return DistributionSlice(
        id=slice_id,
        name=str(name),
        value=value,
        metric_type=str(metric_type),
        success_count=_as_count(item.get("successCount")),
        fail_count=_as_count(item.get("failCount")),
    )


def _dimension_slices(data: Any, dimension: str) -> tuple[DistributionSlice, ...]:
    if not data:
        return ()
    if isinstance(data, Mapping):
        items = list(data.items())
    else:
        items = [
            (str(item.get("id", item.get("name", index))) if isinstance(item, Mapping) else str(index), item)
            for index, item in enumerate(data)
        ]
    slices = [_slice(key, item, dimension) for key, item in items]
    return tuple(sorted(slices, key=lambda s: s.value, reverse=True))


def build_pie_chart_data(response: Optional[Mapping[str, Any]]) -> PieChartData:
    """Normalize a distribution response into sorted slices per dimension"""
    if not response:
        return PieChartData()
    payload = response.get("data", response)
    if not isinstance(payload, Mapping):
        logger.warning("Distribution response has no per-dimension payload")
        return PieChartData()
    return PieChartData(
        **{dimension: _dimension_slices(payload.get(dimension), dimension) for dimension in DIMENSIONS}
    )
