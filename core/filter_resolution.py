"""
Panel filter resolution.

Each filter dimension is resolved on its own, first non-empty layer wins:

    user override -> (global, primary panel only) -> panel default -> global -> all

The primary panel is driven by the top-level filter bar, so a non-empty
global selection beats its saved defaults. Secondary panels keep their saved
defaults and only inherit global selections for dimensions they leave open.
An empty result means "all" for that dimension.
"""

from typing import Optional

from models import FILTER_DIMENSIONS, DateRangeState, FilterState


def resolve_panel_filters(
    panel_defaults: Optional[FilterState],
    user_override: Optional[FilterState],
    global_filters: Optional[FilterState],
    is_primary: bool = False,
) -> FilterState:
    """
    Resolve the effective filter set for one panel.

    Args:
        panel_defaults: Filters saved with the panel config
        user_override: Filters the user set on this panel, if any
        global_filters: Filters from the dashboard filter bar
        is_primary: Whether this is the first (main) panel

    Returns:
        FilterState with every dimension set; empty means "all"
    """
    if is_primary:
        layers = (user_override, global_filters, panel_defaults)
    else:
        layers = (user_override, panel_defaults, global_filters)

    resolved = {}
    for dimension in FILTER_DIMENSIONS:
        resolved[dimension] = frozenset()
        for layer in layers:
            if layer is not None and layer.get(dimension):
                resolved[dimension] = layer.get(dimension)
                break
    return FilterState(**resolved)


def resolve_date_range(
    panel_range: Optional[DateRangeState], global_range: DateRangeState
) -> DateRangeState:
    """Panels follow the global range until they are given their own"""
    return panel_range if panel_range is not None else global_range
