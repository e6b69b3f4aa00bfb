"""
Event Value Series Builder

Groups control events by channel and summarizes each channel's numeric
values for display.
"""

import logging
import math
from collections import OrderedDict
from typing import Dict, List, Sequence, Tuple

from .analytics import format_display_name
from .models import Event, EventValueSeries

logger = logging.getLogger(__name__)

LOW_SCALE_MAX = 10.0
PERCENTAGE_SCALE_MAX = 100.0


def classify_scale(min_value: float, max_value: float) -> str:
    """'low' for values within [0, 10], 'percentage' within [0, 100], else 'custom'."""
    if min_value < 0:
        return "custom"
    if max_value <= LOW_SCALE_MAX:
        return "low"
    if max_value <= PERCENTAGE_SCALE_MAX:
        return "percentage"
    return "custom"


def build_event_value_series(events: Sequence[Event]) -> List[EventValueSeries]:
    """
    One series per control channel, in order of first appearance.

    Events whose value is not numeric are skipped; a channel with no numeric
    values at all produces no series.
    """
    groups: Dict[str, List[Tuple[float, float]]] = OrderedDict()
    skipped = 0
    for event in events:
        if event.category != "control":
            continue
        try:
            value = float(event.event_value)
        except (TypeError, ValueError):
            skipped += 1
            continue
        if not math.isfinite(value):
            skipped += 1
            continue
        groups.setdefault(event.event_string, []).append((event.time_seconds, value))

    if skipped:
        logger.debug("Skipped %d control event(s) with non-numeric values", skipped)

    series = []
    for channel, values in groups.items():
        values.sort(key=lambda tv: tv[0])
        numbers = [v for _, v in values]
        lo, hi = min(numbers), max(numbers)
        series.append(EventValueSeries(
            event_string=channel,
            display_name=format_display_name(channel),
            values=values,
            min_value=lo,
            max_value=hi,
            scale=classify_scale(lo, hi),
        ))
    return series


__all__ = ["build_event_value_series", "classify_scale"]
