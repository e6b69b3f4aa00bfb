"""
Chart Data Assembler

Merges a roast's temperature samples with its control and milestone events
into one time-ordered sequence of ChartPoints. Control channels are resolved
by carry-forward (the latest value at or before each sample, 0 before the
first one); milestone flags are raised on samples within the tolerance
window of a milestone event.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .analytics import canonical_milestone_name
from .config import DEFAULT_SETTINGS, AnalysisSettings
from .models import (
    FAN_CHANNEL,
    HEAT_CHANNEL,
    MILESTONE_LABELS,
    ChartPoint,
    Event,
    EventValueSeries,
    MilestoneMarker,
    MilestoneSet,
    PhaseMetrics,
    TemperatureSample,
)

logger = logging.getLogger(__name__)


@dataclass
class RoastChartData:
    """Everything a renderer needs for one roast."""

    roast_id: int
    points: List[ChartPoint]
    markers: List[MilestoneMarker]
    milestones: MilestoneSet
    phases: PhaseMetrics
    ror: pd.Series
    event_series: List[EventValueSeries] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_frame(self) -> pd.DataFrame:
        return chart_points_frame(self.points)


def _numeric(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def resolve_control_channel(
    sample_times: np.ndarray,
    events: Sequence[Event],
    channel: str,
) -> np.ndarray:
    """
    Carry-forward values of one control channel at each sample time.

    Args:
        sample_times: Sample times in seconds, ascending
        events: Roast events (non-control and other channels are ignored)
        channel: Channel name, e.g. 'fan_setting'

    Returns:
        Array of resolved values, 0 where no event precedes the sample
    """
    changes = [
        (float(e.time_seconds), value)
        for e in events
        if e.category == "control" and e.event_string == channel
        for value in (_numeric(e.event_value),)
        if value is not None
    ]
    if not changes or len(sample_times) == 0:
        return np.zeros(len(sample_times))

    right = pd.DataFrame(changes, columns=["time", "value"])
    right = right.sort_values("time", kind="stable").reset_index(drop=True)
    left = pd.DataFrame({"time": np.asarray(sample_times, dtype=float)})

    merged = pd.merge_asof(left, right, on="time", direction="backward")
    return merged["value"].fillna(0.0).to_numpy()


def milestone_flags(
    sample_times: np.ndarray,
    events: Sequence[Event],
    tolerance: float,
) -> Dict[str, np.ndarray]:
    """Per-milestone boolean arrays; aliases set their canonical flag."""
    flags: Dict[str, np.ndarray] = {}
    times = np.asarray(sample_times, dtype=float)
    for event in events:
        if event.category != "milestone":
            continue
        name = canonical_milestone_name(event.event_string)
        if name is None:
            continue
        lo = np.searchsorted(times, event.time_seconds - tolerance, side="left")
        hi = np.searchsorted(times, event.time_seconds + tolerance, side="right")
        if hi > lo:
            flag = flags.setdefault(name, np.zeros(len(times), dtype=bool))
            flag[lo:hi] = True
    return flags


def assemble_chart_points(
    samples: Sequence[TemperatureSample],
    events: Sequence[Event],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> List[ChartPoint]:
    """
    Build the sample-ordered ChartPoint sequence for a roast.

    Args:
        samples: Temperature samples (any order; output is time-ordered)
        events: Control and milestone events for the same roast
        settings: Provides the milestone tolerance window (seconds)

    Returns:
        One ChartPoint per sample
    """
    ordered = sorted(samples, key=lambda s: s.time_seconds)
    times = np.array([s.time_seconds for s in ordered], dtype=float)

    fan = resolve_control_channel(times, events, FAN_CHANNEL)
    heat = resolve_control_channel(times, events, HEAT_CHANNEL)
    flags = milestone_flags(times, events, settings.milestone_tolerance)

    points = []
    for i, sample in enumerate(ordered):
        point = ChartPoint(
            time_ms=sample.time_ms,
            fan=float(fan[i]),
            heat=float(heat[i]),
            bean_temp=sample.bean_temp,
            environmental_temp=sample.environmental_temp,
            ambient_temp=sample.ambient_temp,
            data_source=sample.data_source,
        )
        for name, flag in flags.items():
            if flag[i]:
                setattr(point, name, True)
        points.append(point)
    return points


def milestone_markers(milestones: MilestoneSet) -> List[MilestoneMarker]:
    return [
        MilestoneMarker(m.time_ms, m.name, MILESTONE_LABELS[m.name], m.temperature)
        for m in sorted(milestones.recorded(), key=lambda m: m.time_ms)
    ]


def chart_metadata(samples: Sequence[TemperatureSample]) -> Dict[str, Any]:
    """Point count, time range (ms) and temperature range over all channels."""
    temps = [
        t
        for s in samples
        for t in (s.bean_temp, s.environmental_temp, s.ambient_temp)
        if t is not None
    ]
    times = [s.time_ms for s in samples]
    time_range: Tuple[float, float] = (min(times), max(times)) if times else (0.0, 0.0)
    temperature_range: Tuple[float, float] = (min(temps), max(temps)) if temps else (0.0, 0.0)
    return {
        "total_points": len(samples),
        "time_range": time_range,
        "temperature_range": temperature_range,
    }


def chart_points_frame(points: Sequence[ChartPoint]) -> pd.DataFrame:
    """ChartPoints as a DataFrame (one row per point), e.g. for CSV export."""
    if not points:
        return pd.DataFrame(columns=[f for f in ChartPoint.__dataclass_fields__])
    return pd.DataFrame([p.to_dict() for p in points])


__all__ = [
    "RoastChartData",
    "assemble_chart_points",
    "chart_metadata",
    "chart_points_frame",
    "milestone_flags",
    "milestone_markers",
    "resolve_control_channel",
]
