"""
Analytics Engine

Milestone extraction, rate-of-rise and phase percentages over normalized
roast data, plus the small naming/formatting helpers the import and chart
code share. Everything here is a pure function of its inputs.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.ndimage import uniform_filter1d

from .config import DEFAULT_SETTINGS, AnalysisSettings
from .models import (
    CONTROL_MAPPING,
    FAN_CHANNEL,
    HEAT_CHANNEL,
    MILESTONE_ALIASES,
    MILESTONE_NAMES,
    Event,
    MilestoneSet,
    PhaseMetrics,
    TemperatureSample,
)

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000.0


# =============================================================================
# NAMES, UNITS AND FORMATTING
# =============================================================================

def normalize_event_name(name: str) -> str:
    """Lowercase an event name and join words with underscores."""
    return re.sub(r"\s+", "_", name.strip().lower())


def canonical_milestone_name(name: str) -> Optional[str]:
    """Canonical milestone name for a (possibly aliased) event name, else None."""
    name = normalize_event_name(name)
    name = MILESTONE_ALIASES.get(name, name)
    return name if name in MILESTONE_NAMES else None


def map_control_name(name: str) -> str:
    return CONTROL_MAPPING.get(name, name)


def control_channel_name(device_name: str) -> str:
    """
    Stored channel name for an external control device.

    'Burner' -> 'heat_setting', 'Air' -> 'fan_setting', 'Drum Speed' -> 'drum_speed'.
    """
    name = map_control_name(normalize_event_name(device_name))
    if name == "heat":
        return HEAT_CHANNEL
    if name == "fan":
        return FAN_CHANNEL
    return name


def format_display_name(event_string: str) -> str:
    """'fan_setting' -> 'Fan Setting'."""
    return " ".join(word.capitalize() for word in event_string.split("_"))


def format_time_display(ms: Optional[float]) -> str:
    """Format milliseconds as M:SS; '--:--' for missing or non-positive input."""
    if not ms or ms <= 0:
        return "--:--"
    total_seconds = int(ms // 1000)
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def fahrenheit_to_celsius(temp_f: float, precision: int = 2) -> float:
    return round((temp_f - 32.0) * 5.0 / 9.0, precision)


def celsius_to_fahrenheit(temp_c: float, precision: int = 2) -> float:
    return round(temp_c * 9.0 / 5.0 + 32.0, precision)


def convert_temperature(value: float, from_unit: str, to_unit: str, precision: int = 2) -> float:
    """Convert between 'F' and 'C', rounding to ``precision`` places."""
    if from_unit == to_unit:
        return round(value, precision)
    if from_unit == "F":
        return fahrenheit_to_celsius(value, precision)
    return celsius_to_fahrenheit(value, precision)


def weight_loss_percent(weight_in: Optional[float], weight_out: Optional[float]) -> Optional[float]:
    if weight_in is None or weight_out is None or weight_in <= 0:
        return None
    return round((weight_in - weight_out) / weight_in * 100.0, 2)


# =============================================================================
# SMOOTHING AND RATE OF RISE
# =============================================================================

def smooth_centered(values: Sequence[float], window: int) -> np.ndarray:
    """
    Centered sliding-window mean.

    Point i averages [i - window//2, i + ceil(window/2)); near the edges the
    window shrinks to the points that exist (no padding).
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0 or window <= 1:
        return arr.copy()
    sums = uniform_filter1d(arr, size=window, mode="constant", cval=0.0)
    counts = uniform_filter1d(np.ones_like(arr), size=window, mode="constant", cval=0.0)
    return sums / counts


def _empty_ror() -> pd.Series:
    return pd.Series([], index=pd.Index([], dtype=float, name="time_ms"), dtype=float, name="ror")


def calculate_ror(
    times_ms: Sequence[float],
    bean_temps: Sequence[Optional[float]],
    charge_time_ms: Optional[float] = None,
    drop_time_ms: Optional[float] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> pd.Series:
    """
    Rate of rise of the primary temperature, in degrees per minute.

    Pipeline: keep positive readings -> pre-smooth (temp_window) ->
    differentiate -> admit rates inside [charge, drop] that are positive and
    within max_ror -> post-smooth (ror_window).

    Args:
        times_ms: Sample times in milliseconds
        bean_temps: Primary temperatures (None for no reading)
        charge_time_ms: Start of the admission window (open when None)
        drop_time_ms: End of the admission window (open when None)
        settings: Window sizes and ceiling

    Returns:
        Series of RoR values indexed by time_ms; empty when there is too
        little data
    """
    t = np.asarray(times_ms, dtype=float)
    y = np.array([np.nan if v is None else v for v in bean_temps], dtype=float)

    keep = np.isfinite(t) & np.isfinite(y) & (y > 0)
    t, y = t[keep], y[keep]
    if len(y) < settings.temp_window or len(y) < 2:
        return _empty_ror()

    smoothed = smooth_centered(y, settings.temp_window)
    dt_minutes = np.diff(t) / MS_PER_MINUTE
    rise = np.diff(smoothed)
    with np.errstate(divide="ignore", invalid="ignore"):
        ror = np.where(dt_minutes > 0, rise / dt_minutes, np.nan)

    times = t[1:]
    admit = (dt_minutes > 0) & (ror > 0) & (np.abs(ror) <= settings.max_ror)
    if charge_time_ms is not None:
        admit &= times >= charge_time_ms
    if drop_time_ms is not None:
        admit &= times <= drop_time_ms

    if not admit.any():
        return _empty_ror()

    values = smooth_centered(ror[admit], settings.ror_window)
    return pd.Series(values, index=pd.Index(times[admit], name="time_ms"), name="ror")


def ror_at_point(
    times_ms: Sequence[float],
    bean_temps: Sequence[Optional[float]],
    index: int,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> Optional[float]:
    """RoR between point ``index`` and ``index - lookback``; None when unavailable."""
    lookback = settings.ror_lookback
    if index < lookback or index >= len(times_ms):
        return None

    current, previous = bean_temps[index], bean_temps[index - lookback]
    if not current or not previous:
        return None

    dt_minutes = (times_ms[index] - times_ms[index - lookback]) / MS_PER_MINUTE
    if dt_minutes <= 0:
        return None

    ror = (current - previous) / dt_minutes
    if ror <= 0 or ror > settings.max_ror:
        return None
    return round(ror, 1)


# =============================================================================
# MILESTONES AND PHASES
# =============================================================================

def nearest_temperature(samples: Sequence[TemperatureSample], time_seconds: float) -> Optional[float]:
    """Primary temperature of the sample nearest in time (readings only)."""
    readings = [s for s in samples if s.bean_temp is not None]
    if not readings:
        return None
    times = np.array([s.time_seconds for s in readings], dtype=float)
    order = np.argsort(times, kind="stable")
    times = times[order]

    pos = int(np.searchsorted(times, time_seconds))
    candidates = [i for i in (pos - 1, pos) if 0 <= i < len(times)]
    best = min(candidates, key=lambda i: abs(times[i] - time_seconds))
    return readings[int(order[best])].bean_temp


def extract_milestones(
    events: Iterable[Event],
    samples: Optional[Sequence[TemperatureSample]] = None,
) -> MilestoneSet:
    """
    Build a MilestoneSet from milestone events.

    Aliases (maillard, end) fill their canonical slot; a later event for the
    same milestone overwrites an earlier one. With ``samples`` each milestone
    is paired with the nearest primary temperature.
    """
    milestones = MilestoneSet()
    for event in events:
        if event.category != "milestone":
            continue
        name = canonical_milestone_name(event.event_string)
        if name is None:
            logger.debug("Ignoring unknown milestone event %r", event.event_string)
            continue
        temperature = nearest_temperature(samples, event.time_seconds) if samples else None
        milestones.set(name, event.time_ms, temperature)
    return milestones


def calculate_phase_metrics(
    milestones: MilestoneSet,
    as_of_ms: Optional[float] = None,
    first_sample_time_ms: Optional[float] = None,
) -> PhaseMetrics:
    """
    Drying / Maillard / development percentages of the roast.

    Args:
        milestones: Recorded milestones
        as_of_ms: Current elapsed time, used as the end anchor for a roast
            that has neither drop nor cool yet
        first_sample_time_ms: Start anchor when charge was not recorded

    Returns:
        PhaseMetrics; a phase with a missing or out-of-order boundary is 0
    """
    charge = milestones.time("charge")
    if charge is not None:
        start = charge
    elif first_sample_time_ms is not None:
        start = first_sample_time_ms
    else:
        start = 0.0

    end = milestones.time("drop")
    if end is None:
        end = milestones.time("cool")
    if end is None and as_of_ms is not None and as_of_ms > 0:
        end = float(as_of_ms)

    tp = milestones.time("dry_end")
    fc = milestones.time("fc_start")
    total = end - start if end is not None else 0.0

    metrics = PhaseMetrics(
        total_time_ms=max(total, 0.0),
        start_time_ms=start,
        end_time_ms=end,
        tp_time_ms=tp - start if tp is not None else None,
        fc_time_ms=fc - start if fc is not None else None,
        relative_times_ms={m.name: m.time_ms - start for m in milestones.recorded()},
    )
    if total <= 0:
        return metrics

    if tp is not None and start < tp <= end:
        metrics.drying_percent = (tp - start) / total * 100.0
    if tp is not None and fc is not None and tp < fc <= end:
        metrics.maillard_percent = (fc - tp) / total * 100.0
    if fc is not None and start <= fc < end:
        metrics.development_percent = (end - fc) / total * 100.0
    return metrics


def find_charge_time(events: Iterable[Event], samples: Sequence[TemperatureSample]) -> float:
    """Charge time in ms: the charge milestone, else the first sample, else 0."""
    charge = extract_milestones(events).time("charge")
    if charge is not None and math.isfinite(charge):
        return charge
    if samples:
        return samples[0].time_ms
    return 0.0


def build_roast_summary(milestones: MilestoneSet, phases: PhaseMetrics) -> Dict[str, Any]:
    """
    Denormalized per-roast summary row.

    Milestone times are in seconds; milestones that were not recorded are
    left out rather than stored as empty values.
    """
    summary: Dict[str, Any] = {}
    for milestone in milestones.recorded():
        summary[f"{milestone.name}_time"] = milestone.time_ms / 1000.0
        if milestone.temperature is not None:
            summary[f"{milestone.name}_temp"] = milestone.temperature

    summary["drying_percent"] = round(phases.drying_percent, 2)
    summary["maillard_percent"] = round(phases.maillard_percent, 2)
    summary["development_percent"] = round(phases.development_percent, 2)
    if phases.total_time_ms > 0:
        summary["total_roast_time"] = phases.total_time_ms / 1000.0
    return summary


def peak_ror(ror: pd.Series) -> Optional[float]:
    return float(ror.max()) if not ror.empty else None


__all__: List[str] = [
    "build_roast_summary",
    "calculate_phase_metrics",
    "calculate_ror",
    "canonical_milestone_name",
    "celsius_to_fahrenheit",
    "control_channel_name",
    "convert_temperature",
    "extract_milestones",
    "fahrenheit_to_celsius",
    "find_charge_time",
    "format_display_name",
    "format_time_display",
    "map_control_name",
    "nearest_temperature",
    "normalize_event_name",
    "peak_ror",
    "ror_at_point",
    "smooth_centered",
    "weight_loss_percent",
]
