"""
Record Transformer

Turns a parsed roast log into canonical records: unit-normalized temperature
samples, milestone and control events, phase percentages and roast metadata.
Inconsistencies the validator flags as warnings are repaired here (arrays
truncated, bad milestones skipped) and reported again as ConsistencyWarning.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from .analytics import (
    calculate_phase_metrics,
    control_channel_name,
    convert_temperature,
    nearest_temperature,
    weight_loss_percent,
)
from .config import DEFAULT_SETTINGS, AnalysisSettings
from .errors import ConsistencyWarning, StructuralValidationError
from .models import (
    CONTROL_EVENT_TYPE,
    MILESTONE_EVENT_TYPE,
    MILESTONE_NAMES,
    Event,
    MilestoneSet,
    PhaseMetrics,
    TemperatureSample,
)
from .validator import (
    MILESTONE_KEY,
    MISSING_READING,
    PRIMARY_KEY,
    SECONDARY_KEY,
    TIME_KEY,
    is_number,
    length_mismatch_message,
    milestone_index,
    milestone_out_of_range_message,
)

logger = logging.getLogger(__name__)

# Recorder defaults for the special-event type names
DEFAULT_EVENT_TYPES = ["Air", "Drum", "Damper", "Burner", "--"]


@dataclass
class TransformedRoast:
    """Canonical records produced from one import document."""

    roast_id: int
    samples: List[TemperatureSample]
    events: List[Event]
    milestones: MilestoneSet
    phases: PhaseMetrics
    metadata: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    source_sample_count: int = 0

    @property
    def milestone_events(self) -> List[Event]:
        return [e for e in self.events if e.category == "milestone"]

    @property
    def control_events(self) -> List[Event]:
        return [e for e in self.events if e.category == "control"]


def _record(log: List[str], message: str) -> None:
    if message in log:
        return
    log.append(message)
    warnings.warn(message, ConsistencyWarning, stacklevel=3)


def _array(data: Dict[str, Any], key: str) -> list:
    value = data.get(key)
    return value if isinstance(value, list) else []


def source_unit(data: Dict[str, Any]) -> str:
    """Temperature unit declared by the document ('F' when missing or invalid)."""
    mode = data.get("mode")
    unit = mode.strip().upper() if isinstance(mode, str) else ""
    return unit if unit in ("F", "C") else "F"


def format_control_value(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else str(round(value, 4))


def _reading(value: Any, unit: str, settings: AnalysisSettings) -> Optional[float]:
    if not is_number(value) or value == MISSING_READING:
        return None
    return convert_temperature(float(value), unit, settings.canonical_unit,
                               settings.temperature_precision)


# =============================================================================
# SAMPLES
# =============================================================================

def _build_samples(
    data: Dict[str, Any],
    roast_id: int,
    data_source: str,
    settings: AnalysisSettings,
    log: List[str],
) -> Tuple[List[TemperatureSample], int]:
    """Returns (samples in time order, usable length)."""
    times = _array(data, TIME_KEY)
    primary = _array(data, PRIMARY_KEY)
    secondary = _array(data, SECONDARY_KEY)

    lengths = {TIME_KEY: len(times), PRIMARY_KEY: len(primary), SECONDARY_KEY: len(secondary)}
    usable = min(lengths.values())
    if len(set(lengths.values())) > 1:
        _record(log, length_mismatch_message(lengths, usable))

    unit = source_unit(data)
    samples: List[TemperatureSample] = []
    skipped_time = backwards = 0
    last_time: Optional[float] = None

    for i in range(usable):
        t = times[i]
        if not is_number(t):
            skipped_time += 1
            continue
        if last_time is not None and t < last_time:
            backwards += 1
            continue
        last_time = t

        bean = _reading(primary[i], unit, settings)
        env = _reading(secondary[i], unit, settings)
        samples.append(TemperatureSample(
            roast_id=roast_id,
            time_seconds=float(t),
            bean_temp=bean,
            environmental_temp=env,
            data_source=data_source,
            data_quality="good" if bean is not None and env is not None else "partial",
        ))

    if skipped_time:
        _record(log, f"Skipped {skipped_time} sample(s) with a non-numeric time")
    if backwards:
        _record(log, f"Dropped {backwards} sample(s) whose time goes backwards")
    return samples, usable


def downsample_indices(
    values: Sequence[Optional[float]],
    keep_always: Set[int],
    target: int,
    threshold: float,
) -> List[int]:
    """
    Indices to retain when thinning a series.

    Every Nth point (N = max(1, total // target)), plus any point that moved
    more than ``threshold`` from the last retained reading, plus every index
    in ``keep_always``.
    """
    total = len(values)
    stride = max(1, total // target)
    readings = np.array([np.nan if v is None else v for v in values], dtype=float)

    fixed = np.zeros(total, dtype=bool)
    fixed[::stride] = True
    pinned = np.array([i for i in keep_always if 0 <= i < total], dtype=int)
    fixed[pinned] = True

    retained: List[int] = []
    last_value = np.nan
    for i in range(total):
        value = readings[i]
        # comparisons against NaN are False, so gaps never count as changes
        if fixed[i] or abs(value - last_value) > threshold:
            retained.append(i)
            if not np.isnan(value):
                last_value = value
    return retained


# =============================================================================
# EVENTS
# =============================================================================

def _resolve_milestones(
    data: Dict[str, Any],
    roast_id: int,
    data_source: str,
    samples: List[TemperatureSample],
    usable: int,
    log: List[str],
) -> Tuple[MilestoneSet, List[Event]]:
    times = _array(data, TIME_KEY)
    milestones = MilestoneSet()
    events: List[Event] = []

    for slot, raw in enumerate(_array(data, MILESTONE_KEY)[:len(MILESTONE_NAMES)]):
        index = milestone_index(raw)
        if index is None or index <= 0:
            continue
        if index >= usable:
            _record(log, milestone_out_of_range_message(slot, index, usable - 1))
            continue
        t = times[index]
        if not is_number(t):
            continue

        name = MILESTONE_NAMES[slot]
        milestones.set(name, t * 1000.0, nearest_temperature(samples, t))
        events.append(Event(
            roast_id=roast_id,
            time_seconds=float(t),
            event_type=MILESTONE_EVENT_TYPE,
            event_value=None,
            event_string=name,
            category="milestone",
            subcategory="roast_phase",
            data_source=data_source,
        ))
    return milestones, events


def _extra_device_readings(data: Dict[str, Any]) -> List[Tuple[float, str, float]]:
    readings: List[Tuple[float, str, float]] = []
    devices = _array(data, "extradevices")
    timex = _array(data, "extratimex")

    for device in range(len(devices)):
        if device >= len(timex) or not isinstance(timex[device], list):
            continue
        for names_key, values_key in (("extraname1", "extratemp1"), ("extraname2", "extratemp2")):
            names = _array(data, names_key)
            series = _array(data, values_key)
            if device >= len(names) or device >= len(series):
                continue
            name, values = names[device], series[device]
            if not isinstance(name, str) or not name.strip() or not isinstance(values, list):
                continue
            channel = control_channel_name(name)
            for t, v in zip(timex[device], values):
                if is_number(t) and is_number(v) and v != MISSING_READING:
                    readings.append((float(t), channel, float(v)))
    return readings


def _special_event_readings(data: Dict[str, Any], usable: int) -> List[Tuple[float, str, float]]:
    readings: List[Tuple[float, str, float]] = []
    times = _array(data, TIME_KEY)
    etypes = _array(data, "etypes") or DEFAULT_EVENT_TYPES
    indices = _array(data, "specialevents")
    types = _array(data, "specialeventstype")
    values = _array(data, "specialeventsvalue")

    for index, kind, value in zip(indices, types, values):
        index, kind = milestone_index(index), milestone_index(kind)
        if index is None or not 0 <= index < usable or not is_number(times[index]):
            continue
        # the last type slot ("--") is an untyped marker
        if kind is None or not 0 <= kind < len(etypes) - 1 or not is_number(value):
            continue
        name = etypes[kind]
        if not isinstance(name, str) or not name.strip():
            continue
        readings.append((float(times[index]), control_channel_name(name), round((value - 1) * 10.0, 2)))
    return readings


def _control_events(
    data: Dict[str, Any],
    roast_id: int,
    data_source: str,
    usable: int,
) -> List[Event]:
    readings = _extra_device_readings(data) + _special_event_readings(data, usable)
    readings.sort(key=lambda r: r[0])

    last: Dict[str, float] = {}
    events: List[Event] = []
    for t, channel, value in readings:
        if last.get(channel) == value:
            continue
        last[channel] = value
        events.append(Event(
            roast_id=roast_id,
            time_seconds=t,
            event_type=CONTROL_EVENT_TYPE,
            event_value=format_control_value(value),
            event_string=channel,
            category="control",
            subcategory="machine_setting",
            data_source=data_source,
        ))
    return events


# =============================================================================
# METADATA AND ENTRY POINT
# =============================================================================

def _metadata(data: Dict[str, Any], settings: AnalysisSettings) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "title": data.get("title") if isinstance(data.get("title"), str) else None,
        "roaster_type": data.get("roastertype") if isinstance(data.get("roastertype"), str) else None,
        "roaster_size": data.get("roastersize") if is_number(data.get("roastersize")) else None,
        "source_unit": source_unit(data),
        "temperature_unit": settings.canonical_unit,
        "roast_notes": data.get("roastingnotes") or None,
        "roast_uuid": data.get("roastUUID") or data.get("roast_uuid") or None,
        "weight_in": None,
        "weight_out": None,
        "weight_unit": None,
        "weight_loss_percent": None,
    }

    weight = data.get("weight")
    if isinstance(weight, list) and len(weight) == 3:
        weight_in, weight_out, weight_unit = weight
        meta["weight_in"] = weight_in if is_number(weight_in) else None
        meta["weight_out"] = weight_out if is_number(weight_out) else None
        meta["weight_unit"] = weight_unit if isinstance(weight_unit, str) else None
        meta["weight_loss_percent"] = weight_loss_percent(meta["weight_in"], meta["weight_out"])
    return meta


def transform_roast_document(
    data: Dict[str, Any],
    roast_id: int,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
    data_source: str = "imported",
) -> TransformedRoast:
    """
    Normalize a parsed roast log into canonical records.

    Args:
        data: Parsed document
        roast_id: Roast the records belong to
        settings: Unit, precision and down-sampling settings
        data_source: Provenance tag stamped on every record

    Returns:
        TransformedRoast with samples in time order

    Raises:
        StructuralValidationError: If there are no samples and no charge milestone
    """
    log: List[str] = []
    samples, usable = _build_samples(data, roast_id, data_source, settings, log)
    milestones, milestone_events = _resolve_milestones(
        data, roast_id, data_source, samples, usable, log
    )

    if not samples and milestones.charge is None:
        raise StructuralValidationError(["No temperature samples and no charge milestone"])

    # Milestone positions in the sample list (nearest in time when the exact
    # sample was dropped)
    keep_always: Set[int] = set()
    if samples:
        sample_times = [s.time_seconds for s in samples]
        for milestone in milestones.recorded():
            t = milestone.time_ms / 1000.0
            keep_always.add(min(range(len(sample_times)), key=lambda i: abs(sample_times[i] - t)))

    retained = downsample_indices(
        [s.bean_temp for s in samples],
        keep_always,
        settings.downsample_target,
        settings.significant_change,
    )
    reduced = [samples[i] for i in retained]
    if len(reduced) < len(samples):
        logger.debug("Down-sampled roast %s from %d to %d samples", roast_id, len(samples), len(reduced))

    events = milestone_events + _control_events(data, roast_id, data_source, usable)
    events.sort(key=lambda e: e.time_seconds)

    phases = calculate_phase_metrics(
        milestones,
        first_sample_time_ms=samples[0].time_ms if samples else None,
    )

    logger.info(
        "Transformed roast %s: %d samples, %d milestones, %d control events",
        roast_id, len(reduced), len(milestones), len(events) - len(milestone_events),
    )
    return TransformedRoast(
        roast_id=roast_id,
        samples=reduced,
        events=events,
        milestones=milestones,
        phases=phases,
        metadata=_metadata(data, settings),
        warnings=log,
        source_sample_count=len(samples),
    )


__all__ = [
    "DEFAULT_EVENT_TYPES",
    "TransformedRoast",
    "downsample_indices",
    "format_control_value",
    "source_unit",
    "transform_roast_document",
]
