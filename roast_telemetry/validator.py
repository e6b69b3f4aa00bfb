"""
Import Validator

Checks a parsed roast log before it is transformed. Fatal problems (missing,
empty or non-numeric required arrays) are collected as errors; everything
the transformer can repair or ignore is collected as a warning. Every check
reports on its own so the caller sees all distinct reasons at once.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import MILESTONE_NAMES

logger = logging.getLogger(__name__)

TIME_KEY = "timex"
PRIMARY_KEY = "temp2"
SECONDARY_KEY = "temp1"
MILESTONE_KEY = "timeindex"

REQUIRED_ARRAYS = {
    TIME_KEY: "time",
    PRIMARY_KEY: "bean temperature",
    SECONDARY_KEY: "environmental temperature",
}

# Device value meaning "no reading"
MISSING_READING = -1

# Plausible ranges per unit: (bean min, bean max, environment min, environment max)
TEMPERATURE_RANGES = {
    "F": (100.0, 600.0, 200.0, 800.0),
    "C": (38.0, 315.0, 93.0, 427.0),
}

MIN_DURATION_S = 60.0
MAX_DURATION_S = 3600.0
MIN_SAMPLES = 10
MAX_SAMPLES = 10000


@dataclass
class ValidationReport:
    """Outcome of validating one document."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    usable_length: int = 0


def is_number(value: Any) -> bool:
    """True for finite ints/floats (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def milestone_index(value: Any) -> Optional[int]:
    """Integer value of a milestone slot, or None when it is not an integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def slot_name(slot: int) -> str:
    return MILESTONE_NAMES[slot] if slot < len(MILESTONE_NAMES) else f"slot {slot}"


# Messages shared with the transformer, so the same problem reads the same
# way whichever stage reports it.

def length_mismatch_message(lengths: Dict[str, int], usable: int) -> str:
    detail = ", ".join(f"{key}={n}" for key, n in lengths.items())
    return f"Parallel arrays differ in length ({detail}); truncated to {usable} samples"


def milestone_out_of_range_message(slot: int, index: int, max_index: int) -> str:
    return (
        f"Milestone {slot_name(slot)} index {index} exceeds last sample index "
        f"{max_index}; ignored"
    )


def _describe_bad_elements(key: str, values: Sequence[Any]) -> Optional[str]:
    bad = [i for i, v in enumerate(values) if not is_number(v)]
    if not bad:
        return None
    shown = ", ".join(str(i) for i in bad[:5])
    more = f" (and {len(bad) - 5} more)" if len(bad) > 5 else ""
    return f"Non-numeric values in {key} at indices {shown}{more}"


def _check_required(data: Dict[str, Any], errors: List[str]) -> Dict[str, list]:
    arrays = {}
    for key, label in REQUIRED_ARRAYS.items():
        values = data.get(key)
        if not isinstance(values, list):
            errors.append(f"Missing or invalid {label} data ({key} array)")
        elif not values:
            errors.append(f"Empty {label} data array ({key})")
        else:
            reason = _describe_bad_elements(key, values)
            if reason:
                errors.append(reason)
            arrays[key] = values
    return arrays


def _check_milestones(data: Dict[str, Any], usable_length: int, warnings: List[str]) -> None:
    slots = data.get(MILESTONE_KEY)
    if not isinstance(slots, list):
        warnings.append(f"Missing or invalid milestone data ({MILESTONE_KEY}); no milestones recorded")
        return

    if len(slots) != len(MILESTONE_NAMES):
        warnings.append(
            f"Unexpected milestone array length ({len(slots)}, expected {len(MILESTONE_NAMES)})"
        )

    max_index = usable_length - 1
    in_range: List[int] = []
    for slot, raw in enumerate(slots[:len(MILESTONE_NAMES)]):
        index = milestone_index(raw)
        if index is None:
            warnings.append(f"Milestone {slot_name(slot)} has a non-integer index ({raw!r}); ignored")
            continue
        if index <= 0:
            continue
        if usable_length and index > max_index:
            warnings.append(milestone_out_of_range_message(slot, index, max_index))
            continue
        in_range.append(index)

    if any(b <= a for a, b in zip(in_range, in_range[1:])):
        warnings.append("Milestone events may not be in chronological order")


def _check_metadata(data: Dict[str, Any], warnings: List[str]) -> str:
    mode = data.get("mode")
    unit = mode.strip().upper() if isinstance(mode, str) else ""
    if unit not in TEMPERATURE_RANGES:
        warnings.append("Missing or invalid temperature unit (mode); defaulting to Fahrenheit")
        unit = "F"

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        warnings.append("Missing or empty roast title")

    if not isinstance(data.get("roastertype"), str):
        warnings.append("Missing roaster type information")

    weight = data.get("weight")
    if weight is None:
        warnings.append("Missing weight data")
    elif not isinstance(weight, list) or len(weight) != 3:
        warnings.append("Invalid weight data format (expected [input, output, unit])")
    else:
        weight_in, weight_out, weight_unit = weight
        if not is_number(weight_in) or weight_in <= 0:
            warnings.append("Invalid input weight value")
        if not is_number(weight_out) or weight_out <= 0:
            warnings.append("Invalid output weight value")
        if not isinstance(weight_unit, str):
            warnings.append("Invalid weight unit")
        if is_number(weight_in) and is_number(weight_out) and weight_out > weight_in:
            warnings.append("Output weight exceeds input weight (possible data error)")

    return unit


def _check_ranges(arrays: Dict[str, list], unit: str, warnings: List[str]) -> None:
    bean_min, bean_max, env_min, env_max = TEMPERATURE_RANGES[unit]
    for key, label, lo, hi in (
        (PRIMARY_KEY, "Bean", bean_min, bean_max),
        (SECONDARY_KEY, "Environmental", env_min, env_max),
    ):
        readings = [v for v in arrays.get(key, []) if is_number(v) and v != MISSING_READING]
        if readings and (min(readings) < lo or max(readings) > hi):
            warnings.append(
                f"{label} temperatures outside typical range "
                f"({min(readings)}°{unit} - {max(readings)}°{unit})"
            )

    times = [t for t in arrays.get(TIME_KEY, []) if is_number(t)]
    if not times:
        return
    if min(times) < 0:
        warnings.append("Negative time values detected")
    duration = max(times) - min(times)
    if duration < MIN_DURATION_S:
        warnings.append(f"Very short roast duration ({duration:.1f} seconds)")
    elif duration > MAX_DURATION_S:
        warnings.append(f"Very long roast duration ({duration:.1f} seconds)")
    if any(b < a for a, b in zip(times, times[1:])):
        warnings.append("Time sequence is not monotonically increasing")


def validate_roast_document(data: Any) -> ValidationReport:
    """
    Validate a parsed roast log.

    Args:
        data: Parsed document (normally a dict from parse_alog)

    Returns:
        ValidationReport; ``valid`` is False only when required arrays are
        missing, empty or non-numeric
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(data, dict):
        return ValidationReport(False, ["Invalid file format: expected an object"], [], 0)

    arrays = _check_required(data, errors)

    usable_length = 0
    if len(arrays) == len(REQUIRED_ARRAYS):
        lengths = {key: len(values) for key, values in arrays.items()}
        usable_length = min(lengths.values())
        if len(set(lengths.values())) > 1:
            warnings.append(length_mismatch_message(lengths, usable_length))
        if usable_length > MAX_SAMPLES:
            warnings.append(f"Large dataset detected ({usable_length} points); import may take longer")
        elif usable_length < MIN_SAMPLES:
            warnings.append(f"Small dataset detected ({usable_length} points); verify this is a complete roast")

    _check_milestones(data, usable_length, warnings)
    unit = _check_metadata(data, warnings)
    _check_ranges(arrays, unit, warnings)

    report = ValidationReport(
        valid=not errors,
        errors=list(dict.fromkeys(errors)),
        warnings=list(dict.fromkeys(warnings)),
        usable_length=usable_length,
    )
    logger.debug(
        "Validated document: %d error(s), %d warning(s), %d usable samples",
        len(report.errors), len(report.warnings), usable_length,
    )
    return report


__all__ = [
    "MILESTONE_KEY",
    "PRIMARY_KEY",
    "REQUIRED_ARRAYS",
    "SECONDARY_KEY",
    "TIME_KEY",
    "ValidationReport",
    "is_number",
    "length_mismatch_message",
    "milestone_index",
    "milestone_out_of_range_message",
    "validate_roast_document",
]
