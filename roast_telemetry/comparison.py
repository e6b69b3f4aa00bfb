"""
Cross-roast comparison: curves resampled onto a common grid and a per-roast
summary table.
"""

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .analytics import peak_ror
from .chart_data import RoastChartData
from .models import MilestoneSet, TemperatureSample

SUMMARY_COLUMNS = [
    "filename",
    "roast_id",
    "total_points",
    "duration",
    "charge_temp",
    "drop_temp",
    "drying_percent",
    "maillard_percent",
    "development_percent",
    "peak_ror",
]


def regularize_curve(
    samples: Sequence[TemperatureSample],
    milestones: MilestoneSet,
    n_points: int = 200,
) -> Dict[str, List[float]]:
    """
    Resample the charge→drop segment onto a fixed 0→1 grid.

    Args:
        samples: Temperature samples of one roast
        milestones: Its milestones (charge/drop bound the segment when present)
        n_points: Number of points in the regularized grid

    Returns:
        Dict with time_reg, bt_reg and et_reg lists (NaN-filled when the
        segment has fewer than two readings)
    """
    grid = np.linspace(0, 1, n_points)
    charge, drop = milestones.time("charge"), milestones.time("drop")

    segment = [
        s for s in sorted(samples, key=lambda s: s.time_seconds)
        if s.bean_temp is not None
        and (charge is None or s.time_ms >= charge)
        and (drop is None or s.time_ms <= drop)
    ]

    if len(segment) < 2 or segment[-1].time_ms == segment[0].time_ms:
        # Not enough points to interpolate
        return {
            "time_reg": grid.tolist(),
            "bt_reg": [math.nan] * n_points,
            "et_reg": [math.nan] * n_points,
        }

    ts = np.array([s.time_ms for s in segment])
    t_norm = (ts - ts[0]) / (ts[-1] - ts[0])
    bt = np.array([s.bean_temp for s in segment], dtype=float)
    et = np.array(
        [np.nan if s.environmental_temp is None else s.environmental_temp for s in segment],
        dtype=float,
    )
    return {
        "time_reg": grid.tolist(),
        "bt_reg": np.interp(grid, t_norm, bt).tolist(),
        "et_reg": np.interp(grid, t_norm, et).tolist(),
    }


def _temperature(milestones: MilestoneSet, name: str) -> Optional[float]:
    milestone = milestones.get(name)
    return milestone.temperature if milestone is not None else None


def summarize_roasts(analyses: Mapping[str, RoastChartData]) -> pd.DataFrame:
    """
    One row per roast.

    Args:
        analyses: Chart data keyed by a display label (e.g. filename)

    Returns:
        DataFrame with SUMMARY_COLUMNS; duration is in seconds
    """
    rows: List[Dict[str, Any]] = []
    for label, chart in analyses.items():
        phases = chart.phases
        rows.append({
            "filename": label,
            "roast_id": chart.roast_id,
            "total_points": len(chart.points),
            "duration": phases.total_time_ms / 1000.0 if phases.total_time_ms else np.nan,
            "charge_temp": _temperature(chart.milestones, "charge"),
            "drop_temp": _temperature(chart.milestones, "drop"),
            "drying_percent": phases.drying_percent,
            "maillard_percent": phases.maillard_percent,
            "development_percent": phases.development_percent,
            "peak_ror": peak_ror(chart.ror),
        })
    df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    for column in SUMMARY_COLUMNS[2:]:
        df[column] = pd.to_numeric(df[column], errors="coerce")
    return df


def _stat(value: Any) -> Optional[float]:
    value = float(value)
    return None if math.isnan(value) else value


def get_comparison_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Aggregate statistics over a summarize_roasts() table.

    Averages and ranges ignore missing values and are None when a column
    has no values at all.
    """
    if df.empty:
        return {"total_roasts": 0}

    return {
        "total_roasts": len(df),
        "avg_duration": _stat(df["duration"].mean()),
        "avg_drop_temp": _stat(df["drop_temp"].mean()),
        "avg_development_percent": _stat(df["development_percent"].mean()),
        "avg_peak_ror": _stat(df["peak_ror"].mean()),
        "temp_range": {
            "min_drop": _stat(df["drop_temp"].min()),
            "max_drop": _stat(df["drop_temp"].max()),
            "min_charge": _stat(df["charge_temp"].min()),
            "max_charge": _stat(df["charge_temp"].max()),
        },
    }


__all__ = ["SUMMARY_COLUMNS", "get_comparison_summary", "regularize_curve", "summarize_roasts"]
