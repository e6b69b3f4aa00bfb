"""
Static roast-curve previews for the command line.
"""

import logging
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure
from matplotlib.ticker import FuncFormatter, MultipleLocator

from .chart_data import RoastChartData
from .config import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)

ET_COLOR = "#ea5545"
BT_COLOR = "#27aeef"
LABEL_OFFSET = 5


def _mmss(seconds: float, _pos: Optional[int] = None) -> str:
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    return f"{sign}{int(seconds // 60)}:{int(seconds % 60):02d}"


def plot_roast_chart(
    chart_data: RoastChartData,
    title: Optional[str] = None,
    save_path: Optional[str] = None,
    unit: str = "F",
    max_ror: float = DEFAULT_SETTINGS.max_ror,
) -> Figure:
    """
    Plot BT/ET curves, milestone labels and RoR on a twin axis.

    Times are shown as M:SS relative to charge (the first sample when charge
    was not recorded).

    Args:
        chart_data: Chart data from RoastTelemetryService.get_chart_data()
        title: Optional title for the plot
        save_path: Save to this path instead of showing the figure
        unit: Temperature unit for axis labels
        max_ror: Lowest RoR axis ceiling; raised to fit a higher peak

    Returns:
        The figure (closed when saved)
    """
    points = chart_data.points
    charge_ms = chart_data.milestones.time("charge")
    if charge_ms is None:
        charge_ms = points[0].time_ms if points else 0.0

    time_s = np.array([(p.time_ms - charge_ms) / 1000.0 for p in points])
    bt = np.array([np.nan if p.bean_temp is None else p.bean_temp for p in points], dtype=float)
    et = np.array(
        [np.nan if p.environmental_temp is None else p.environmental_temp for p in points],
        dtype=float,
    )

    fig, ax1 = plt.subplots(figsize=(12, 6))
    ax1.plot(time_s, et, color=ET_COLOR, label="ET")
    ax1.plot(time_s, bt, color=BT_COLOR, label="BT")

    for marker in chart_data.markers:
        if marker.temperature is None:
            continue
        x = (marker.time_ms - charge_ms) / 1000.0
        ax1.scatter(x, marker.temperature, color="black", zorder=5)
        ax1.text(x, marker.temperature + LABEL_OFFSET,
                 f"{marker.label.upper()}\n{_mmss(x)}\n{marker.temperature:.1f}°{unit}",
                 ha="center", va="bottom")

    ax2 = ax1.twinx()
    if not chart_data.ror.empty:
        ror_time = (chart_data.ror.index.to_numpy(dtype=float) - charge_ms) / 1000.0
        ax2.plot(ror_time, chart_data.ror.to_numpy(), linestyle="--", color="lightgray",
                 label=f"RoR (°{unit}/min)")
    ax2.set_ylabel(f"Rate of Rise (°{unit}/min)")
    ror_peak = float(chart_data.ror.max()) if not chart_data.ror.empty else 0.0
    ax2.set_ylim(0, max(max_ror, ror_peak))

    # Dynamic x-ticks every ~30s
    span = float(time_s.max() - min(time_s.min(), 0)) if len(time_s) else 0.0
    max_ticks = 10
    interval = max(30, int(np.ceil(span / (max_ticks * 30))) * 30)
    ax1.xaxis.set_major_locator(MultipleLocator(interval))
    ax1.xaxis.set_major_formatter(FuncFormatter(_mmss))
    ax1.set_xlabel("Time since Charge (mm:ss)")
    ax1.set_ylabel(f"Temperature (°{unit})")

    h1, l1 = ax1.get_legend_handles_labels()
    h2, l2 = ax2.get_legend_handles_labels()
    ax1.legend(h1 + h2, l1 + l2, loc="upper left",
               bbox_to_anchor=(1.1, .6), borderaxespad=0)

    # Only horizontal gridlines on temperature axis
    ax1.grid(True, axis="y")
    ax1.grid(False, axis="x")
    ax2.grid(False)

    if title:
        ax1.set_title(title)

    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        plt.close(fig)
        logger.debug("Saved roast chart to %s", save_path)
    else:
        plt.show()
    return fig


__all__ = ["plot_roast_chart"]
