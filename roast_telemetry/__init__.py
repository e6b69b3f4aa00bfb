"""
Roast telemetry import and analytics.

Parses Artisan-style .alog roast logs (tolerating hand-edited and
non-Python-literal variants), validates and normalizes them into canonical
samples and events, and derives milestones, rate of rise and phase
percentages for charting and cross-roast comparison.
"""

from .alog_parser import ParsedDocument, load_alog, looks_like_alog, parse_alog
from .analytics import (
    build_roast_summary,
    calculate_phase_metrics,
    calculate_ror,
    extract_milestones,
    find_charge_time,
    ror_at_point,
    smooth_centered,
)
from .chart_data import RoastChartData, assemble_chart_points
from .comparison import get_comparison_summary, regularize_curve, summarize_roasts
from .config import DEFAULT_SETTINGS, AnalysisSettings, load_settings
from .errors import AlogFormatError, ConsistencyWarning, StoreError, StructuralValidationError
from .event_series import build_event_value_series, classify_scale
from .models import (
    ChartPoint,
    Event,
    EventValueSeries,
    Milestone,
    MilestoneMarker,
    MilestoneSet,
    PhaseMetrics,
    TemperatureSample,
)
from .service import ImportResult, RoastTelemetryService
from .store import ImportLogEntry, InMemoryTelemetryStore, TelemetryStore, insert_in_batches
from .transformer import TransformedRoast, transform_roast_document
from .validator import ValidationReport, validate_roast_document

__version__ = "0.1.0"

__all__ = [
    "AlogFormatError",
    "AnalysisSettings",
    "ChartPoint",
    "ConsistencyWarning",
    "DEFAULT_SETTINGS",
    "Event",
    "EventValueSeries",
    "ImportLogEntry",
    "ImportResult",
    "InMemoryTelemetryStore",
    "Milestone",
    "MilestoneMarker",
    "MilestoneSet",
    "ParsedDocument",
    "PhaseMetrics",
    "RoastChartData",
    "RoastTelemetryService",
    "StoreError",
    "StructuralValidationError",
    "TelemetryStore",
    "TemperatureSample",
    "TransformedRoast",
    "ValidationReport",
    "assemble_chart_points",
    "build_event_value_series",
    "build_roast_summary",
    "calculate_phase_metrics",
    "calculate_ror",
    "classify_scale",
    "extract_milestones",
    "find_charge_time",
    "get_comparison_summary",
    "insert_in_batches",
    "load_alog",
    "load_settings",
    "looks_like_alog",
    "parse_alog",
    "regularize_curve",
    "ror_at_point",
    "smooth_centered",
    "summarize_roasts",
    "transform_roast_document",
    "validate_roast_document",
]
