"""
Record types shared by the import pipeline, the store adapters and analytics.

Times are seconds on stored records (TemperatureSample, Event) and
milliseconds on derived, chart-facing structures (MilestoneSet, PhaseMetrics,
ChartPoint), matching what each consumer works in.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple


DATA_SOURCES = ("live", "imported", "manual")
EVENT_CATEGORIES = ("milestone", "control", "machine")

# Positional order of the 8-slot milestone index array in an import document
MILESTONE_NAMES = (
    "charge",
    "dry_end",
    "fc_start",
    "fc_end",
    "sc_start",
    "sc_end",
    "drop",
    "cool",
)
MILESTONE_ALIASES = {"maillard": "dry_end", "end": "cool"}
MILESTONE_LABELS = {
    "charge": "Charge",
    "dry_end": "Dry End",
    "fc_start": "First Crack Start",
    "fc_end": "First Crack End",
    "sc_start": "Second Crack Start",
    "sc_end": "Second Crack End",
    "drop": "Drop",
    "cool": "Cool",
}

MILESTONE_EVENT_TYPE = 10
CONTROL_EVENT_TYPE = 1

# External device names -> standardized control names
CONTROL_MAPPING = {"burner": "heat", "air": "fan"}
FAN_CHANNEL = "fan_setting"
HEAT_CHANNEL = "heat_setting"


@dataclass
class TemperatureSample:
    """One reading of the roast thermometers."""

    roast_id: int
    time_seconds: float
    bean_temp: Optional[float] = None
    environmental_temp: Optional[float] = None
    ambient_temp: Optional[float] = None
    data_source: str = "live"
    data_quality: str = "good"

    @property
    def time_ms(self) -> float:
        return self.time_seconds * 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Event:
    """A milestone, control change or machine event on the roast clock."""

    roast_id: int
    time_seconds: float
    event_type: int
    event_value: Optional[str]
    event_string: str
    category: str
    subcategory: str = ""
    user_generated: bool = False
    automatic: bool = True
    data_source: str = "live"
    notes: Optional[str] = None

    @property
    def time_ms(self) -> float:
        return self.time_seconds * 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Milestone:
    name: str
    time_ms: float
    temperature: Optional[float] = None


@dataclass
class MilestoneSet:
    """Named roast milestones; unset slots are ``None``."""

    charge: Optional[Milestone] = None
    dry_end: Optional[Milestone] = None
    fc_start: Optional[Milestone] = None
    fc_end: Optional[Milestone] = None
    sc_start: Optional[Milestone] = None
    sc_end: Optional[Milestone] = None
    drop: Optional[Milestone] = None
    cool: Optional[Milestone] = None

    def get(self, name: str) -> Optional[Milestone]:
        name = MILESTONE_ALIASES.get(name, name)
        if name not in MILESTONE_NAMES:
            raise KeyError(f"Unknown milestone: {name}")
        return getattr(self, name)

    def time(self, name: str) -> Optional[float]:
        milestone = self.get(name)
        return milestone.time_ms if milestone is not None else None

    def set(self, name: str, time_ms: float, temperature: Optional[float] = None) -> None:
        name = MILESTONE_ALIASES.get(name, name)
        if name not in MILESTONE_NAMES:
            raise KeyError(f"Unknown milestone: {name}")
        setattr(self, name, Milestone(name, float(time_ms), temperature))

    def recorded(self) -> List[Milestone]:
        return [m for m in (getattr(self, n) for n in MILESTONE_NAMES) if m is not None]

    def __len__(self) -> int:
        return len(self.recorded())

    def as_dict(self) -> Dict[str, Dict[str, Optional[float]]]:
        return {
            m.name: {"time_ms": m.time_ms, "temperature": m.temperature}
            for m in self.recorded()
        }


@dataclass
class PhaseMetrics:
    """
    Roast phase breakdown.

    Percentages are of the start→end span; a phase whose boundaries are
    missing or out of order is 0. Relative times are measured from the start
    anchor and are ``None`` when the milestone was not recorded.
    """

    drying_percent: float = 0.0
    maillard_percent: float = 0.0
    development_percent: float = 0.0
    total_time_ms: float = 0.0
    start_time_ms: float = 0.0
    end_time_ms: Optional[float] = None
    tp_time_ms: Optional[float] = None
    fc_time_ms: Optional[float] = None
    relative_times_ms: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChartPoint:
    """A temperature sample with resolved control values and milestone flags."""

    time_ms: float
    fan: float = 0.0
    heat: float = 0.0
    bean_temp: Optional[float] = None
    environmental_temp: Optional[float] = None
    ambient_temp: Optional[float] = None
    data_source: Optional[str] = None
    charge: bool = False
    dry_end: bool = False
    fc_start: bool = False
    fc_end: bool = False
    sc_start: bool = False
    sc_end: bool = False
    drop: bool = False
    cool: bool = False

    @property
    def milestone_flags(self) -> Tuple[str, ...]:
        return tuple(n for n in MILESTONE_NAMES if getattr(self, n))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class MilestoneMarker:
    time_ms: float
    name: str
    label: str
    temperature: Optional[float] = None


@dataclass
class EventValueSeries:
    """All numeric values recorded for one control channel, in time order."""

    event_string: str
    display_name: str
    values: List[Tuple[float, float]]
    min_value: float
    max_value: float
    scale: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_string": self.event_string,
            "display_name": self.display_name,
            "values": [{"time_seconds": t, "value": v} for t, v in self.values],
            "min_value": self.min_value,
            "max_value": self.max_value,
            "scale": self.scale,
        }
