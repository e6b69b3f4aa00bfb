"""
Analysis settings.

All tunables are explicit dataclass fields with their defaults documented
here; callers pass an ``AnalysisSettings`` instance down to every operation.
A YAML file can override any subset of the fields.
"""

import os
from dataclasses import asdict, dataclass, fields, replace as dc_replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


@dataclass(frozen=True)
class AnalysisSettings:
    """
    Tunables for smoothing, rate-of-rise, down-sampling and storage.

    Attributes:
        temp_window: Pre-smoothing window (points) for temperatures before RoR
        ror_window: Post-smoothing window (points) for RoR values
        max_ror: Largest admissible RoR magnitude, degrees per minute
        ror_lookback: Points between the two ends of a point-estimate RoR
        downsample_target: Target sample count for imported curves
        significant_change: Temperature jump (canonical unit) that is always kept
        milestone_tolerance: Seconds either side of a sample that flag a milestone
        canonical_unit: Unit all stored temperatures are converted to ('F' or 'C')
        temperature_precision: Decimal places kept after unit conversion
        store_batch_size: Rows per insert call when writing an import
    """

    temp_window: int = 15
    ror_window: int = 10
    max_ror: float = 50.0
    ror_lookback: int = 5
    downsample_target: int = 400
    significant_change: float = 5.0
    milestone_tolerance: float = 1.0
    canonical_unit: str = "F"
    temperature_precision: int = 2
    store_batch_size: int = 100

    def __post_init__(self) -> None:
        for name in ("temp_window", "ror_window", "ror_lookback",
                     "downsample_target", "store_batch_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.max_ror <= 0:
            raise ValueError(f"max_ror must be positive, got {self.max_ror!r}")
        if self.significant_change < 0 or self.milestone_tolerance < 0:
            raise ValueError("significant_change and milestone_tolerance must be non-negative")
        if self.canonical_unit not in ("F", "C"):
            raise ValueError(f"canonical_unit must be 'F' or 'C', got {self.canonical_unit!r}")
        if self.temperature_precision < 0:
            raise ValueError("temperature_precision must be non-negative")

    def replace(self, **changes: Any) -> "AnalysisSettings":
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_settings(path: Union[str, os.PathLike, None] = None) -> AnalysisSettings:
    """
    Load analysis settings, overriding defaults from a YAML file.

    Args:
        path: Optional path to a YAML mapping of field names to values

    Returns:
        Settings instance (defaults when no path is given)

    Raises:
        FileNotFoundError: If the settings file doesn't exist
        ValueError: If the file is not a mapping or names unknown settings
    """
    if path is None:
        return AnalysisSettings()

    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Settings file not found: {cfg_path}")

    with open(cfg_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    return settings_from_mapping(raw or {})


def settings_from_mapping(raw: Optional[Dict[str, Any]]) -> AnalysisSettings:
    if not isinstance(raw, dict):
        raise ValueError("Settings must be a mapping of names to values")

    known = {f.name for f in fields(AnalysisSettings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(unknown)}")

    return AnalysisSettings(**raw)


DEFAULT_SETTINGS = AnalysisSettings()

__all__ = ["AnalysisSettings", "DEFAULT_SETTINGS", "load_settings", "settings_from_mapping"]
