"""
Roast Telemetry Service

Coordinates the import pipeline (parse -> validate -> transform -> store),
live capture writes, and the read path that feeds charts and analytics.
All store access is awaited; everything else is synchronous computation.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .alog_parser import parse_alog
from .analytics import (
    build_roast_summary,
    calculate_phase_metrics,
    calculate_ror,
    canonical_milestone_name,
    extract_milestones,
)
from .chart_data import RoastChartData, assemble_chart_points, chart_metadata, milestone_markers
from .config import DEFAULT_SETTINGS, AnalysisSettings
from .errors import AlogFormatError, StructuralValidationError
from .event_series import build_event_value_series
from .models import (
    CONTROL_EVENT_TYPE,
    FAN_CHANNEL,
    HEAT_CHANNEL,
    MILESTONE_EVENT_TYPE,
    Event,
    EventValueSeries,
    TemperatureSample,
)
from .store import ImportLogEntry, TelemetryStore, insert_in_batches
from .transformer import format_control_value, transform_roast_document
from .validator import validate_roast_document

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Success or failure payload of one import call."""

    success: bool
    roast_id: int
    filename: Optional[str] = None
    sample_count: int = 0
    event_count: int = 0
    milestone_count: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    offset: Optional[int] = None
    context: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class RoastTelemetryService:
    """
    Import and read roast telemetry through a TelemetryStore.

    Args:
        store: Storage adapter
        settings: Analysis settings used by every operation
    """

    def __init__(self, store: TelemetryStore, settings: AnalysisSettings = DEFAULT_SETTINGS):
        self.store = store
        self.settings = settings

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    async def import_document(
        self,
        roast_id: int,
        text: str,
        filename: Optional[str] = None,
        data_source: str = "imported",
    ) -> ImportResult:
        """
        Import one roast log document, replacing earlier rows of the same provenance.

        Parse and validation failures come back as a failed ImportResult;
        StoreError from the adapter propagates.
        """
        try:
            parsed = parse_alog(text)
        except AlogFormatError as e:
            logger.warning("Could not parse %s: %s", filename or f"roast {roast_id}", e.reason)
            result = ImportResult(
                False, roast_id, filename, errors=[e.reason], offset=e.offset, context=e.context
            )
            await self._log_import(result, data_source)
            return result

        report = validate_roast_document(parsed.data)
        collected = list(parsed.warnings) + report.warnings
        if not report.valid:
            result = ImportResult(
                False, roast_id, filename, warnings=_distinct(collected), errors=report.errors
            )
            await self._log_import(result, data_source)
            return result

        try:
            transformed = transform_roast_document(parsed.data, roast_id, self.settings, data_source)
        except StructuralValidationError as e:
            result = ImportResult(
                False, roast_id, filename, warnings=_distinct(collected), errors=e.reasons
            )
            await self._log_import(result, data_source)
            return result

        collected.extend(transformed.warnings)

        removed_samples = await self.store.delete_temperatures(roast_id, data_source)
        removed_events = await self.store.delete_events(roast_id, data_source)
        if removed_samples or removed_events:
            logger.info(
                "Replaced %d sample(s) and %d event(s) for roast %s (%s)",
                removed_samples, removed_events, roast_id, data_source,
            )

        batch = self.settings.store_batch_size
        await insert_in_batches(self.store.insert_temperatures, transformed.samples, batch)
        await insert_in_batches(self.store.insert_events, transformed.events, batch)
        await self.store.upsert_summary(
            roast_id, build_roast_summary(transformed.milestones, transformed.phases)
        )

        result = ImportResult(
            True,
            roast_id,
            filename,
            sample_count=len(transformed.samples),
            event_count=len(transformed.events),
            milestone_count=len(transformed.milestones),
            warnings=_distinct(collected),
            metadata=transformed.metadata,
        )
        await self._log_import(result, data_source)
        return result

    async def import_file(
        self, roast_id: int, path: Union[str, Path], data_source: str = "imported"
    ) -> ImportResult:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"ALOG file not found: {path}")
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
        return await self.import_document(roast_id, text, filename=path.name, data_source=data_source)

    async def _log_import(self, result: ImportResult, data_source: str) -> None:
        await self.store.append_import_log(ImportLogEntry(
            roast_id=result.roast_id,
            filename=result.filename,
            success=result.success,
            data_source=data_source,
            sample_count=result.sample_count,
            event_count=result.event_count,
            warnings=list(result.warnings),
            errors=list(result.errors),
        ))

    # -------------------------------------------------------------------------
    # Live capture
    # -------------------------------------------------------------------------

    async def record_samples(self, samples: Sequence[TemperatureSample]) -> int:
        """Append already-normalized samples."""
        await insert_in_batches(self.store.insert_temperatures, list(samples),
                                self.settings.store_batch_size)
        return len(samples)

    async def record_events(self, events: Sequence[Event]) -> int:
        await insert_in_batches(self.store.insert_events, list(events),
                                self.settings.store_batch_size)
        return len(events)

    async def log_milestone(
        self,
        roast_id: int,
        name: str,
        time_ms: float,
        fan: float,
        heat: float,
    ) -> List[Event]:
        """
        Record a milestone with a snapshot of the fan and heat settings.

        Heat is recorded as 0 at drop. The summary cache is refreshed afterwards.

        Raises:
            ValueError: If ``name`` is not a known milestone
        """
        milestone = canonical_milestone_name(name)
        if milestone is None:
            raise ValueError(f"Unknown milestone: {name}")

        time_seconds = time_ms / 1000.0
        if milestone == "drop":
            heat = 0
        events = [
            Event(
                roast_id=roast_id,
                time_seconds=time_seconds,
                event_type=MILESTONE_EVENT_TYPE,
                event_value=None,
                event_string=milestone,
                category="milestone",
                subcategory="roast_phase",
                user_generated=True,
                automatic=False,
            ),
        ]
        for channel, value in ((FAN_CHANNEL, fan), (HEAT_CHANNEL, heat)):
            events.append(Event(
                roast_id=roast_id,
                time_seconds=time_seconds,
                event_type=CONTROL_EVENT_TYPE,
                event_value=format_control_value(value),
                event_string=channel,
                category="control",
                subcategory="machine_setting",
                user_generated=True,
                automatic=False,
            ))

        await self.record_events(events)
        await self.recalculate_summary(roast_id)
        return events

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_chart_data(self, roast_id: int, as_of: Optional[float] = None) -> RoastChartData:
        """
        Everything needed to draw one roast.

        Args:
            roast_id: Roast to read
            as_of: Elapsed time (ms) used as the phase end for a roast in progress
        """
        samples, milestone_events, control_events = await asyncio.gather(
            self.store.fetch_temperatures(roast_id),
            self.store.fetch_events(roast_id, ["milestone"]),
            self.store.fetch_events(roast_id, ["control"]),
        )

        events = sorted(milestone_events + control_events, key=lambda e: e.time_seconds)
        milestones = extract_milestones(milestone_events, samples)
        phases = calculate_phase_metrics(
            milestones,
            as_of_ms=as_of,
            first_sample_time_ms=samples[0].time_ms if samples else None,
        )
        ror = calculate_ror(
            [s.time_ms for s in samples],
            [s.bean_temp for s in samples],
            milestones.time("charge"),
            milestones.time("drop"),
            self.settings,
        )
        return RoastChartData(
            roast_id=roast_id,
            points=assemble_chart_points(samples, events, self.settings),
            markers=milestone_markers(milestones),
            milestones=milestones,
            phases=phases,
            ror=ror,
            event_series=build_event_value_series(control_events),
            metadata=chart_metadata(samples),
        )

    async def get_event_value_series(self, roast_id: int) -> List[EventValueSeries]:
        events = await self.store.fetch_events(roast_id, ["control"])
        return build_event_value_series(events)

    async def recalculate_summary(self, roast_id: int) -> Dict[str, Any]:
        """Recompute and store the per-roast summary cache from stored records."""
        samples, milestone_events = await asyncio.gather(
            self.store.fetch_temperatures(roast_id),
            self.store.fetch_events(roast_id, ["milestone"]),
        )
        milestones = extract_milestones(milestone_events, samples)
        phases = calculate_phase_metrics(
            milestones, first_sample_time_ms=samples[0].time_ms if samples else None
        )
        summary = build_roast_summary(milestones, phases)
        await self.store.upsert_summary(roast_id, summary)
        return summary

    async def clear_roast(self, roast_id: int) -> Dict[str, int]:
        counts = await self.store.clear_roast(roast_id)
        logger.info("Cleared roast %s", roast_id)
        return counts


def _distinct(messages: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(messages))


__all__ = ["ImportResult", "RoastTelemetryService"]
