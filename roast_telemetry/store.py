"""
Telemetry Store Adapter

Persistence is an external collaborator: the service talks to a
``TelemetryStore`` and never to a database directly. The in-memory adapter
here is the reference implementation used by the command line and tests.
"""

import abc
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set

from .errors import StoreError
from .models import Event, TemperatureSample

logger = logging.getLogger(__name__)


@dataclass
class ImportLogEntry:
    """Audit record of one import attempt."""

    roast_id: int
    filename: Optional[str]
    success: bool
    data_source: str = "imported"
    sample_count: int = 0
    event_count: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TelemetryStore(abc.ABC):
    """Four collections: temperature samples, events, summaries, import log."""

    @abc.abstractmethod
    async def insert_temperatures(self, rows: Sequence[TemperatureSample]) -> None:
        ...

    @abc.abstractmethod
    async def insert_events(self, rows: Sequence[Event]) -> None:
        ...

    @abc.abstractmethod
    async def delete_temperatures(self, roast_id: int, data_source: str) -> int:
        """Delete a roast's samples with the given provenance; returns the count."""

    @abc.abstractmethod
    async def delete_events(self, roast_id: int, data_source: str) -> int:
        """Delete a roast's events with the given provenance; returns the count."""

    @abc.abstractmethod
    async def fetch_temperatures(self, roast_id: int) -> List[TemperatureSample]:
        """Samples for a roast in ascending time order."""

    @abc.abstractmethod
    async def fetch_events(
        self, roast_id: int, categories: Optional[Iterable[str]] = None
    ) -> List[Event]:
        """Events for a roast in ascending time order, optionally by category."""

    @abc.abstractmethod
    async def upsert_summary(self, roast_id: int, summary: Dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def fetch_summary(self, roast_id: int) -> Optional[Dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def append_import_log(self, entry: ImportLogEntry) -> None:
        ...

    @abc.abstractmethod
    async def fetch_import_log(self, roast_id: Optional[int] = None) -> List[ImportLogEntry]:
        ...

    @abc.abstractmethod
    async def clear_roast(self, roast_id: int) -> Dict[str, int]:
        """Remove every sample, event and summary for a roast (all provenances)."""


async def insert_in_batches(
    insert: Callable[[Sequence[Any]], Awaitable[None]],
    rows: Sequence[Any],
    batch_size: int,
) -> int:
    """
    Write ``rows`` through ``insert`` in sequential fixed-size batches.

    Batches are not atomic as a group; a failure part-way leaves the earlier
    batches written and propagates.

    Returns:
        Number of batches issued
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    batches = 0
    for start in range(0, len(rows), batch_size):
        await insert(rows[start:start + batch_size])
        batches += 1
    return batches


def _copy_log_entry(entry: ImportLogEntry) -> ImportLogEntry:
    return replace(entry, warnings=list(entry.warnings), errors=list(entry.errors))


class InMemoryTelemetryStore(TelemetryStore):
    """
    List-backed store.

    Reads return copies, so callers cannot mutate stored rows. Operation
    names added to ``fail_on`` raise StoreError, for exercising failure paths.
    """

    def __init__(self) -> None:
        self._temperatures: List[TemperatureSample] = []
        self._events: List[Event] = []
        self._summaries: Dict[int, Dict[str, Any]] = {}
        self._import_log: List[ImportLogEntry] = []
        self.fail_on: Set[str] = set()
        self.insert_batches = 0

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StoreError(f"{operation} failed")

    async def insert_temperatures(self, rows: Sequence[TemperatureSample]) -> None:
        self._check("insert_temperatures")
        self._temperatures.extend(replace(r) for r in rows)
        self.insert_batches += 1

    async def insert_events(self, rows: Sequence[Event]) -> None:
        self._check("insert_events")
        self._events.extend(replace(r) for r in rows)
        self.insert_batches += 1

    async def delete_temperatures(self, roast_id: int, data_source: str) -> int:
        self._check("delete_temperatures")
        before = len(self._temperatures)
        self._temperatures = [
            r for r in self._temperatures
            if not (r.roast_id == roast_id and r.data_source == data_source)
        ]
        return before - len(self._temperatures)

    async def delete_events(self, roast_id: int, data_source: str) -> int:
        self._check("delete_events")
        before = len(self._events)
        self._events = [
            e for e in self._events
            if not (e.roast_id == roast_id and e.data_source == data_source)
        ]
        return before - len(self._events)

    async def fetch_temperatures(self, roast_id: int) -> List[TemperatureSample]:
        self._check("fetch_temperatures")
        rows = [replace(r) for r in self._temperatures if r.roast_id == roast_id]
        return sorted(rows, key=lambda r: r.time_seconds)

    async def fetch_events(
        self, roast_id: int, categories: Optional[Iterable[str]] = None
    ) -> List[Event]:
        self._check("fetch_events")
        wanted = set(categories) if categories is not None else None
        rows = [
            replace(e) for e in self._events
            if e.roast_id == roast_id and (wanted is None or e.category in wanted)
        ]
        return sorted(rows, key=lambda e: e.time_seconds)

    async def upsert_summary(self, roast_id: int, summary: Dict[str, Any]) -> None:
        self._check("upsert_summary")
        self._summaries[roast_id] = dict(summary)

    async def fetch_summary(self, roast_id: int) -> Optional[Dict[str, Any]]:
        self._check("fetch_summary")
        summary = self._summaries.get(roast_id)
        return dict(summary) if summary is not None else None

    async def append_import_log(self, entry: ImportLogEntry) -> None:
        self._check("append_import_log")
        self._import_log.append(_copy_log_entry(entry))

    async def fetch_import_log(self, roast_id: Optional[int] = None) -> List[ImportLogEntry]:
        self._check("fetch_import_log")
        return [
            _copy_log_entry(e) for e in self._import_log
            if roast_id is None or e.roast_id == roast_id
        ]

    async def clear_roast(self, roast_id: int) -> Dict[str, int]:
        self._check("clear_roast")
        temps_before, events_before = len(self._temperatures), len(self._events)
        self._temperatures = [r for r in self._temperatures if r.roast_id != roast_id]
        self._events = [e for e in self._events if e.roast_id != roast_id]
        summary_removed = self._summaries.pop(roast_id, None) is not None
        counts = {
            "temperatures": temps_before - len(self._temperatures),
            "events": events_before - len(self._events),
            "summaries": int(summary_removed),
        }
        logger.debug("Cleared roast %s: %s", roast_id, counts)
        return counts


__all__ = [
    "ImportLogEntry",
    "InMemoryTelemetryStore",
    "TelemetryStore",
    "insert_in_batches",
]
