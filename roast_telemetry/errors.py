"""
Error and warning types raised by the import pipeline and store adapters.
"""

from typing import Iterable, List


class AlogFormatError(ValueError):
    """The document could not be turned into a structure, even after recovery."""

    def __init__(self, message: str, offset: int = -1, context: str = ""):
        self.offset = offset
        self.context = context
        self.reason = message
        detail = message
        if offset >= 0:
            detail = f"{message} (offset {offset})"
        if context:
            detail = f"{detail}\nContext: ...{context}..."
        super().__init__(detail)


class StructuralValidationError(ValueError):
    """Required data is missing, empty or non-numeric."""

    def __init__(self, reasons: Iterable[str]):
        self.reasons: List[str] = list(dict.fromkeys(reasons))
        super().__init__("; ".join(self.reasons) or "invalid roast document")


class ConsistencyWarning(UserWarning):
    """A non-fatal inconsistency was repaired (truncated, skipped, reordered)."""


class StoreError(RuntimeError):
    """A telemetry store adapter failed to read or write."""
