"""Error taxonomy for slide batches."""
from __future__ import annotations

from typing import Sequence, Tuple


class SlideBatchError(Exception):
    """Base class for batch-level errors."""


class IncompleteInput(SlideBatchError):
    """Fewer valid rows than requested; the batch never starts."""

    def __init__(self, invalid_rows: Sequence[int], requested: int) -> None:
        self.invalid_rows: Tuple[int, ...] = tuple(invalid_rows)
        self.requested = requested
        rows = ", ".join(str(index + 1) for index in self.invalid_rows) or "none"
        super().__init__(
            f"{len(self.invalid_rows)} of the first {requested} rows need a title and content "
            f"(rows: {rows})"
        )


class EngineUnavailable(SlideBatchError):
    """Engine setup failed before any job ran."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Encoding engine unavailable: {reason}")


class EncodeError(SlideBatchError):
    """A single job failed to encode."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
