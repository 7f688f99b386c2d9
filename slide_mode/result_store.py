"""Append-only, ordered collection of job outcomes for one batch."""
from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Iterator, List, Tuple

from logging_utils import get_logger

from .models import Failure, JobOutcome, Success

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .orchestrator import Batch

logger = get_logger(__name__)

Subscriber = Callable[[JobOutcome], None]


class ResultStore:
    """Outcomes of one batch in job order.

    Only the orchestrator appends; everyone else reads or subscribes. A new
    batch always gets a new store.
    """

    def __init__(self, expected: int) -> None:
        if expected < 1:
            raise ValueError("A result store needs at least one expected outcome")
        self.expected = expected
        self._outcomes: List[JobOutcome] = []
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def append(self, outcome: JobOutcome) -> None:
        with self._lock:
            if len(self._outcomes) >= self.expected:
                raise ValueError(f"Result store already holds all {self.expected} outcomes")
            if outcome.job_id != len(self._outcomes):
                raise ValueError(
                    f"Outcome for job {outcome.job_id} arrived out of order "
                    f"(expected job {len(self._outcomes)})"
                )
            self._outcomes.append(outcome)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(outcome)
            except Exception:
                logger.exception("Result subscriber failed for job %d", outcome.job_id)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` for every future outcome; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def count(self) -> int:
        with self._lock:
            return len(self._outcomes)

    def outcomes(self) -> Iterator[JobOutcome]:
        with self._lock:
            snapshot: Tuple[JobOutcome, ...] = tuple(self._outcomes)
        return iter(snapshot)

    def successes(self) -> List[Success]:
        return [outcome for outcome in self.outcomes() if isinstance(outcome, Success)]

    def failures(self) -> List[Failure]:
        return [outcome for outcome in self.outcomes() if isinstance(outcome, Failure)]

    def is_complete(self, batch: "Batch") -> bool:
        return self.count() == len(batch.job_specs)

    def __len__(self) -> int:
        return self.count()
