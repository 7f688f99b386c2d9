"""Sequential batch driver with per-job failure isolation."""
from __future__ import annotations

import itertools
import threading
import time
from typing import Callable, Iterable, Iterator, Optional, Sequence, Tuple

from logging_utils import get_logger, job_logger

from .engine import EncodingEngine
from .errors import EncodeError, EngineUnavailable
from .models import Failure, JobOutcome, JobSpec, Success, Theme
from .result_store import ResultStore

logger = get_logger(__name__)

_batch_numbers = itertools.count(1)


class Batch:
    """One submission: its jobs, its result store and a lazy outcome stream.

    Iterating the batch encodes the next job on demand. A batch is consumed
    once; iterating again only continues where the previous loop stopped.
    """

    def __init__(
        self,
        *,
        batch_id: str,
        job_specs: Tuple[JobSpec, ...],
        theme: Theme,
        execute: Callable[[JobSpec, int], JobOutcome],
    ) -> None:
        self.batch_id = batch_id
        self.job_specs = job_specs
        self.theme = theme
        self.store = ResultStore(expected=len(job_specs))
        self._execute = execute
        self._cancelled = threading.Event()
        self._stream = self._drive()

    def __iter__(self) -> Iterator[JobOutcome]:
        return self._stream

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if not self._cancelled.is_set() and not self.is_complete():
            logger.info(
                "Batch %s cancelled after %d/%d outcome(s)",
                self.batch_id,
                self.store.count(),
                len(self.job_specs),
            )
        self._cancelled.set()

    def is_complete(self) -> bool:
        return self.store.is_complete(self)

    def wait(self) -> ResultStore:
        """Drive the remaining jobs and return the store."""
        for _ in self._stream:
            pass
        return self.store

    def _drive(self) -> Iterator[JobOutcome]:
        total = len(self.job_specs)
        for job in self.job_specs:
            if self._cancelled.is_set():
                logger.info(
                    "Batch %s superseded; %d job(s) not submitted",
                    self.batch_id,
                    total - job.job_id,
                )
                return
            outcome = self._execute(job, total)
            if self._cancelled.is_set():
                logger.info("Batch %s superseded; dropping outcome of job %d", self.batch_id, job.display_number)
                return
            self.store.append(outcome)
            yield outcome
        succeeded = len(self.store.successes())
        logger.info("Batch %s finished: %d succeeded, %d failed", self.batch_id, succeeded, total - succeeded)


class BatchOrchestrator:
    """Run batches of slide jobs through a single shared engine.

    The engine, not the orchestrator, records the batch that owns it, so
    orchestrators wrapping the same engine supersede each other.
    """

    def __init__(self, engine: EncodingEngine) -> None:
        self.engine = engine

    @property
    def active_batch(self) -> Optional[Batch]:
        return self.engine.active_batch

    def run(self, job_specs: Iterable[JobSpec], theme: Optional[Theme] = None) -> Batch:
        """Start a new batch, superseding any batch that is still running on the engine.

        Engine setup runs before the batch is created; a setup failure raises
        :class:`EngineUnavailable` and no outcome is recorded.
        """
        specs = tuple(job_specs)
        theme = self._validate(specs, theme)

        self._supersede(self.engine.claim(None))
        batch_id = f"batch_{next(_batch_numbers):03d}"

        try:
            with self.engine.lock:
                self.engine.ensure_ready()
        except EngineUnavailable:
            raise
        except Exception as exc:
            logger.exception("Engine setup failed for %s", batch_id)
            raise EngineUnavailable(f"{type(exc).__name__}: {exc}") from exc

        batch = Batch(batch_id=batch_id, job_specs=specs, theme=theme, execute=self._execute)
        self._supersede(self.engine.claim(batch))
        logger.info("Started %s with %d job(s) on %s engine", batch_id, len(specs), self.engine.name or "custom")
        return batch

    def close(self) -> None:
        self._supersede(self.engine.claim(None))
        with self.engine.lock:
            self.engine.close()

    def __enter__(self) -> "BatchOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _supersede(previous: Optional[Batch]) -> None:
        if previous is not None:
            previous.cancel()

    @staticmethod
    def _validate(specs: Sequence[JobSpec], theme: Optional[Theme]) -> Theme:
        if not specs:
            raise ValueError("A batch needs at least one job")
        for position, spec in enumerate(specs):
            if spec.job_id != position:
                raise ValueError(f"Job ids must be 0..{len(specs) - 1} in order; got {spec.job_id} at {position}")

        if theme is None:
            theme = Theme(aspect_ratio=specs[0].aspect_ratio, background=specs[0].background)
        for spec in specs:
            if spec.aspect_ratio is not theme.aspect_ratio or spec.background != theme.background:
                raise ValueError(f"Job {spec.display_number} does not share the batch theme")
        return theme

    def _execute(self, job: JobSpec, total: int) -> JobOutcome:
        log = job_logger(logger, job, total)
        log.info("Generating video: %s", job.title)
        started = time.monotonic()
        try:
            with self.engine.lock:
                artifact = self.engine.encode(job)
        except EncodeError as exc:
            log.error("Encoding failed: %s", exc.reason)
            return Failure(job_id=job.job_id, title=job.title, reason=exc.reason)
        except Exception as exc:
            log.exception("Engine raised an unexpected error")
            return Failure(job_id=job.job_id, title=job.title, reason=f"{type(exc).__name__}: {exc}")

        if not artifact:
            log.error("Engine returned an empty artifact")
            return Failure(job_id=job.job_id, title=job.title, reason="engine returned no data")

        log.info("Encoded %d bytes in %.2fs", len(artifact), time.monotonic() - started)
        return Success(job_id=job.job_id, title=job.title, artifact=bytes(artifact))
