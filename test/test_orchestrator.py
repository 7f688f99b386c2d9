from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from slide_mode.engine import EncodingEngine  # noqa: E402
from slide_mode.errors import EncodeError, EngineUnavailable  # noqa: E402
from slide_mode.job_builder import build_job_specs  # noqa: E402
from slide_mode.models import (  # noqa: E402
    AspectRatio,
    ColorSpec,
    ContentRow,
    Failure,
    JobSpec,
    Success,
    Theme,
)
from slide_mode.orchestrator import BatchOrchestrator  # noqa: E402


class FakeEngine(EncodingEngine):
    name = "fake"

    def __init__(
        self,
        *,
        fail_on: Optional[Dict[int, str]] = None,
        delays: Optional[Dict[int, float]] = None,
        setup_error: Optional[Exception] = None,
        on_encode: Optional[Callable[[JobSpec], None]] = None,
    ) -> None:
        super().__init__()
        self.fail_on = fail_on or {}
        self.delays = delays or {}
        self.setup_error = setup_error
        self.on_encode = on_encode
        self.setup_calls = 0
        self.encoded: List[JobSpec] = []

    def _setup(self) -> None:
        self.setup_calls += 1
        if self.setup_error is not None:
            raise self.setup_error

    def encode(self, job: JobSpec) -> bytes:
        self.encoded.append(job)
        if self.on_encode is not None:
            self.on_encode(job)
        delay = self.delays.get(job.job_id)
        if delay:
            time.sleep(delay)
        if job.job_id in self.fail_on:
            raise EncodeError(self.fail_on[job.job_id])
        return f"video:{job.title}".encode("utf-8")


def _theme() -> Theme:
    return Theme(aspect_ratio=AspectRatio.LANDSCAPE, background=ColorSpec("#ffffff"))


def _jobs(count: int, theme: Optional[Theme] = None):
    rows = [ContentRow(f"Slide {i + 1}", f"Body {i + 1}", 30) for i in range(count)]
    return build_job_specs(rows, count, theme or _theme())


def test_two_rows_all_succeed_in_order() -> None:
    theme = _theme()
    rows = [ContentRow("Intro", "Welcome", 30), ContentRow("Body", "Main point", 60)]
    jobs = build_job_specs(rows, 2, theme)

    batch = BatchOrchestrator(FakeEngine()).run(jobs, theme)
    outcomes = list(batch)

    assert [type(o) for o in outcomes] == [Success, Success]
    assert [o.title for o in outcomes] == ["Intro", "Body"]
    assert [o.job_id for o in outcomes] == [0, 1]
    assert outcomes[0].artifact == b"video:Intro"
    assert batch.is_complete()
    assert batch.store.is_complete(batch)


def test_second_job_failure_is_recorded_as_data() -> None:
    theme = _theme()
    rows = [ContentRow("Intro", "Welcome", 30), ContentRow("Body", "Main point", 60)]
    jobs = build_job_specs(rows, 2, theme)

    batch = BatchOrchestrator(FakeEngine(fail_on={1: "unsupported-codec"})).run(jobs, theme)
    outcomes = list(batch)

    assert outcomes[0] == Success(job_id=0, title="Intro", artifact=b"video:Intro")
    assert outcomes[1] == Failure(job_id=1, title="Body", reason="unsupported-codec")
    assert batch.is_complete()


def test_failure_in_middle_does_not_stop_later_jobs() -> None:
    jobs = _jobs(5)
    engine = FakeEngine(fail_on={2: "boom"})

    batch = BatchOrchestrator(engine).run(jobs)
    store = batch.wait()

    outcomes = list(store.outcomes())
    assert len(outcomes) == 5
    assert isinstance(outcomes[2], Failure)
    assert all(isinstance(outcomes[i], Success) for i in (0, 1, 3, 4))
    assert [job.title for job in engine.encoded[3:]] == ["Slide 4", "Slide 5"]
    assert engine.encoded[3] is jobs[3]
    assert engine.encoded[4] is jobs[4]


def test_unexpected_engine_exception_becomes_failure() -> None:
    class Exploding(FakeEngine):
        def encode(self, job: JobSpec) -> bytes:
            if job.job_id == 0:
                raise RuntimeError("disk full")
            return super().encode(job)

    batch = BatchOrchestrator(Exploding()).run(_jobs(2))
    outcomes = list(batch)

    assert outcomes[0] == Failure(job_id=0, title="Slide 1", reason="RuntimeError: disk full")
    assert isinstance(outcomes[1], Success)


def test_empty_artifact_is_a_failure() -> None:
    class Empty(FakeEngine):
        def encode(self, job: JobSpec) -> bytes:
            return b""

    outcomes = list(BatchOrchestrator(Empty()).run(_jobs(1)))

    assert isinstance(outcomes[0], Failure)
    assert outcomes[0].reason == "engine returned no data"


def test_outcome_order_is_stable_with_variable_latency() -> None:
    jobs = _jobs(4)
    engine = FakeEngine(delays={0: 0.03, 1: 0.0, 2: 0.02, 3: 0.001})

    outcomes = list(BatchOrchestrator(engine).run(jobs))

    assert [o.job_id for o in outcomes] == [0, 1, 2, 3]
    assert [o.title for o in outcomes] == [job.title for job in jobs]


def test_outcomes_are_produced_lazily_and_incrementally() -> None:
    jobs = _jobs(3)
    engine = FakeEngine()
    batch = BatchOrchestrator(engine).run(jobs)

    assert engine.encoded == []
    assert batch.store.count() == 0

    stream = iter(batch)
    first = next(stream)
    assert first.job_id == 0
    assert batch.store.count() == 1
    assert len(engine.encoded) == 1
    assert not batch.is_complete()

    list(stream)
    assert batch.store.count() == 3


def test_batch_is_not_restartable() -> None:
    batch = BatchOrchestrator(FakeEngine()).run(_jobs(2))

    assert len(list(batch)) == 2
    assert list(batch) == []
    assert batch.store.count() == 2


def test_engine_setup_failure_aborts_before_any_job() -> None:
    engine = FakeEngine(setup_error=OSError("no gpu"))
    orchestrator = BatchOrchestrator(engine)

    with pytest.raises(EngineUnavailable) as excinfo:
        orchestrator.run(_jobs(3))

    assert "no gpu" in excinfo.value.reason
    assert engine.encoded == []
    assert orchestrator.active_batch is None


def test_ensure_ready_runs_setup_once_across_batches() -> None:
    engine = FakeEngine()
    orchestrator = BatchOrchestrator(engine)

    orchestrator.run(_jobs(1)).wait()
    orchestrator.run(_jobs(2)).wait()

    assert engine.setup_calls == 1


def test_new_batch_cancels_previous_between_jobs() -> None:
    engine = FakeEngine()
    orchestrator = BatchOrchestrator(engine)
    first = orchestrator.run(_jobs(4))

    stream = iter(first)
    next(stream)

    second = orchestrator.run(_jobs(2))

    assert first.cancelled
    assert list(stream) == []
    assert first.store.count() == 1
    assert not first.is_complete()

    assert [o.job_id for o in second] == [0, 1]
    assert second.store.count() == 2
    assert len(engine.encoded) == 3


def test_orchestrators_sharing_an_engine_supersede_each_other() -> None:
    engine = FakeEngine()
    first = BatchOrchestrator(engine).run(_jobs(4))
    stream = iter(first)
    next(stream)

    other = BatchOrchestrator(engine)
    second = other.run(_jobs(2))

    assert first.cancelled
    assert list(stream) == []
    assert BatchOrchestrator(engine).active_batch is second
    assert [o.job_id for o in second] == [0, 1]
    assert len(engine.encoded) == 3


def test_encodes_hold_the_shared_engine_lock() -> None:
    engine = FakeEngine()
    free_during_encode: List[bool] = []

    def _try_lock(job: JobSpec) -> None:
        result: List[bool] = []
        worker = threading.Thread(target=lambda: result.append(engine.lock.acquire(blocking=False)))
        worker.start()
        worker.join(timeout=5)
        free_during_encode.append(result[0])

    engine.on_encode = _try_lock
    BatchOrchestrator(engine).run(_jobs(2)).wait()

    assert free_during_encode == [False, False]


def test_outcome_finished_after_supersede_is_dropped() -> None:
    orchestrator: BatchOrchestrator
    started: List[object] = []

    def _supersede(job: JobSpec) -> None:
        if job.job_id == 1 and not started:
            started.append(orchestrator.run(_jobs(1)))

    engine = FakeEngine(on_encode=_supersede)
    orchestrator = BatchOrchestrator(engine)
    first = orchestrator.run(_jobs(3))

    outcomes = list(first)

    assert [o.job_id for o in outcomes] == [0]
    assert first.store.count() == 1
    assert first.cancelled
    replacement = started[0]
    assert list(replacement) and replacement.is_complete()


def test_cancellation_from_another_thread() -> None:
    release = threading.Event()

    def _block(job: JobSpec) -> None:
        if job.job_id == 1:
            release.wait(timeout=5)

    engine = FakeEngine(on_encode=_block)
    orchestrator = BatchOrchestrator(engine)
    first = orchestrator.run(_jobs(3))

    worker = threading.Thread(target=first.wait)
    worker.start()
    while len(engine.encoded) < 2:
        time.sleep(0.005)

    first.cancel()
    release.set()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert first.store.count() == 1
    assert [job.job_id for job in engine.encoded] == [0, 1]


def test_subscribers_see_each_outcome_once_in_order() -> None:
    batch = BatchOrchestrator(FakeEngine(fail_on={1: "bad"})).run(_jobs(3))
    seen: List[int] = []
    batch.store.subscribe(lambda outcome: seen.append(outcome.job_id))

    batch.wait()

    assert seen == [0, 1, 2]


def test_run_rejects_mixed_themes() -> None:
    first = _jobs(1, Theme(AspectRatio.LANDSCAPE, ColorSpec("#ffffff")))
    second = _jobs(2, Theme(AspectRatio.PORTRAIT, ColorSpec("#ffffff")))

    with pytest.raises(ValueError):
        BatchOrchestrator(FakeEngine()).run((first[0], second[1]))


def test_run_rejects_empty_job_list() -> None:
    with pytest.raises(ValueError):
        BatchOrchestrator(FakeEngine()).run([])


def test_close_cancels_active_batch_and_closes_engine() -> None:
    engine = FakeEngine()
    with BatchOrchestrator(engine) as orchestrator:
        batch = orchestrator.run(_jobs(2))
        engine.ensure_ready()

    assert batch.cancelled
    assert list(batch) == []
    assert not engine.ready
