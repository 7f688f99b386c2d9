from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from config_loader import AppConfig
from logging_utils import get_logger
from renderer_factory import make_engine

from .engine import EncodingEngine
from .job_builder import build_job_specs
from .models import ColorSpec, JobOutcome, JobSpec, Success, Theme
from .orchestrator import Batch, BatchOrchestrator
from .row_loader import SlideDocument

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_WHITESPACE = re.compile(r"\s+")
MAX_STEM_LENGTH = 80


def safe_filename(
    title: str,
    *,
    prefix: str = "",
    extension: str = ".mp4",
    taken: Optional[Set[str]] = None,
) -> str:
    """Turn a slide title into a filesystem-safe, unique file name."""
    stem = unicodedata.normalize("NFKC", title)
    stem = _UNSAFE_CHARS.sub("_", stem)
    stem = _WHITESPACE.sub(" ", stem).strip(" .")
    stem = prefix + (stem[:MAX_STEM_LENGTH].rstrip(" .") or "slide")

    candidate = f"{stem}{extension}"
    if taken is not None:
        suffix = 2
        while candidate.lower() in taken:
            candidate = f"{stem} ({suffix}){extension}"
            suffix += 1
        taken.add(candidate.lower())
    return candidate


@dataclass
class ExportedArtifact:
    job_id: int
    title: str
    path: Path


@dataclass
class SlideBatchResult:
    run_id: str
    output_dir: Path
    plan_path: Path
    batch: Batch
    exported: List[ExportedArtifact] = field(default_factory=list)
    export_errors: Dict[int, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.batch.store.successes())

    @property
    def failed(self) -> int:
        return len(self.batch.store.failures())

    @property
    def all_succeeded(self) -> bool:
        return self.batch.is_complete() and self.failed == 0 and not self.export_errors


class SlidePipeline:
    """Build jobs from a slide document, run them as one batch and export the videos."""

    def __init__(
        self,
        config: AppConfig,
        *,
        engine: Optional[EncodingEngine] = None,
        engine_name: Optional[str] = None,
    ) -> None:
        self.config = config
        self.engine = engine or make_engine(config.raw, name=engine_name, temp_root=config.temp_dir)
        self.orchestrator = BatchOrchestrator(self.engine)

    def build_jobs(
        self,
        document: SlideDocument,
        *,
        count: Optional[int] = None,
        policy: Optional[str] = None,
    ) -> Tuple[JobSpec, ...]:
        if count is not None:
            requested = count
        elif document.count is not None:
            requested = document.count
        else:
            requested = min(self.config.default_count, document.filled_rows() or 1)
        return build_job_specs(
            document.table.first(requested),
            requested,
            document.theme,
            capacity=self.config.batch_capacity,
            policy=policy or self.config.incomplete_rows_policy,
        )

    def run(
        self,
        document: SlideDocument,
        *,
        count: Optional[int] = None,
        policy: Optional[str] = None,
        on_outcome: Optional[Callable[[JobOutcome], None]] = None,
    ) -> SlideBatchResult:
        jobs = self.build_jobs(document, count=count, policy=policy)
        batch = self.orchestrator.run(jobs, document.theme)

        run_id = datetime.now(timezone.utc).strftime("slides_%Y%m%d_%H%M%S")
        run_dir = self.config.output_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        exported: List[ExportedArtifact] = []
        export_errors: Dict[int, str] = {}
        taken: Set[str] = set()

        def _export(outcome: JobOutcome) -> None:
            if not isinstance(outcome, Success):
                return
            try:
                exported.append(self._write_artifact(run_dir, outcome, taken))
            except OSError as exc:
                logger.error("Failed to save video for job %d: %s", outcome.job_id + 1, exc)
                export_errors[outcome.job_id] = f"export failed: {exc}"

        batch.store.subscribe(_export)
        if on_outcome is not None:
            batch.store.subscribe(on_outcome)

        batch.wait()

        plan_path = run_dir / "plan.json"
        self._write_plan(plan_path, run_id, batch, exported, export_errors)
        result = SlideBatchResult(
            run_id=run_id,
            output_dir=run_dir,
            plan_path=plan_path,
            batch=batch,
            exported=exported,
            export_errors=export_errors,
        )
        logger.info(
            "Slide batch complete: %d succeeded, %d failed, %d not saved -> %s",
            result.succeeded,
            result.failed,
            len(export_errors),
            run_dir,
        )
        return result

    def close(self) -> None:
        self.orchestrator.close()

    # ------------------------------------------------------------------
    # Output helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_artifact(run_dir: Path, outcome: Success, taken: Set[str]) -> ExportedArtifact:
        path = run_dir / safe_filename(outcome.title, prefix=f"{outcome.job_id + 1:02d}_", taken=taken)
        path.write_bytes(outcome.artifact)
        logger.info("Saved %s (%d bytes)", path.name, outcome.size_bytes)
        return ExportedArtifact(job_id=outcome.job_id, title=outcome.title, path=path)

    def _write_plan(
        self,
        path: Path,
        run_id: str,
        batch: Batch,
        exported: List[ExportedArtifact],
        export_errors: Dict[int, str],
    ) -> None:
        files: Dict[int, str] = {item.job_id: item.path.name for item in exported}
        outcomes: Dict[int, JobOutcome] = {outcome.job_id: outcome for outcome in batch.store.outcomes()}

        entries = []
        for job in batch.job_specs:
            outcome = outcomes.get(job.job_id)
            entry: Dict[str, object] = {
                "job_id": job.job_id,
                "row": job.row_index + 1,
                "title": job.title,
                "duration_seconds": job.duration_seconds,
            }
            if outcome is None:
                entry["status"] = "not_run"
            elif isinstance(outcome, Success) and job.job_id in export_errors:
                entry["status"] = "export_failed"
                entry["reason"] = export_errors[job.job_id]
            elif isinstance(outcome, Success):
                entry["status"] = "success"
                entry["file"] = files.get(job.job_id)
                entry["size_bytes"] = outcome.size_bytes
            else:
                entry["status"] = "failure"
                entry["reason"] = outcome.reason
            entries.append(entry)

        payload = {
            "run_id": run_id,
            "batch_id": batch.batch_id,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "engine": self.engine.name,
            "theme": self._describe_theme(batch.theme),
            "complete": batch.is_complete(),
            "jobs": entries,
        }
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    @staticmethod
    def _describe_theme(theme: Theme) -> Dict[str, object]:
        description: Dict[str, object] = {"aspect_ratio": theme.aspect_ratio.value}
        if isinstance(theme.background, ColorSpec):
            description["background"] = {"color": theme.background.value}
        else:
            description["background"] = {
                "image": theme.background.mime_type,
                "size_bytes": len(theme.background.data),
            }
        return description
