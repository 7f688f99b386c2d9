"""Validate content rows and turn them into encode jobs."""
from __future__ import annotations

from typing import List, Sequence, Tuple

from logging_utils import get_logger

from .errors import IncompleteInput
from .models import TABLE_CAPACITY, ContentRow, JobSpec, Theme

logger = get_logger(__name__)

POLICY_REJECT = "reject"
POLICY_SKIP = "skip"


def invalid_row_indices(rows: Sequence[ContentRow], count: int) -> Tuple[int, ...]:
    """Indices among the first ``count`` slots that cannot become a job.

    Slots past the end of ``rows`` are treated as blank rows.
    """
    invalid: List[int] = []
    for index in range(count):
        if index >= len(rows) or not rows[index].is_complete():
            invalid.append(index)
    return tuple(invalid)


def build_job_specs(
    rows: Sequence[ContentRow],
    count: int,
    theme: Theme,
    *,
    capacity: int = TABLE_CAPACITY,
    policy: str = POLICY_REJECT,
) -> Tuple[JobSpec, ...]:
    """Build the ordered job list for the first ``count`` rows.

    With the ``reject`` policy the whole request fails with
    :class:`IncompleteInput` as soon as one of the selected rows is missing a
    title or content, and no jobs are produced. The ``skip`` policy drops such
    rows instead and only fails when nothing is left.
    """
    if policy not in (POLICY_REJECT, POLICY_SKIP):
        raise ValueError(f"Unknown incomplete-row policy '{policy}'")
    if len(rows) > capacity:
        raise ValueError(f"At most {capacity} rows can be submitted, got {len(rows)}")
    if not 1 <= count <= capacity:
        raise ValueError(f"count must be between 1 and {capacity}, got {count}")

    invalid = invalid_row_indices(rows, count)
    if invalid and (policy == POLICY_REJECT or len(invalid) == count):
        logger.warning("Rejecting batch: rows %s are incomplete", [index + 1 for index in invalid])
        raise IncompleteInput(invalid, count)
    if invalid:
        logger.info("Skipping incomplete rows %s", [index + 1 for index in invalid])

    specs: List[JobSpec] = []
    for row_index in range(count):
        if row_index in invalid:
            continue
        row = rows[row_index]
        specs.append(
            JobSpec(
                job_id=len(specs),
                title=row.title.strip(),
                content=row.content.strip(),
                duration_seconds=row.duration_seconds,
                aspect_ratio=theme.aspect_ratio,
                background=theme.background,
                row_index=row_index,
            )
        )
    logger.debug("Built %d job specs (%s, %s)", len(specs), theme.aspect_ratio.value, type(theme.background).__name__)
    return tuple(specs)
