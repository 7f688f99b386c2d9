from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from logging_utils import get_logger

from .image_fetcher import ImageFetcher
from .models import (
    DEFAULT_DURATION_SECONDS,
    TABLE_CAPACITY,
    AspectRatio,
    Background,
    ColorSpec,
    ContentRow,
    ImageSpec,
    RowTable,
    Theme,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SlideDocument:
    table: RowTable
    theme: Theme = field(default_factory=Theme)
    count: Optional[int] = None
    source: Optional[Path] = None

    def filled_rows(self) -> int:
        """Number of leading rows that carry any text."""
        filled = 0
        for row in self.table:
            if not (row.title.strip() or row.content.strip()):
                break
            filled += 1
        return filled


def _parse_row(raw: Any, *, index: int) -> ContentRow:
    if raw is None:
        return ContentRow()
    if not isinstance(raw, dict):
        raise ValueError(f"Row {index} must be an object with title/content/duration")
    title = raw.get("title", "")
    content = raw.get("content", raw.get("body", ""))
    if title is not None and not isinstance(title, str):
        raise ValueError(f"Row {index} title must be a string")
    if content is not None and not isinstance(content, str):
        raise ValueError(f"Row {index} content must be a string")
    duration = raw.get("duration", raw.get("duration_seconds", DEFAULT_DURATION_SECONDS))
    try:
        return ContentRow(title=title or "", content=content or "", duration_seconds=duration)
    except ValueError as exc:
        raise ValueError(f"Row {index}: {exc}") from exc


def _parse_background(raw: Any, *, base_dir: Path, fetcher: Optional[ImageFetcher]) -> Background:
    if raw is None:
        return ColorSpec()
    if isinstance(raw, str):
        return ColorSpec(raw)
    if not isinstance(raw, dict):
        raise ValueError("theme.background must be a color string or an object")

    sources = [key for key in ("color", "image", "data_url", "image_url") if raw.get(key)]
    if len(sources) != 1:
        raise ValueError("theme.background needs exactly one of 'color', 'image', 'data_url' or 'image_url'")
    source = sources[0]

    if source == "color":
        return ColorSpec(str(raw["color"]))
    if source == "image":
        image_path = Path(str(raw["image"])).expanduser()
        if not image_path.is_absolute():
            image_path = base_dir / image_path
        return ImageSpec.from_path(image_path)
    if source == "data_url":
        return ImageSpec.from_data_url(str(raw["data_url"]))

    fetcher = fetcher or ImageFetcher()
    logger.info("Downloading background image: %s", raw["image_url"])
    return fetcher.fetch(str(raw["image_url"]))


def _parse_theme(raw: Any, *, base_dir: Path, fetcher: Optional[ImageFetcher]) -> Theme:
    if raw is None:
        return Theme()
    if not isinstance(raw, dict):
        raise ValueError("theme must be an object")
    aspect_ratio = AspectRatio.parse(raw.get("aspect_ratio", AspectRatio.LANDSCAPE.value))
    background = _parse_background(raw.get("background"), base_dir=base_dir, fetcher=fetcher)
    return Theme(aspect_ratio=aspect_ratio, background=background)


def parse_slide_document(
    data: Dict[str, Any],
    *,
    base_dir: Path,
    capacity: int = TABLE_CAPACITY,
    fetcher: Optional[ImageFetcher] = None,
    source: Optional[Path] = None,
) -> SlideDocument:
    if not isinstance(data, dict):
        raise ValueError("Slide document root must be an object")

    rows_raw = data.get("rows")
    if not isinstance(rows_raw, list):
        raise ValueError("Slide document must include a 'rows' array")
    if len(rows_raw) > capacity:
        raise ValueError(f"At most {capacity} rows are supported, got {len(rows_raw)}")
    rows: List[ContentRow] = [_parse_row(raw, index=idx) for idx, raw in enumerate(rows_raw, start=1)]

    count = data.get("count")
    if count is not None:
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise ValueError("count must be an integer")
        if not 1 <= count <= capacity:
            raise ValueError(f"count must be between 1 and {capacity}, got {count}")

    theme = _parse_theme(data.get("theme"), base_dir=base_dir, fetcher=fetcher)
    return SlideDocument(
        table=RowTable(rows=tuple(rows), capacity=capacity),
        theme=theme,
        count=count,
        source=source,
    )


def load_slide_document(
    path: Path | str,
    *,
    capacity: int = TABLE_CAPACITY,
    fetcher: Optional[ImageFetcher] = None,
) -> SlideDocument:
    """Load rows and theme from a JSON or YAML file."""
    doc_path = Path(path).expanduser().resolve()
    if not doc_path.exists():
        raise FileNotFoundError(f"Slide document not found: {doc_path}")

    text = doc_path.read_text(encoding="utf-8")
    if doc_path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {doc_path}: {exc}") from exc

    document = parse_slide_document(
        data,
        base_dir=doc_path.parent,
        capacity=capacity,
        fetcher=fetcher,
        source=doc_path,
    )
    logger.info(
        "Loaded %d filled row(s) from %s (%s, %s background)",
        document.filled_rows(),
        doc_path.name,
        document.theme.aspect_ratio.value,
        type(document.theme.background).__name__,
    )
    return document
