from __future__ import annotations

import base64
import binascii
import mimetypes
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Iterator, Tuple, Union

TABLE_CAPACITY = 10
MIN_DURATION_SECONDS = 10
MAX_DURATION_SECONDS = 120
DEFAULT_DURATION_SECONDS = 30

PRESET_COLORS: Tuple[str, ...] = ("#ffffff", "#f87171", "#60a5fa", "#34d399", "#fbbf24")

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*?);base64,(?P<body>.*)$", re.S)


class AspectRatio(Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"
    STANDARD = "4:3"

    @classmethod
    def parse(cls, value: Union[str, "AspectRatio"]) -> "AspectRatio":
        if isinstance(value, AspectRatio):
            return value
        text = str(value).strip()
        for member in cls:
            if member.value == text or member.name.lower() == text.lower():
                return member
        raise ValueError(f"Unsupported aspect ratio '{value}'. Supported: {[m.value for m in cls]}")

    def dimensions(self, short_side: int = 720) -> Tuple[int, int]:
        """Frame size for this ratio where the shorter edge is ``short_side``.

        Both edges are rounded down to even numbers so yuv420p encoders accept them.
        """
        w_ratio, h_ratio = (int(part) for part in self.value.split(":"))
        if w_ratio >= h_ratio:
            height = short_side
            width = short_side * w_ratio // h_ratio
        else:
            width = short_side
            height = short_side * h_ratio // w_ratio
        return width - width % 2, height - height % 2


@dataclass(frozen=True)
class ColorSpec:
    value: str = "#ffffff"

    def __post_init__(self) -> None:
        match = _HEX_COLOR.match(str(self.value).strip())
        if not match:
            raise ValueError(f"Invalid color value: {self.value!r}")
        digits = match.group(1).lower()
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        object.__setattr__(self, "value", f"#{digits}")

    @property
    def rgb(self) -> Tuple[int, int, int]:
        digits = self.value[1:]
        return tuple(int(digits[i : i + 2], 16) for i in (0, 2, 4))  # type: ignore[return-value]


@dataclass(frozen=True)
class ImageSpec:
    data: bytes = field(repr=False)
    mime_type: str = "application/octet-stream"

    def __post_init__(self) -> None:
        if not self.data:
            raise ValueError("Background image payload is empty")

    @classmethod
    def from_path(cls, path: Path | str) -> "ImageSpec":
        image_path = Path(path).expanduser()
        if not image_path.exists():
            raise FileNotFoundError(f"Background image not found: {image_path}")
        mime, _ = mimetypes.guess_type(image_path.name)
        return cls(data=image_path.read_bytes(), mime_type=mime or "application/octet-stream")

    @classmethod
    def from_data_url(cls, url: str) -> "ImageSpec":
        match = _DATA_URL.match(url.strip())
        if not match:
            raise ValueError("Background image must be a base64 data URL")
        try:
            payload = base64.b64decode(match.group("body"), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload in data URL: {exc}") from exc
        return cls(data=payload, mime_type=match.group("mime") or "application/octet-stream")


Background = Union[ColorSpec, ImageSpec]


@dataclass(frozen=True)
class Theme:
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    background: Background = field(default_factory=ColorSpec)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aspect_ratio", AspectRatio.parse(self.aspect_ratio))
        if not isinstance(self.background, (ColorSpec, ImageSpec)):
            raise TypeError("Theme background must be a ColorSpec or an ImageSpec")


@dataclass(frozen=True)
class ContentRow:
    title: str = ""
    content: str = ""
    duration_seconds: int = DEFAULT_DURATION_SECONDS

    def __post_init__(self) -> None:
        try:
            duration = int(self.duration_seconds)
        except (TypeError, ValueError):
            raise ValueError(f"duration_seconds must be an integer, got {self.duration_seconds!r}")
        if not MIN_DURATION_SECONDS <= duration <= MAX_DURATION_SECONDS:
            raise ValueError(
                f"duration_seconds must be between {MIN_DURATION_SECONDS} and "
                f"{MAX_DURATION_SECONDS}, got {duration}"
            )
        object.__setattr__(self, "duration_seconds", duration)
        object.__setattr__(self, "title", "" if self.title is None else str(self.title))
        object.__setattr__(self, "content", "" if self.content is None else str(self.content))

    def is_complete(self) -> bool:
        return bool(self.title.strip()) and bool(self.content.strip())

    def with_changes(self, **changes: object) -> "ContentRow":
        return replace(self, **changes)


@dataclass(frozen=True)
class RowTable:
    """Fixed-capacity table of rows; edits return a new table."""

    rows: Tuple[ContentRow, ...] = ()
    capacity: int = TABLE_CAPACITY

    def __post_init__(self) -> None:
        rows = tuple(self.rows)
        if len(rows) > self.capacity:
            raise ValueError(f"Table holds at most {self.capacity} rows, got {len(rows)}")
        padded = rows + tuple(ContentRow() for _ in range(self.capacity - len(rows)))
        object.__setattr__(self, "rows", padded)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ContentRow]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> ContentRow:
        return self.rows[index]

    def update(self, index: int, field_name: str, value: object) -> "RowTable":
        if not 0 <= index < self.capacity:
            raise IndexError(f"Row index {index} outside table of {self.capacity}")
        if field_name not in ("title", "content", "duration_seconds"):
            raise ValueError(f"Unknown row field '{field_name}'")
        updated = list(self.rows)
        updated[index] = updated[index].with_changes(**{field_name: value})
        return RowTable(rows=tuple(updated), capacity=self.capacity)

    def first(self, count: int) -> Tuple[ContentRow, ...]:
        return self.rows[: max(count, 0)]


@dataclass(frozen=True)
class JobSpec:
    job_id: int
    title: str
    content: str
    duration_seconds: int
    aspect_ratio: AspectRatio
    background: Background
    row_index: int

    @property
    def display_number(self) -> int:
        return self.job_id + 1


@dataclass(frozen=True)
class Success:
    job_id: int
    title: str
    artifact: bytes = field(repr=False)

    ok = True

    @property
    def filename(self) -> str:
        return f"{self.title}.mp4"

    @property
    def size_bytes(self) -> int:
        return len(self.artifact)


@dataclass(frozen=True)
class Failure:
    job_id: int
    title: str
    reason: str

    ok = False


JobOutcome = Union[Success, Failure]
