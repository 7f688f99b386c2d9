"""Contract consumed by the batch orchestrator for turning jobs into video bytes."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .models import JobSpec


@dataclass(frozen=True)
class VideoSettings:
    short_side: int = 720
    fps: int = 24
    codec: str = "libx264"
    preset: str = "medium"
    crf: int = 23
    threads: int = 2
    pix_fmt: str = "yuv420p"
    ken_burns_zoom: float = 0.0

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "VideoSettings":
        video_cfg = config.get("video", {}) if isinstance(config, dict) else {}
        if not isinstance(video_cfg, dict):
            video_cfg = {}
        defaults = cls()
        short_side = int(video_cfg.get("short_side", defaults.short_side))
        if short_side < 16:
            raise ValueError(f"video.short_side must be at least 16, got {short_side}")
        return cls(
            short_side=short_side,
            fps=int(video_cfg.get("fps", defaults.fps)),
            codec=str(video_cfg.get("codec", defaults.codec)),
            preset=str(video_cfg.get("preset", defaults.preset)),
            crf=int(video_cfg.get("crf", defaults.crf)),
            threads=int(video_cfg.get("threads", defaults.threads)),
            pix_fmt=str(video_cfg.get("pix_fmt", defaults.pix_fmt)),
            ken_burns_zoom=max(float(video_cfg.get("ken_burns_zoom", defaults.ken_burns_zoom)), 0.0),
        )


class EncodingEngine(ABC):
    """Interface for slide encoders.

    ``ensure_ready`` must be idempotent: the orchestrator calls it before every
    batch, and the expensive setup should only happen the first time.

    The engine also tracks which batch currently owns it. ``lock`` serializes
    encodes from every orchestrator that shares this instance.
    """

    name: str = ""

    def __init__(self) -> None:
        self._ready = False
        self.lock = threading.RLock()
        self._owner_lock = threading.Lock()
        self._active_batch: Optional[Any] = None

    @property
    def active_batch(self) -> Optional[Any]:
        return self._active_batch

    def claim(self, batch: Optional[Any]) -> Optional[Any]:
        """Make ``batch`` the owner of this engine and return the previous owner."""
        with self._owner_lock:
            previous, self._active_batch = self._active_batch, batch
        return previous

    @property
    def ready(self) -> bool:
        return self._ready

    def ensure_ready(self) -> None:
        if self._ready:
            return
        self._setup()
        self._ready = True

    @abstractmethod
    def _setup(self) -> None:
        """Perform one-time engine initialisation; raise on failure."""

    @abstractmethod
    def encode(self, job: JobSpec) -> bytes:
        """Render ``job`` and return the MP4 bytes, raising ``EncodeError`` on failure."""

    def close(self) -> None:
        """Release engine resources. Safe to call more than once."""
        self._ready = False


__all__ = ["EncodingEngine", "VideoSettings"]
