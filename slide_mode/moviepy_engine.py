"""MoviePy-based encoder for single slides."""
from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
from moviepy import CompositeVideoClip, ImageClip, VideoClip

from logging_utils import get_logger

from .backgrounds import compose_frame, render_background
from .engine import EncodingEngine, VideoSettings
from .errors import EncodeError
from .models import AspectRatio, ImageSpec, JobSpec
from .overlay import OverlayStyle, SlideOverlayRenderer

logger = get_logger(__name__)


class MoviePyEngine(EncodingEngine):
    """Render each slide as a still (or slowly zooming) frame with MoviePy."""

    name = "moviepy"

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        temp_root: Optional[Path] = None,
        overlay: Optional[SlideOverlayRenderer] = None,
    ) -> None:
        super().__init__()
        self.settings = VideoSettings.from_config(config)
        self.overlay = overlay or SlideOverlayRenderer(OverlayStyle.from_config(config or {}))
        self.temp_root = temp_root
        self.work_dir: Optional[Path] = None
        self.ffmpeg_exe: Optional[str] = None

    def _setup(self) -> None:
        import imageio_ffmpeg

        # Raises RuntimeError when no ffmpeg binary can be located
        self.ffmpeg_exe = imageio_ffmpeg.get_ffmpeg_exe()
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)
        self.work_dir = Path(tempfile.mkdtemp(prefix="moviepy_slides_", dir=self.temp_root))
        self.overlay.warm_up(tuple(ratio.dimensions(self.settings.short_side) for ratio in AspectRatio))
        logger.info("MoviePy engine ready (ffmpeg=%s, work_dir=%s)", self.ffmpeg_exe, self.work_dir)

    def encode(self, job: JobSpec) -> bytes:
        if self.work_dir is None:
            raise EncodeError("engine is not ready")

        size = job.aspect_ratio.dimensions(self.settings.short_side)
        output_path = self.work_dir / f"slide_{job.job_id:02d}.mp4"
        clip: Optional[VideoClip] = None
        try:
            clip = self._build_clip(job, size)
            clip.write_videofile(
                str(output_path),
                fps=self.settings.fps,
                codec=self.settings.codec,
                audio=False,
                preset=self.settings.preset,
                threads=self.settings.threads,
                ffmpeg_params=["-crf", str(self.settings.crf)],
                logger=None,
            )
            return output_path.read_bytes()
        except EncodeError:
            raise
        except Exception as exc:
            logger.exception("MoviePy render failed for job %d", job.display_number)
            raise EncodeError(f"moviepy render failed: {exc}") from exc
        finally:
            if clip is not None:
                try:
                    clip.close()
                except Exception:  # pragma: no cover
                    logger.debug("Clip close failed for job %d", job.display_number, exc_info=True)
            output_path.unlink(missing_ok=True)

    def close(self) -> None:
        if self.work_dir is not None:
            shutil.rmtree(self.work_dir, ignore_errors=True)
            self.work_dir = None
        super().close()

    # ------------------------------------------------------------------
    # Clip builders
    # ------------------------------------------------------------------

    def _build_clip(self, job: JobSpec, size: Tuple[int, int]) -> VideoClip:
        duration = float(job.duration_seconds)
        overlay = self.overlay.render(job, size)

        zoom = self.settings.ken_burns_zoom
        if isinstance(job.background, ImageSpec) and zoom > 0:
            base = render_background(job.background, size)
            base_clip = (
                ImageClip(np.array(base), duration=duration)
                .resized(lambda t: 1.0 + zoom * (t / duration))
                .with_position("center")
            )
            overlay_clip = ImageClip(np.array(overlay), duration=duration, transparent=True)
            return CompositeVideoClip([base_clip, overlay_clip], size=size).with_duration(duration)

        frame = compose_frame(job.background, overlay)
        return ImageClip(np.array(frame), duration=duration)
