"""FFmpeg-based encoder: the slide is composed by a filter graph."""
from __future__ import annotations

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from logging_utils import get_logger

from .backgrounds import render_background
from .engine import EncodingEngine, VideoSettings
from .errors import EncodeError
from .ffmpeg_runner import FFmpegError, probe_version, run_ffmpeg
from .models import AspectRatio, ColorSpec, JobSpec
from .overlay import OverlayStyle, SlideOverlayRenderer

logger = get_logger(__name__)


class FFmpegEngine(EncodingEngine):
    """Render slides by delegating composition and encoding to the ffmpeg CLI."""

    name = "ffmpeg"

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        temp_root: Optional[Path] = None,
        overlay: Optional[SlideOverlayRenderer] = None,
    ) -> None:
        super().__init__()
        config = config or {}
        ffmpeg_cfg = config.get("ffmpeg", {}) if isinstance(config.get("ffmpeg"), dict) else {}
        self.settings = VideoSettings.from_config(config)
        self.overlay = overlay or SlideOverlayRenderer(OverlayStyle.from_config(config))
        self.ffmpeg_path = str(ffmpeg_cfg.get("path", "ffmpeg"))
        timeout = ffmpeg_cfg.get("timeout_seconds", 300)
        self.timeout = float(timeout) if timeout else None
        self.temp_root = temp_root
        self.work_dir: Optional[Path] = None
        self._resolved_path: Optional[str] = None

    def _setup(self) -> None:
        resolved = shutil.which(self.ffmpeg_path)
        if resolved is None:
            raise RuntimeError(f"ffmpeg binary not found: {self.ffmpeg_path}")
        version = probe_version(resolved)
        self._resolved_path = resolved
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)
        self.work_dir = Path(tempfile.mkdtemp(prefix="ffmpeg_slides_", dir=self.temp_root))
        self.overlay.warm_up(tuple(ratio.dimensions(self.settings.short_side) for ratio in AspectRatio))
        logger.info("FFmpeg engine ready: %s", version or resolved)

    def encode(self, job: JobSpec) -> bytes:
        if self.work_dir is None or self._resolved_path is None:
            raise EncodeError("engine is not ready")

        size = job.aspect_ratio.dimensions(self.settings.short_side)
        job_dir = self.work_dir / f"slide_{job.job_id:02d}"
        job_dir.mkdir(parents=True, exist_ok=True)
        output_path = job_dir / "slide.mp4"
        try:
            overlay_path = self.overlay.render_to_path(job, size, job_dir / "overlay.png")
            args = self.build_args(job, size, job_dir=job_dir, overlay_path=overlay_path, output_path=output_path)
            run_ffmpeg(args, ffmpeg_path=self._resolved_path, timeout=self.timeout)
            return output_path.read_bytes()
        except FFmpegError as exc:
            raise EncodeError(str(exc)) from exc
        except subprocess.TimeoutExpired as exc:
            raise EncodeError(f"ffmpeg timed out after {exc.timeout:.0f}s") from exc
        except OSError as exc:
            raise EncodeError(f"ffmpeg could not run: {exc}") from exc
        finally:
            shutil.rmtree(job_dir, ignore_errors=True)

    def close(self) -> None:
        if self.work_dir is not None:
            shutil.rmtree(self.work_dir, ignore_errors=True)
            self.work_dir = None
        super().close()

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------

    def build_args(
        self,
        job: JobSpec,
        size: Tuple[int, int],
        *,
        job_dir: Path,
        overlay_path: Path,
        output_path: Path,
    ) -> List[str]:
        width, height = size
        fps = self.settings.fps
        duration = f"{float(job.duration_seconds):.3f}"

        args: List[str] = ["-y"]
        if isinstance(job.background, ColorSpec):
            color = job.background.value.lstrip("#")
            args += ["-f", "lavfi", "-i", f"color=c=0x{color}:s={width}x{height}:r={fps}:d={duration}"]
        else:
            background_path = job_dir / "background.png"
            render_background(job.background, size).save(background_path, format="PNG")
            args += ["-loop", "1", "-framerate", str(fps), "-t", duration, "-i", str(background_path)]
        args += ["-loop", "1", "-framerate", str(fps), "-t", duration, "-i", str(overlay_path)]

        filter_graph = ";".join(
            [
                f"[0:v]scale={width}:{height},setsar=1[bg]",
                f"[bg][1:v]overlay=x=0:y=0:format=auto,format={self.settings.pix_fmt}[vout]",
            ]
        )
        args += [
            "-filter_complex",
            filter_graph,
            "-map",
            "[vout]",
            "-t",
            duration,
            "-r",
            str(fps),
            "-c:v",
            self.settings.codec,
            "-preset",
            self.settings.preset,
            "-crf",
            str(self.settings.crf),
            "-pix_fmt",
            self.settings.pix_fmt,
            "-threads",
            str(self.settings.threads),
            "-an",
            "-movflags",
            "+faststart",
            str(output_path),
        ]
        return args
