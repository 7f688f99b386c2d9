"""Engine factory for switching between MoviePy and FFmpeg encoders.

MoviePy is the default; ``config['engine'] = 'ffmpeg'`` selects the encoder
that drives the ffmpeg CLI directly.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from logging_utils import get_logger

logger = get_logger(__name__)

_SUPPORTED_ENGINES = {"moviepy", "ffmpeg"}


def _resolve_engine_name(config: Dict[str, Any], override: Optional[str]) -> str:
    if override:
        return override.strip().lower()
    if not isinstance(config, dict):
        return "moviepy"
    return str(config.get("engine", "moviepy")).strip().lower() or "moviepy"


def make_engine(config: Dict[str, Any], *, name: Optional[str] = None, temp_root: Optional[Path] = None):
    """Return an encoding engine based on configuration."""
    engine_name = _resolve_engine_name(config, name)
    if engine_name not in _SUPPORTED_ENGINES:
        raise ValueError(
            f"Unsupported engine '{engine_name}'. Supported engines: {sorted(_SUPPORTED_ENGINES)}"
        )

    if engine_name == "ffmpeg":
        from slide_mode.ffmpeg_engine import FFmpegEngine  # lazy import

        logger.debug("Using FFmpeg engine")
        return FFmpegEngine(config, temp_root=temp_root)

    from slide_mode.moviepy_engine import MoviePyEngine  # lazy import

    logger.debug("Using MoviePy engine")
    return MoviePyEngine(config, temp_root=temp_root)
