from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from renderer_factory import make_engine  # noqa: E402
from slide_mode.ffmpeg_engine import FFmpegEngine  # noqa: E402
from slide_mode.moviepy_engine import MoviePyEngine  # noqa: E402


def test_make_engine_defaults_to_moviepy() -> None:
    engine = make_engine({"video": {"short_side": 360}})
    assert isinstance(engine, MoviePyEngine)
    assert engine.settings.short_side == 360


def test_make_engine_selects_ffmpeg() -> None:
    engine = make_engine({"engine": "ffmpeg", "ffmpeg": {"path": "/opt/ffmpeg/bin/ffmpeg"}})
    assert isinstance(engine, FFmpegEngine)
    assert engine.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"


def test_name_override_wins_over_config() -> None:
    engine = make_engine({"engine": "ffmpeg"}, name="moviepy")
    assert isinstance(engine, MoviePyEngine)


def test_unknown_engine_is_rejected() -> None:
    with pytest.raises(ValueError):
        make_engine({"engine": "gstreamer"})
