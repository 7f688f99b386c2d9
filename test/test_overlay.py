from __future__ import annotations

import sys
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from slide_mode.backgrounds import compose_frame, cover_fit, render_background  # noqa: E402
from slide_mode.errors import EncodeError  # noqa: E402
from slide_mode.models import AspectRatio, ColorSpec, ImageSpec, JobSpec  # noqa: E402
from slide_mode.overlay import OverlayStyle, SlideOverlayRenderer  # noqa: E402


def _job(title: str = "Intro", content: str = "Welcome to the show") -> JobSpec:
    return JobSpec(
        job_id=0,
        title=title,
        content=content,
        duration_seconds=30,
        aspect_ratio=AspectRatio.LANDSCAPE,
        background=ColorSpec("#f87171"),
        row_index=0,
    )


def _png_bytes(size=(400, 100), color=(0, 0, 255)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_overlay_is_transparent_canvas_with_boxes() -> None:
    renderer = SlideOverlayRenderer()

    overlay = renderer.render(_job(), (640, 360))

    assert overlay.mode == "RGBA"
    assert overlay.size == (640, 360)
    # centre of the frame stays transparent, the title box corner is painted
    assert overlay.getpixel((320, 180))[3] == 0
    assert overlay.getpixel((30, 30))[3] > 0


def test_long_content_is_wrapped_and_truncated() -> None:
    renderer = SlideOverlayRenderer(OverlayStyle(max_body_lines=2))
    font = renderer._get_font(24)
    text = " ".join(["word"] * 200)

    lines = renderer._fit_lines(text, font, 300, 2)

    assert len(lines) == 2
    assert lines[-1].endswith("…")


def test_overlong_word_is_broken() -> None:
    renderer = SlideOverlayRenderer()
    font = renderer._get_font(24)

    lines = renderer._wrap_text("x" * 300, font, 100)

    assert len(lines) > 1
    assert "".join(lines) == "x" * 300


def test_render_to_path_writes_png(tmp_path: Path) -> None:
    path = SlideOverlayRenderer().render_to_path(_job(), (360, 640), tmp_path / "o" / "overlay.png")

    with Image.open(path) as image:
        assert image.size == (360, 640)


def test_style_from_config_reads_text_section() -> None:
    style = OverlayStyle.from_config(
        {"text": {"title_size": 40, "body_size": 20, "colors": {"text": "#ff0000", "box": "#000000"}}}
    )

    assert style.title_size == 40
    assert style.body_size == 20
    assert style.text_color == (255, 0, 0, 255)
    assert style.box_color == (0, 0, 0, 235)


def test_color_background_fills_frame() -> None:
    frame = render_background(ColorSpec("#60a5fa"), (64, 36))

    assert frame.size == (64, 36)
    assert frame.getpixel((10, 10)) == (96, 165, 250)


def test_image_background_is_cover_fitted() -> None:
    frame = render_background(ImageSpec(_png_bytes(), "image/png"), (100, 100))

    red, green, blue = frame.getpixel((50, 50))
    assert frame.size == (100, 100)
    assert red < 5 and green < 5 and blue > 250


def test_cover_fit_crops_to_target() -> None:
    fitted = cover_fit(Image.new("RGB", (1000, 100)), (200, 200))
    assert fitted.size == (200, 200)


def test_undecodable_image_raises_encode_error() -> None:
    with pytest.raises(EncodeError):
        render_background(ImageSpec(b"not an image", "image/png"), (10, 10))


def test_compose_frame_flattens_overlay() -> None:
    overlay = Image.new("RGBA", (20, 20), (0, 0, 0, 0))
    overlay.putpixel((0, 0), (255, 255, 255, 255))

    frame = compose_frame(ColorSpec("#000000"), overlay)

    assert frame.mode == "RGB"
    assert frame.getpixel((0, 0)) == (255, 255, 255)
    assert frame.getpixel((10, 10)) == (0, 0, 0)
