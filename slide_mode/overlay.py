"""Pillow renderer for the title box and content box drawn over each slide."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from logging_utils import get_logger

from .models import JobSpec

logger = get_logger(__name__)

ELLIPSIS = "…"
REFERENCE_SHORT_SIDE = 720


def _hex_to_rgba(value: str, *, default_alpha: int = 255) -> Tuple[int, int, int, int]:
    text = value.lstrip("#")
    if len(text) == 8:
        return tuple(int(text[i : i + 2], 16) for i in (0, 2, 4, 6))  # type: ignore[return-value]
    if len(text) == 6:
        r, g, b = (int(text[i : i + 2], 16) for i in (0, 2, 4))
        return (r, g, b, default_alpha)
    raise ValueError(f"Invalid RGBA hex value: {value}")


@dataclass(frozen=True)
class OverlayStyle:
    font_path: Optional[str] = None
    bold_font_path: Optional[str] = None
    title_size: int = 56
    body_size: int = 36
    text_color: Tuple[int, int, int, int] = (17, 24, 39, 255)
    box_color: Tuple[int, int, int, int] = (255, 255, 255, 235)
    shadow_color: Tuple[int, int, int, int] = (0, 0, 0, 90)
    margin_ratio: float = 0.045
    padding_ratio: float = 0.35
    radius_ratio: float = 0.3
    max_title_lines: int = 2
    max_body_lines: int = 6

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "OverlayStyle":
        text_cfg = config.get("text", {}) if isinstance(config, dict) else {}
        if not isinstance(text_cfg, dict):
            text_cfg = {}
        colors = text_cfg.get("colors", {}) if isinstance(text_cfg.get("colors"), dict) else {}
        defaults = cls()
        return cls(
            font_path=text_cfg.get("font_path") or None,
            bold_font_path=text_cfg.get("bold_font_path") or None,
            title_size=int(text_cfg.get("title_size", defaults.title_size)),
            body_size=int(text_cfg.get("body_size", defaults.body_size)),
            text_color=_hex_to_rgba(colors["text"]) if colors.get("text") else defaults.text_color,
            box_color=_hex_to_rgba(colors["box"], default_alpha=235) if colors.get("box") else defaults.box_color,
            shadow_color=_hex_to_rgba(colors["shadow"], default_alpha=90) if colors.get("shadow") else defaults.shadow_color,
            max_title_lines=int(text_cfg.get("max_title_lines", defaults.max_title_lines)),
            max_body_lines=int(text_cfg.get("max_body_lines", defaults.max_body_lines)),
        )


class SlideOverlayRenderer:
    """Draw the title box (top left) and content box (bottom left) on a transparent canvas."""

    def __init__(self, style: Optional[OverlayStyle] = None) -> None:
        self.style = style or OverlayStyle()
        self._font_cache: Dict[Tuple[int, bool], ImageFont.ImageFont] = {}

    def warm_up(self, sizes: Tuple[Tuple[int, int], ...]) -> None:
        """Load the fonts needed for the given frame sizes ahead of the first job."""
        for size in sizes:
            scale = min(size) / REFERENCE_SHORT_SIDE
            self._get_font(max(int(self.style.title_size * scale), 8), bold=True)
            self._get_font(max(int(self.style.body_size * scale), 8))

    def render(self, job: JobSpec, size: Tuple[int, int]) -> Image.Image:
        width, height = size
        scale = min(width, height) / REFERENCE_SHORT_SIDE
        margin = max(int(min(width, height) * self.style.margin_ratio), 8)
        max_box_width = width - 2 * margin

        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))

        title_font = self._get_font(max(int(self.style.title_size * scale), 8), bold=True)
        body_font = self._get_font(max(int(self.style.body_size * scale), 8))

        title_lines = self._fit_lines(job.title, title_font, max_box_width, self.style.max_title_lines)
        body_lines = self._fit_lines(job.content, body_font, max_box_width, self.style.max_body_lines)

        self._draw_box(canvas, title_lines, title_font, origin=(margin, margin), anchor_bottom=False)
        self._draw_box(canvas, body_lines, body_font, origin=(margin, height - margin), anchor_bottom=True)
        return canvas

    def render_to_path(self, job: JobSpec, size: Tuple[int, int], output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.render(job, size).save(output_path, format="PNG")
        return output_path

    # ------------------------------------------------------------------
    # Drawing helpers
    # ------------------------------------------------------------------

    def _draw_box(
        self,
        canvas: Image.Image,
        lines: List[str],
        font: ImageFont.ImageFont,
        *,
        origin: Tuple[int, int],
        anchor_bottom: bool,
    ) -> None:
        if not lines:
            return
        font_size = getattr(font, "size", 16)
        padding = max(int(font_size * self.style.padding_ratio), 6)
        line_spacing = max(int(font_size * 0.25), 2)
        radius = max(int(font_size * self.style.radius_ratio), 4)

        line_heights = [self._measure_text(font, line)[1] for line in lines]
        text_width = max(self._measure_text(font, line)[0] for line in lines)
        text_height = sum(line_heights) + line_spacing * (len(lines) - 1)

        box_w = text_width + 2 * padding
        box_h = text_height + 2 * padding
        x0 = origin[0]
        y0 = origin[1] - box_h if anchor_bottom else origin[1]
        box = (x0, y0, x0 + box_w, y0 + box_h)

        shadow_offset = max(radius // 2, 2)
        shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        ImageDraw.Draw(shadow).rounded_rectangle(
            (box[0] + shadow_offset, box[1] + shadow_offset, box[2] + shadow_offset, box[3] + shadow_offset),
            radius=radius,
            fill=self.style.shadow_color,
        )
        shadow = shadow.filter(ImageFilter.GaussianBlur(radius=shadow_offset))
        canvas.alpha_composite(shadow)

        draw = ImageDraw.Draw(canvas, "RGBA")
        draw.rounded_rectangle(box, radius=radius, fill=self.style.box_color)

        y = y0 + padding
        for line, line_height in zip(lines, line_heights):
            draw.text((x0 + padding, y), line, font=font, fill=self.style.text_color)
            y += line_height + line_spacing

    def _fit_lines(self, text: str, font: ImageFont.ImageFont, max_box_width: int, max_lines: int) -> List[str]:
        padding = max(int(getattr(font, "size", 16) * self.style.padding_ratio), 6)
        max_width = max(max_box_width - 2 * padding, 1)
        lines: List[str] = []
        for paragraph in text.splitlines() or [text]:
            lines.extend(self._wrap_text(paragraph.strip(), font, max_width))
        lines = [line for line in lines if line]
        if max_lines > 0 and len(lines) > max_lines:
            kept = lines[:max_lines]
            last = kept[-1]
            while last and font.getlength(last + ELLIPSIS) > max_width:
                last = last[:-1]
            kept[-1] = last.rstrip() + ELLIPSIS
            logger.debug("Truncated %d overflow line(s) for '%s'", len(lines) - max_lines, text[:30])
            lines = kept
        return lines

    @staticmethod
    def _wrap_text(text: str, font: ImageFont.ImageFont, max_width: int) -> List[str]:
        parts: List[str] = []
        buffer = ""
        for word in text.split(" "):
            candidate = f"{buffer} {word}" if buffer else word
            if font.getlength(candidate) <= max_width:
                buffer = candidate
                continue
            if buffer:
                parts.append(buffer)
                buffer = ""
            # Words wider than the box are broken per character
            for char in word:
                if font.getlength(buffer + char) <= max_width or not buffer:
                    buffer += char
                else:
                    parts.append(buffer)
                    buffer = char
        if buffer:
            parts.append(buffer)
        return parts

    def _get_font(self, size: int, bold: bool = False) -> ImageFont.ImageFont:
        cache_key = (size, bold)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        font_path = self.style.bold_font_path if bold and self.style.bold_font_path else self.style.font_path
        try:
            if font_path and Path(font_path).expanduser().exists():
                font = ImageFont.truetype(str(Path(font_path).expanduser()), size=size)
            else:
                system_fallback = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
                font = ImageFont.truetype(system_fallback, size=size)
        except OSError:
            font = ImageFont.load_default(size=size)
        self._font_cache[cache_key] = font
        return font

    @staticmethod
    def _measure_text(font: ImageFont.ImageFont, text: str) -> Tuple[int, int]:
        bbox = font.getbbox(text)
        return int(round(font.getlength(text))), max(bbox[3] - bbox[1], 1)
