"""Background frame preparation shared by the encoding engines."""
from __future__ import annotations

from io import BytesIO
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import EncodeError
from .models import Background, ColorSpec, ImageSpec


def decode_image(spec: ImageSpec) -> Image.Image:
    try:
        with Image.open(BytesIO(spec.data)) as image:
            image.load()
            return ImageOps.exif_transpose(image).convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise EncodeError(f"background image could not be decoded ({spec.mime_type})") from exc


def cover_fit(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Scale and centre-crop ``image`` so it fills ``size`` (CSS ``background-size: cover``)."""
    return ImageOps.fit(image, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def render_background(background: Background, size: Tuple[int, int]) -> Image.Image:
    if isinstance(background, ColorSpec):
        return Image.new("RGB", size, background.rgb)
    return cover_fit(decode_image(background), size)


def compose_frame(background: Background, overlay: Image.Image) -> Image.Image:
    """Flatten the overlay onto the background into a single RGB still."""
    base = render_background(background, overlay.size).convert("RGBA")
    base.alpha_composite(overlay)
    return base.convert("RGB")
