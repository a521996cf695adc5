"""
Raster primitives used by the mockup compositor.

Each function wraps Pillow (with numpy for the blend arithmetic) and mirrors the
libvips behaviour the tote bag art was authored against:

- two-dimension resizes cover the target box and centre-crop the excess
- resizes run on premultiplied alpha so transparent edges do not bleed
- blends use premultiplied Porter-Duff / PDF separable formulas
- JPEG encoding flattens any remaining alpha onto black
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor, UnidentifiedImageError

from .errors import RasterError

RGBA = Tuple[int, int, int, int]

LANCZOS = Image.Resampling.LANCZOS

# Upper bound for any intermediate raster; twice Pillow's decompression bomb limit.
MAX_PIXELS = 2 * 89_478_485


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards positive infinity."""
    return int(math.floor(value + 0.5))


class BlendMode(str, Enum):
    OVER = "over"
    DEST_IN = "dest-in"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"


@dataclass(frozen=True, slots=True)
class Layer:
    """An overlay placed on the base image at ``(left, top)``."""

    image: Image.Image
    blend: BlendMode = BlendMode.OVER
    left: int = 0
    top: int = 0


def parse_color(value: Any) -> RGBA:
    """
    Parse a CSS-like color string or an ``{r, g, b, alpha}`` mapping.

    ``alpha`` in a mapping is a 0-1 float. Raises ``ValueError`` for anything
    the parser does not understand.
    """
    if isinstance(value, Mapping):
        try:
            r, g, b = (int(value[key]) for key in ("r", "g", "b"))
            alpha = float(value.get("alpha", 1.0))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid color mapping: {dict(value)}") from exc
        channels = (r, g, b)
        if any(c < 0 or c > 255 for c in channels) or not 0.0 <= alpha <= 1.0:
            raise ValueError(f"Color mapping out of range: {dict(value)}")
        return (r, g, b, int(round(alpha * 255)))
    if isinstance(value, str):
        rgb = ImageColor.getrgb(value.strip())
        if len(rgb) == 3:
            return (rgb[0], rgb[1], rgb[2], 255)
        return (rgb[0], rgb[1], rgb[2], rgb[3])
    raise ValueError(f"Unsupported color value: {value!r}")


def decode(data: bytes) -> Image.Image:
    """Decode encoded image bytes into a fully loaded RGBA image."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return image.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise RasterError(f"Unable to decode image data: {exc}") from exc


def open_path(path) -> Image.Image:
    """Decode an image file from disk into a fully loaded image (mode preserved)."""
    try:
        with Image.open(path) as image:
            image.load()
            return image.copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise RasterError(f"Unable to decode {path}: {exc}") from exc


def image_size(data: bytes) -> Tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise RasterError(f"Unable to read image header: {exc}") from exc


def _check_size(width: int, height: int) -> None:
    if width < 1 or height < 1:
        raise RasterError(f"Invalid target size {width}x{height}")
    if width * height > MAX_PIXELS:
        raise RasterError(f"Target size {width}x{height} exceeds {MAX_PIXELS} pixels")


def _resample(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    _check_size(*size)
    if image.size == size:
        return image.copy()
    try:
        if "A" in image.getbands():
            premultiplied = image.convert("RGBA").convert("RGBa")
            return premultiplied.resize(size, resample=LANCZOS).convert("RGBA")
        return image.resize(size, resample=LANCZOS)
    except (ValueError, OSError, MemoryError, OverflowError) as exc:
        raise RasterError(f"Resize to {size[0]}x{size[1]} failed: {exc}") from exc


def resize_cover(image: Image.Image, width: int, height: int) -> Image.Image:
    """Resize so the image covers ``width`` x ``height``, cropping the centre."""
    _check_size(width, height)
    src_w, src_h = image.size
    scale = max(width / src_w, height / src_h)
    scaled_w = max(width, round_half_up(src_w * scale))
    scaled_h = max(height, round_half_up(src_h * scale))
    resized = _resample(image, (scaled_w, scaled_h))
    if (scaled_w, scaled_h) == (width, height):
        return resized
    left = (scaled_w - width) // 2
    top = (scaled_h - height) // 2
    return resized.crop((left, top, left + width, top + height))


def resize_to_width(image: Image.Image, width: int) -> Image.Image:
    """Resize to ``width`` keeping the aspect ratio."""
    if width < 1:
        raise RasterError(f"Invalid target width {width}")
    src_w, src_h = image.size
    try:
        height = max(1, round_half_up(src_h * width / src_w))
    except OverflowError as exc:
        raise RasterError(f"Target width {width} is too large") from exc
    return _resample(image, (width, height))


def solid_canvas(width: int, height: int, color: RGBA) -> Image.Image:
    _check_size(width, height)
    try:
        return Image.new("RGBA", (width, height), color)
    except (ValueError, MemoryError, OverflowError) as exc:
        raise RasterError(f"Could not allocate a {width}x{height} canvas: {exc}") from exc


def threshold(image: Image.Image, level: int = 128) -> Image.Image:
    """Greyscale the image, then snap every band (alpha included) to 0 or 255."""
    try:
        grey = image.convert("LA" if "A" in image.getbands() else "L")
        arr = np.asarray(grey, dtype=np.uint8)
        snapped = np.where(arr >= level, 255, 0).astype(np.uint8)
        return Image.fromarray(snapped)
    except (ValueError, MemoryError) as exc:
        raise RasterError(f"Threshold failed: {exc}") from exc


def negate(image: Image.Image) -> Image.Image:
    """Invert every band, alpha included."""
    try:
        arr = np.asarray(image, dtype=np.uint8)
        return Image.fromarray((255 - arr).astype(np.uint8))
    except (ValueError, MemoryError) as exc:
        raise RasterError(f"Negate failed: {exc}") from exc


def _to_float_rgba(image: Image.Image) -> np.ndarray:
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.asarray(image, dtype=np.float32) / 255.0


def _blend_region(dst: np.ndarray, src: np.ndarray, mode: BlendMode) -> np.ndarray:
    dc, da = dst[..., :3], dst[..., 3:4]
    sc, sa = src[..., :3], src[..., 3:4]

    if mode is BlendMode.OVER:
        ao = sa + da * (1.0 - sa)
        co = sc * sa + dc * da * (1.0 - sa)
    elif mode is BlendMode.DEST_IN:
        ao = da * sa
        co = dc * ao
    elif mode in (BlendMode.MULTIPLY, BlendMode.SCREEN, BlendMode.OVERLAY):
        if mode is BlendMode.MULTIPLY:
            mixed = sc * dc
        elif mode is BlendMode.SCREEN:
            mixed = sc + dc - sc * dc
        else:
            mixed = np.where(dc <= 0.5, 2.0 * sc * dc, 1.0 - 2.0 * (1.0 - sc) * (1.0 - dc))
        ao = sa + da - sa * da
        co = sc * sa * (1.0 - da) + dc * da * (1.0 - sa) + sa * da * mixed
    else:  # pragma: no cover - enum is exhaustive
        raise RasterError(f"Unsupported blend mode: {mode}")

    out = np.empty_like(dst)
    safe = np.where(ao > 0.0, ao, 1.0)
    out[..., :3] = np.where(ao > 0.0, co / safe, 0.0)
    out[..., 3:4] = ao
    return out


def composite(base: Image.Image, layers: Sequence[Layer]) -> Image.Image:
    """
    Composite ``layers`` bottom-to-top onto ``base`` and return a new RGBA image.

    Overlays may sit partially or fully outside the base; only the
    intersection is blended. For ``DEST_IN`` the uncovered part of the base
    becomes transparent.
    """
    try:
        canvas = _to_float_rgba(base).copy()
        height, width = canvas.shape[:2]
        for layer in layers:
            src = _to_float_rgba(layer.image)
            src_h, src_w = src.shape[:2]

            x0, y0 = max(layer.left, 0), max(layer.top, 0)
            x1 = min(layer.left + src_w, width)
            y1 = min(layer.top + src_h, height)

            if layer.blend is BlendMode.DEST_IN:
                covered = np.zeros((height, width), dtype=bool)
                if x1 > x0 and y1 > y0:
                    covered[y0:y1, x0:x1] = True
                canvas[~covered] = 0.0

            if x1 <= x0 or y1 <= y0:
                continue

            region = src[y0 - layer.top : y1 - layer.top, x0 - layer.left : x1 - layer.left]
            canvas[y0:y1, x0:x1] = _blend_region(canvas[y0:y1, x0:x1], region, layer.blend)

        pixels = np.clip(np.rint(canvas * 255.0), 0, 255).astype(np.uint8)
        return Image.fromarray(pixels)
    except (ValueError, MemoryError) as exc:
        raise RasterError(f"Composite failed: {exc}") from exc


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    if "A" in image.getbands():
        rgba = image.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, (0, 0, 0))
        flattened.paste(rgba, mask=rgba.getchannel("A"))
    else:
        flattened = image.convert("RGB")
    try:
        with io.BytesIO() as buffer:
            flattened.save(buffer, format="JPEG", quality=quality)
            return buffer.getvalue()
    except (OSError, ValueError) as exc:
        raise RasterError(f"JPEG encoding failed: {exc}") from exc


def encode_png(image: Image.Image) -> bytes:
    try:
        with io.BytesIO() as buffer:
            image.save(buffer, format="PNG")
            return buffer.getvalue()
    except (OSError, ValueError) as exc:
        raise RasterError(f"PNG encoding failed: {exc}") from exc
