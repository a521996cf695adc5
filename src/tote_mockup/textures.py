"""
Procedural fabric textures and logo effects.

None of these are part of the generate/preview/finalize renders; they are kept
as standalone helpers (reachable from the CLI ``texture`` command) for future
fabric-aware mockups. Textures are pure functions of their parameters, so the
cache tolerates concurrent misses regenerating the same entry.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Literal

import numpy as np
from PIL import Image, ImageEnhance, ImageFilter

from . import raster
from .errors import RasterError
from .raster import BlendMode, Layer

logger = logging.getLogger(__name__)

TextureType = Literal["canvas", "cotton"]

WEAVE_TILE_SIZE = 20
NOISE_TILE_SIZE = 100
NOISE_SEED = 9
EMBOSS_KERNEL = (-2, -1, 0, -1, 1, 1, 0, 1, 2)


@dataclass(frozen=True, slots=True)
class TextureKey:
    width: int
    height: int
    color: str
    texture_type: str


class TextureCache:
    """Bounded LRU of encoded textures, safe for concurrent use."""

    def __init__(self, max_entries: int = 64) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: OrderedDict[TextureKey, bytes] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get_or_create(self, key: TextureKey, generator: Callable[[], bytes]) -> bytes:
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                return cached

        value = generator()

        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted texture %s", evicted)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


def _tile(tile: Image.Image, width: int, height: int) -> Image.Image:
    arr = np.asarray(tile.convert("RGBA"), dtype=np.uint8)
    reps_y = -(-height // arr.shape[0])
    reps_x = -(-width // arr.shape[1])
    tiled = np.tile(arr, (reps_y, reps_x, 1))[:height, :width]
    return Image.fromarray(np.ascontiguousarray(tiled))


def _weave_tile() -> Image.Image:
    cell = np.zeros((4, 4, 4), dtype=np.uint8)
    cell[0:2, 0:2] = (255, 255, 255, 26)
    cell[2:4, 2:4] = (0, 0, 0, 13)
    reps = WEAVE_TILE_SIZE // 4
    return Image.fromarray(np.tile(cell, (reps, reps, 1)))


def _noise_tile() -> Image.Image:
    rng = np.random.default_rng(NOISE_SEED)
    grey = rng.integers(0, 256, size=(NOISE_TILE_SIZE, NOISE_TILE_SIZE), dtype=np.uint8)
    alpha = np.full_like(grey, 26)
    return Image.fromarray(np.dstack([grey, grey, grey, alpha]))


def _render_fabric(width: int, height: int, color: str, texture_type: str) -> bytes:
    try:
        base = raster.solid_canvas(width, height, raster.parse_color(color))
    except ValueError as exc:
        raise RasterError(f"Invalid texture color {color!r}") from exc

    if texture_type == "canvas":
        layer = Layer(_tile(_weave_tile(), width, height), BlendMode.MULTIPLY)
    else:
        layer = Layer(_tile(_noise_tile(), width, height), BlendMode.OVERLAY)
    return raster.encode_png(raster.composite(base, [layer]))


def generate_fabric_texture(
    width: int,
    height: int,
    color: str,
    texture_type: TextureType = "canvas",
    cache: TextureCache | None = None,
) -> bytes:
    """Return a PNG of ``color`` with a woven canvas or cotton-noise surface."""
    if texture_type not in ("canvas", "cotton"):
        raise ValueError(f"Unknown texture type: {texture_type}")
    if width < 1 or height < 1:
        raise ValueError(f"Invalid texture size {width}x{height}")

    def generate() -> bytes:
        return _render_fabric(width, height, color, texture_type)

    if cache is None:
        return generate()
    return cache.get_or_create(TextureKey(width, height, color, texture_type), generate)


def generate_dynamic_lighting(
    width: int,
    height: int,
    logo_x: float,
    logo_y: float,
    logo_width: float,
    logo_height: float,
) -> bytes:
    """Radial light falloff centred on the logo, as a translucent PNG overlay."""
    cx = logo_x + logo_width / 2
    cy = logo_y + logo_height / 2
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32)
    distance = np.sqrt(((xs - cx) / (0.8 * width)) ** 2 + ((ys - cy) / (0.8 * height)) ** 2)
    t = np.clip(distance, 0.0, 1.0)

    stops = np.array([0.0, 0.5, 1.0], dtype=np.float32)
    colors = np.array(
        [
            (255.0, 255.0, 255.0, 0.3 * 255),
            (255.0, 255.0, 255.0, 0.1 * 255),
            (0.0, 0.0, 0.0, 0.1 * 255),
        ],
        dtype=np.float32,
    )
    channels = [np.interp(t, stops, colors[:, band]) for band in range(4)]
    pixels = np.clip(np.rint(np.stack(channels, axis=-1)), 0, 255).astype(np.uint8)
    return raster.encode_png(Image.fromarray(pixels))


def apply_fabric_distortion(logo_bytes: bytes, intensity: float = 0.1) -> bytes:
    """Slightly lift brightness and saturation, as ink soaks into fabric."""
    logo = raster.decode(logo_bytes)
    alpha = logo.getchannel("A")
    rgb = logo.convert("RGB")
    rgb = ImageEnhance.Brightness(rgb).enhance(1 + intensity * 0.1)
    rgb = ImageEnhance.Color(rgb).enhance(1 + intensity * 0.2)
    rgb.putalpha(alpha)
    return raster.encode_png(rgb)


def generate_embossed_effect(logo_bytes: bytes) -> bytes:
    """Overlay an emboss-filtered copy of the logo onto itself."""
    logo = raster.decode(logo_bytes)
    embossed = logo.convert("RGB").filter(ImageFilter.Kernel((3, 3), EMBOSS_KERNEL, scale=1))
    embossed.putalpha(logo.getchannel("A"))
    return raster.encode_png(raster.composite(logo, [Layer(embossed, BlendMode.OVERLAY)]))

