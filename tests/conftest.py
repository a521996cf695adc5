"""
Shared fixtures for all tests.

The asset fixtures synthesise a tiny tote bag: a grey 5:2 background, a
rectangular body mask, a handle sheet that is opaque everywhere except the
two handle strips, and fully transparent shadow/highlight layers so pixel
checks are not disturbed unless a test swaps them out.
"""
from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import List, Tuple

import numpy as np
import pytest
from PIL import Image

from tote_mockup.assets import AssetName, AssetStore
from tote_mockup.config import AssetConfig
from tote_mockup.errors import UploadFailed
from tote_mockup.service import RenderService

BACKGROUND_SIZE = (400, 160)
BACKGROUND_COLOR = (200, 200, 200)
BODY_BOX = (120, 40, 280, 150)
HANDLE_BOXES = ((150, 10, 170, 40), (230, 10, 250, 40))


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def decode_rgb(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as image:
        return np.asarray(image.convert("RGB"), dtype=np.int32)


def red_bbox(pixels: np.ndarray) -> Tuple[int, int, int, int]:
    """Bounding box (left, top, right, bottom) of strongly red pixels."""
    mask = (pixels[..., 0] > 200) & (pixels[..., 1] < 60) & (pixels[..., 2] < 60)
    ys, xs = np.nonzero(mask)
    return int(xs.min()), int(ys.min()), int(xs.max()) + 1, int(ys.max()) + 1


def write_assets(root: Path, shadow: Image.Image | None = None, highlight: Image.Image | None = None) -> None:
    width, height = BACKGROUND_SIZE
    root.mkdir(parents=True, exist_ok=True)
    config = AssetConfig(root_dir=root)

    Image.new("RGB", BACKGROUND_SIZE, BACKGROUND_COLOR).save(root / config.background)

    body = np.zeros((height, width, 4), dtype=np.uint8)
    x0, y0, x1, y1 = BODY_BOX
    body[y0:y1, x0:x1] = (255, 255, 255, 255)
    Image.fromarray(body).save(root / config.body_mask)

    handles = np.full((height, width, 4), 255, dtype=np.uint8)
    for hx0, hy0, hx1, hy1 in HANDLE_BOXES:
        handles[hy0:hy1, hx0:hx1] = (0, 0, 0, 0)
    Image.fromarray(handles).save(root / config.handles_mask)

    transparent = Image.new("RGBA", BACKGROUND_SIZE, (0, 0, 0, 0))
    (shadow or transparent).save(root / config.shadow)
    (highlight or transparent).save(root / config.highlight)


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    root = tmp_path / "assets"
    write_assets(root)
    return root


@pytest.fixture
def asset_store(assets_dir: Path) -> AssetStore:
    return AssetStore.from_config(AssetConfig(root_dir=assets_dir))


@pytest.fixture
def asset_set(asset_store: AssetStore):
    return asset_store.load_set()


@pytest.fixture(scope="session")
def logo_bytes() -> bytes:
    """A 100x50 solid red logo."""
    return png_bytes(Image.new("RGBA", (100, 50), (255, 0, 0, 255)))


class RecordingStore:
    """In-memory Store that records every upload."""

    def __init__(self, fail_on: str | None = None, barrier: threading.Barrier | None = None) -> None:
        self.fail_on = fail_on
        self.barrier = barrier
        self.calls: List[Tuple[bytes, str]] = []
        self._lock = threading.Lock()

    def upload(self, data: bytes, suggested_name: str) -> str:
        with self._lock:
            self.calls.append((data, suggested_name))
            index = len(self.calls)
        if self.barrier is not None:
            self.barrier.wait()
        if self.fail_on is not None and suggested_name == self.fail_on:
            raise UploadFailed(f"refusing {suggested_name}")
        return f"https://cdn.example.com/tote-bag-designs/{index}-{suggested_name}"


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def service(asset_store: AssetStore, recording_store: RecordingStore) -> RenderService:
    return RenderService(assets=asset_store, store=recording_store)


def asset_filenames() -> dict:
    config = AssetConfig()
    return {
        AssetName.BACKGROUND: config.background,
        AssetName.BODY_MASK: config.body_mask,
        AssetName.HANDLES_MASK: config.handles_mask,
        AssetName.SHADOW: config.shadow,
        AssetName.HIGHLIGHT: config.highlight,
    }
