from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping

from PIL import Image

from .config import AssetConfig
from .errors import AssetMissing, RasterError
from .raster import open_path

logger = logging.getLogger(__name__)


class AssetName(str, Enum):
    BACKGROUND = "background"
    BODY_MASK = "body_mask"
    HANDLES_MASK = "handles_mask"
    SHADOW = "shadow"
    HIGHLIGHT = "highlight"


@dataclass(frozen=True, slots=True)
class AssetSet:
    """The five decoded layers a tote bag mockup is built from."""

    background: Image.Image
    body_mask: Image.Image
    handles_mask: Image.Image
    shadow: Image.Image
    highlight: Image.Image


class AssetStore:
    """
    Read-only access to the deployment-time tote bag art.

    Assets are addressed by ``AssetName``; file names come from ``AssetConfig``.
    With ``cache=True`` decoded images are kept for the process lifetime and
    handed out as copies.
    """

    def __init__(
        self,
        root_dir: Path,
        filenames: Mapping[AssetName, str],
        cache: bool = False,
    ) -> None:
        missing = [name.value for name in AssetName if name not in filenames]
        if missing:
            raise ValueError(f"No file name configured for assets: {', '.join(missing)}")
        self._root_dir = Path(root_dir)
        self._filenames = dict(filenames)
        self._cache_enabled = cache
        self._cache: Dict[AssetName, Image.Image] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AssetConfig) -> "AssetStore":
        return cls(
            root_dir=config.root_dir,
            filenames={
                AssetName.BACKGROUND: config.background,
                AssetName.BODY_MASK: config.body_mask,
                AssetName.HANDLES_MASK: config.handles_mask,
                AssetName.SHADOW: config.shadow,
                AssetName.HIGHLIGHT: config.highlight,
            },
            cache=config.cache,
        )

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def path_for(self, name: AssetName) -> Path:
        return self._root_dir / self._filenames[name]

    def load(self, name: AssetName) -> Image.Image:
        """Decode a single asset, raising ``AssetMissing`` if absent or unreadable."""
        if self._cache_enabled:
            with self._lock:
                cached = self._cache.get(name)
            if cached is not None:
                return cached.copy()

        path = self.path_for(name)
        if not path.is_file():
            logger.error("Asset '%s' not found at %s", name.value, path)
            raise AssetMissing(name.value, path, "file not found")
        try:
            image = open_path(path)
        except RasterError as exc:
            logger.error("Asset '%s' at %s could not be decoded: %s", name.value, path, exc)
            raise AssetMissing(name.value, path, "undecodable") from exc

        if self._cache_enabled:
            with self._lock:
                self._cache.setdefault(name, image)
            return image.copy()
        return image

    def load_set(self) -> AssetSet:
        return AssetSet(
            background=self.load(AssetName.BACKGROUND),
            body_mask=self.load(AssetName.BODY_MASK),
            handles_mask=self.load(AssetName.HANDLES_MASK),
            shadow=self.load(AssetName.SHADOW),
            highlight=self.load(AssetName.HIGHLIGHT),
        )

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
