from __future__ import annotations

import logging
from pathlib import Path, PurePath

from ..errors import UploadFailed
from .store import make_public_id

logger = logging.getLogger(__name__)


class LocalStore:
    """Store implementation that writes uploads under a local directory."""

    def __init__(self, root_dir: Path, folder: str = "tote-bag-designs") -> None:
        self._base_dir = Path(root_dir) / folder

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def upload(self, data: bytes, suggested_name: str) -> str:
        suffix = PurePath(suggested_name.replace("\\", "/")).suffix.lower() or ".bin"
        target = self._base_dir / f"{make_public_id(suggested_name)}{suffix}"
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("Could not write upload %s: %s", target, exc)
            raise UploadFailed(f"Could not write {target}", cause=exc) from exc
        logger.info("Stored %s (%d bytes)", target, len(data))
        return target.resolve().as_uri()
