from __future__ import annotations

import secrets
import time
from pathlib import PurePath
from typing import Protocol, runtime_checkable


@runtime_checkable
class Store(Protocol):
    """Capability to persist bytes remotely and hand back a public URL."""

    def upload(self, data: bytes, suggested_name: str) -> str:
        ...


def _slugify(text: str) -> str:
    slug = "".join(ch.lower() if ch.isalnum() or ch in "-_" else "-" for ch in text)
    while "--" in slug:
        slug = slug.replace("--", "-")
    return slug.strip("-") or "upload"


def make_public_id(suggested_name: str) -> str:
    """
    Build a unique storage identifier from the current time and the file stem.

    The random suffix keeps two uploads of the same name within one
    millisecond from overwriting each other.
    """
    stem = PurePath(suggested_name.replace("\\", "/")).stem
    return f"{int(time.time() * 1000)}-{_slugify(stem)}-{secrets.token_hex(3)}"
