from __future__ import annotations

import hashlib
import logging
import mimetypes
import time
from pathlib import PurePath
from typing import Any, Dict, Mapping

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import CloudinaryConfig
from ..errors import UploadFailed
from .store import make_public_id

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


def sign_params(params: Mapping[str, Any], api_secret: str) -> str:
    """SHA-1 signature over the alphabetically sorted ``key=value`` pairs plus the secret."""
    payload = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{payload}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryStore:
    """Client for signed image uploads to the Cloudinary upload API."""

    def __init__(
        self,
        config: CloudinaryConfig,
        transport: httpx.BaseTransport | None = None,
        retry_wait: Any = None,
    ) -> None:
        self._config = config
        self._retry_wait = retry_wait or wait_exponential(multiplier=2, min=1, max=20)
        self._session = httpx.Client(
            base_url=config.api_base_url.rstrip("/") + "/",
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
        )
        self._upload_path = f"v1_1/{config.cloud_name}/image/upload"

    def close(self) -> None:
        self._session.close()

    def _signed_fields(self, public_id: str) -> Dict[str, str]:
        params = {
            "folder": self._config.folder,
            "public_id": public_id,
            "timestamp": str(int(time.time())),
        }
        fields = dict(params)
        fields["api_key"] = self._config.api_key
        fields["signature"] = sign_params(params, self._config.api_secret)
        return fields

    def _post(self, fields: Dict[str, str], filename: str, data: bytes) -> Dict[str, Any]:
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        response = self._session.post(
            self._upload_path,
            data=fields,
            files=[("file", (filename, data, content_type))],
        )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = ""
            try:
                detail = (exc.response.json().get("error") or {}).get("message", "")
            except ValueError:
                detail = exc.response.text[:200]
            logger.warning(
                "Cloudinary rejected upload (%s): %s", exc.response.status_code, detail or "no detail"
            )
            raise
        return response.json()

    def upload(self, data: bytes, suggested_name: str) -> str:
        """Upload ``data`` under a fresh public id and return its ``secure_url``."""
        public_id = make_public_id(suggested_name)
        fields = self._signed_fields(public_id)
        filename = PurePath(suggested_name.replace("\\", "/")).name or "upload"

        retrying = Retrying(
            stop=stop_after_attempt(self._config.upload_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    body = self._post(fields, filename, data)
        except httpx.HTTPError as exc:
            raise UploadFailed(f"Upload of '{suggested_name}' failed: {exc}", cause=exc) from exc
        except ValueError as exc:
            raise UploadFailed(f"Upload of '{suggested_name}' returned invalid JSON", cause=exc) from exc

        secure_url = body.get("secure_url") if isinstance(body, dict) else None
        if not secure_url:
            raise UploadFailed(f"Cloudinary response for '{suggested_name}' did not include secure_url")

        logger.info("Uploaded %s to %s/%s", suggested_name, self._config.folder, public_id)
        return secure_url

    def __enter__(self) -> "CloudinaryStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()
