from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait

from .assets import AssetStore
from .clients import CloudinaryStore, LocalStore, Store
from .compositor import MockupCompositor
from .config import AppConfig
from .errors import PublishFailed
from .types import PublishResult, QualityTier, RenderRequest, RenderResult

logger = logging.getLogger(__name__)

MOCKUP_FILENAME = "mockup.jpg"


class RenderService:
    """Entry points for the generate, preview and finalize use-cases."""

    def __init__(
        self,
        assets: AssetStore,
        store: Store | None = None,
        compositor: MockupCompositor | None = None,
        max_upload_workers: int = 2,
    ) -> None:
        self._assets = assets
        self._store = store
        self._compositor = compositor or MockupCompositor()
        self._max_upload_workers = max(2, max_upload_workers)

    @classmethod
    def from_config(cls, config: AppConfig, local_store: bool = False) -> "RenderService":
        """Wire the asset store and an upload store from application config."""
        store: Store | None
        if local_store or not config.enable_cloudinary or config.cloudinary is None:
            folder = config.cloudinary.folder if config.cloudinary else "tote-bag-designs"
            store = LocalStore(config.output.root_dir, folder=folder)
        else:
            store = CloudinaryStore(config.cloudinary)
        return cls(assets=AssetStore.from_config(config.assets), store=store)

    @property
    def store(self) -> Store | None:
        return self._store

    def close(self) -> None:
        close = getattr(self._store, "close", None)
        if callable(close):
            close()

    def render(self, request: RenderRequest) -> RenderResult:
        """Render at the tier carried by ``request``."""
        logger.info("Rendering %s mockup for '%s'...", request.tier.value, request.logo_filename)
        started = time.perf_counter()
        assets = self._assets.load_set()
        result = self._compositor.compose(request, assets)
        logger.info(
            "Rendered %s mockup (%d bytes) in %.2fs",
            request.tier.value,
            len(result.image_bytes),
            time.perf_counter() - started,
        )
        return result

    def render_mockup(self, request: RenderRequest) -> bytes:
        return self.render(request.with_tier(QualityTier.FULL)).image_bytes

    def render_preview(self, request: RenderRequest) -> bytes:
        return self.render(request.with_tier(QualityTier.PREVIEW)).image_bytes

    def render_and_publish(self, request: RenderRequest, timeout: float | None = None) -> PublishResult:
        """
        Render the full-tier mockup, then upload it and the original logo concurrently.

        Both uploads must succeed; otherwise ``PublishFailed`` is raised and no
        URL is reported. A completed upload is not rolled back when the other
        one fails. ``timeout`` bounds the wait for the uploads.
        """
        if self._store is None:
            raise PublishFailed("No upload store is configured for publishing")

        request = request.with_tier(QualityTier.FULL)
        result = self.render(request)

        logger.info("Uploading final mockup and original logo...")
        executor = ThreadPoolExecutor(
            max_workers=self._max_upload_workers, thread_name_prefix="mockup-upload"
        )
        try:
            mockup_future = executor.submit(self._store.upload, result.image_bytes, MOCKUP_FILENAME)
            logo_future = executor.submit(self._store.upload, request.logo_image, request.logo_filename)
            _, pending = wait([mockup_future, logo_future], timeout=timeout)
            if pending:
                logger.error("Publishing timed out after %.1fs", timeout or 0.0)
                raise PublishFailed(f"Uploads did not finish within {timeout}s")
            for future in (mockup_future, logo_future):
                cause = future.exception()
                if cause is not None:
                    logger.error("Publishing failed: %s", cause, exc_info=cause)
                    raise PublishFailed(f"Upload failed: {cause}", cause=cause) from cause

            mockup_url = mockup_future.result()
            original_logo_url = logo_future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info("Uploads complete. Mockup URL: %s", mockup_url)
        return PublishResult(
            mockup_url=mockup_url,
            original_logo_url=original_logo_url,
            config=request.config(),
        )

    def __enter__(self) -> "RenderService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()
