"""
Tote bag mockup compositing.

The bag is tinted by stencilling a solid color canvas through the body and
handle masks, then the final image is flattened bottom-to-top:

    background -> tinted bag -> logo -> shadows (multiply) -> highlights (screen)

Shadows and highlights are applied after the logo so they shade it too.
"""

from __future__ import annotations

import logging
import time

from PIL import Image

from . import raster
from .assets import AssetSet
from .errors import CompositingFailure, InvalidLogoImage, RasterError
from .raster import BlendMode, Layer, round_half_up
from .types import LayoutParams, RenderRequest, RenderResult

logger = logging.getLogger(__name__)

HANDLES_THRESHOLD = 128


class MockupCompositor:
    """Turns a ``RenderRequest`` plus the tote ``AssetSet`` into an encoded JPEG."""

    def compose(self, request: RenderRequest, assets: AssetSet) -> RenderResult:
        tier = request.tier
        started = time.perf_counter()
        try:
            width, height = LayoutParams.canvas_size(assets.background.size, tier)

            clean_background = raster.resize_cover(assets.background, width, height)
            color_canvas = raster.solid_canvas(width, height, request.fill_color)
            colored_bag = self._tint_bag(color_canvas, assets, width, height)

            resized_logo = self._resize_logo(request)
            layout = LayoutParams.compute(assets.background.size, resized_logo.size, request)

            shadows = raster.resize_cover(assets.shadow, width, height)
            highlights = raster.resize_cover(assets.highlight, width, height)

            final_image = raster.composite(
                clean_background,
                [
                    Layer(colored_bag),
                    Layer(resized_logo, BlendMode.OVER, left=layout.logo_left, top=layout.logo_top),
                    Layer(shadows, BlendMode.MULTIPLY),
                    Layer(highlights, BlendMode.SCREEN),
                ],
            )
            image_bytes = raster.encode_jpeg(final_image, tier.jpeg_quality)
        except RasterError as exc:
            logger.error("Compositing the %s mockup failed", tier.value, exc_info=True)
            raise CompositingFailure(f"Compositing the {tier.value} mockup failed") from exc

        logger.info(
            "Composed %s mockup %dx%d (logo %dx%d at %d,%d) in %.2fs",
            tier.value,
            width,
            height,
            layout.logo_width,
            layout.logo_height,
            layout.logo_left,
            layout.logo_top,
            time.perf_counter() - started,
        )
        return RenderResult(
            image_bytes=image_bytes,
            width=width,
            height=height,
            tier=tier,
            layout=layout,
        )

    def compose_layout(self, request: RenderRequest, background_size: tuple[int, int]) -> LayoutParams:
        """Compute the placement a render would use, reading only the logo header."""
        try:
            logo_w, logo_h = raster.image_size(request.logo_image)
        except RasterError as exc:
            raise InvalidLogoImage(str(exc)) from exc
        target_width = request.scaled_logo_width
        try:
            target_height = max(1, round_half_up(logo_h * target_width / logo_w))
        except OverflowError as exc:
            raise CompositingFailure(f"Logo width {target_width} is too large") from exc
        return LayoutParams.compute(background_size, (target_width, target_height), request)

    @staticmethod
    def _tint_bag(
        color_canvas: Image.Image,
        assets: AssetSet,
        width: int,
        height: int,
    ) -> Image.Image:
        body_mask = raster.resize_cover(assets.body_mask, width, height)
        colored_body = raster.composite(color_canvas, [Layer(body_mask, BlendMode.DEST_IN)])

        # The handle art is drawn with the opposite polarity to the body mask.
        handles_mask = raster.resize_cover(assets.handles_mask, width, height)
        handles_stencil = raster.negate(raster.threshold(handles_mask, HANDLES_THRESHOLD))
        colored_handles = raster.composite(color_canvas, [Layer(handles_stencil, BlendMode.DEST_IN)])

        return raster.composite(colored_body, [Layer(colored_handles)])

    @staticmethod
    def _resize_logo(request: RenderRequest) -> Image.Image:
        try:
            logo = raster.decode(request.logo_image)
        except RasterError as exc:
            logger.warning("Rejected undecodable logo '%s': %s", request.logo_filename, exc)
            raise InvalidLogoImage(str(exc)) from exc
        return raster.resize_to_width(logo, request.scaled_logo_width)
