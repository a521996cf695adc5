from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ClientInputError
from .raster import RGBA, parse_color, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#FFFFFF"
DEFAULT_LOGO_X = 0.0
DEFAULT_LOGO_Y = 175.0
DEFAULT_LOGO_WIDTH = 450
DEFAULT_LOGO_FILENAME = "logo.png"

ColorValue = Union[str, Dict[str, Any]]


@dataclass(frozen=True, slots=True)
class TierSettings:
    final_image_width: int
    scale: float
    jpeg_quality: int


class QualityTier(str, Enum):
    """Output preset: full-resolution mockup or cheap UI preview."""

    FULL = "full"
    PREVIEW = "preview"

    @property
    def settings(self) -> TierSettings:
        return _TIER_SETTINGS[self]

    @property
    def final_image_width(self) -> int:
        return self.settings.final_image_width

    @property
    def scale(self) -> float:
        return self.settings.scale

    @property
    def jpeg_quality(self) -> int:
        return self.settings.jpeg_quality


_TIER_SETTINGS: Dict[QualityTier, TierSettings] = {
    QualityTier.FULL: TierSettings(final_image_width=2000, scale=1.0, jpeg_quality=95),
    QualityTier.PREVIEW: TierSettings(final_image_width=800, scale=0.4, jpeg_quality=70),
}


def _finite_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _echo_number(value: float) -> float | int:
    return int(value) if value.is_integer() else value


class RenderRequest(BaseModel):
    """
    One mockup render: the customer logo plus color and placement parameters.

    Field values are coerced while validating, so a constructed request always
    holds the values that will actually be rendered (and echoed back).
    """

    model_config = ConfigDict(frozen=True)

    logo_image: bytes = Field(..., repr=False, description="Encoded logo exactly as uploaded")
    logo_filename: str = Field(default=DEFAULT_LOGO_FILENAME)
    color: ColorValue = Field(default=DEFAULT_COLOR, description="Hex/CSS color or RGBA mapping")
    logo_x: float = Field(default=DEFAULT_LOGO_X, description="Horizontal offset from centre")
    logo_y: float = Field(default=DEFAULT_LOGO_Y, description="Vertical offset from centre")
    logo_width: int = Field(default=DEFAULT_LOGO_WIDTH, description="Logo width at full tier")
    tier: QualityTier = Field(default=QualityTier.FULL)

    @field_validator("logo_image", mode="before")
    @classmethod
    def _require_logo(cls, value: Any) -> Any:
        if not value:
            raise ClientInputError("No logo file was uploaded.")
        return value

    @field_validator("logo_filename", mode="before")
    @classmethod
    def _default_filename(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_LOGO_FILENAME
        return value.strip()

    @field_validator("color", mode="before")
    @classmethod
    def _coerce_color(cls, value: Any) -> ColorValue:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_COLOR
        try:
            parse_color(value)
        except ValueError:
            logger.warning("Unrecognised color %r; falling back to %s", value, DEFAULT_COLOR)
            return DEFAULT_COLOR
        if isinstance(value, Mapping):
            return dict(value)
        return value.strip()

    @field_validator("logo_x", mode="before")
    @classmethod
    def _coerce_logo_x(cls, value: Any) -> float:
        number = _finite_float(value)
        return DEFAULT_LOGO_X if number is None else number

    @field_validator("logo_y", mode="before")
    @classmethod
    def _coerce_logo_y(cls, value: Any) -> float:
        number = _finite_float(value)
        return DEFAULT_LOGO_Y if number is None else number

    @field_validator("logo_width", mode="before")
    @classmethod
    def _coerce_logo_width(cls, value: Any) -> int:
        number = _finite_float(value)
        if number is None or int(number) <= 0:
            return DEFAULT_LOGO_WIDTH
        return int(number)

    @classmethod
    def from_form(
        cls,
        fields: Mapping[str, Any],
        logo_image: bytes | None,
        logo_filename: str | None = None,
        tier: QualityTier = QualityTier.FULL,
    ) -> "RenderRequest":
        """Build a request from raw form fields (``color``, ``logoX``, ``logoY``, ``logoWidth``)."""
        if not logo_image:
            raise ClientInputError("No logo file was uploaded.")
        return cls(
            logo_image=logo_image,
            logo_filename=logo_filename,
            color=fields.get("color"),
            logo_x=fields.get("logoX"),
            logo_y=fields.get("logoY"),
            logo_width=fields.get("logoWidth"),
            tier=tier,
        )

    def with_tier(self, tier: QualityTier) -> "RenderRequest":
        if tier is self.tier:
            return self
        return self.model_copy(update={"tier": tier})

    @property
    def fill_color(self) -> RGBA:
        """The bag tint at full opacity."""
        r, g, b, _ = parse_color(self.color)
        return (r, g, b, 255)

    @property
    def scaled_logo_width(self) -> int:
        return max(1, round_half_up(self.logo_width * self.tier.scale))

    @property
    def scaled_offset_x(self) -> int:
        return round_half_up(self.logo_x * self.tier.scale)

    @property
    def scaled_offset_y(self) -> int:
        return round_half_up(self.logo_y * self.tier.scale)

    def config(self) -> Dict[str, Any]:
        """The accepted configuration, echoed back to the storefront."""
        return {
            "color": self.color,
            "logoX": _echo_number(self.logo_x),
            "logoY": _echo_number(self.logo_y),
            "logoWidth": self.logo_width,
        }


@dataclass(frozen=True, slots=True)
class LayoutParams:
    """Canvas size and logo placement for a single render."""

    canvas_width: int
    canvas_height: int
    logo_width: int
    logo_height: int
    logo_left: int
    logo_top: int

    @staticmethod
    def canvas_size(background_size: Tuple[int, int], tier: QualityTier) -> Tuple[int, int]:
        """Tier width and the height that keeps the background's aspect ratio."""
        bg_width, bg_height = background_size
        width = tier.final_image_width
        return width, max(1, round_half_up(bg_height * width / bg_width))

    @classmethod
    def compute(
        cls,
        background_size: Tuple[int, int],
        resized_logo_size: Tuple[int, int],
        request: RenderRequest,
    ) -> "LayoutParams":
        """
        Place the already-resized logo relative to the centre of the resized canvas.

        Both sizes must be post-resize values; offsets are the tier-scaled ones.
        """
        canvas_width, canvas_height = cls.canvas_size(background_size, request.tier)
        logo_width, logo_height = resized_logo_size
        left = round_half_up(canvas_width / 2 - logo_width / 2 + request.scaled_offset_x)
        top = round_half_up(canvas_height / 2 - logo_height / 2 + request.scaled_offset_y)
        return cls(
            canvas_width=canvas_width,
            canvas_height=canvas_height,
            logo_width=logo_width,
            logo_height=logo_height,
            logo_left=left,
            logo_top=top,
        )


@dataclass(slots=True)
class RenderResult:
    """Encoded mockup produced by the compositor."""

    image_bytes: bytes
    width: int
    height: int
    tier: QualityTier
    layout: LayoutParams
    content_type: str = "image/jpeg"


@dataclass(slots=True)
class PublishResult:
    """URLs of the published mockup and logo plus the accepted config."""

    mockup_url: str
    original_logo_url: str
    config: Mapping[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mockupUrl": self.mockup_url,
            "originalLogoUrl": self.original_logo_url,
            "config": dict(self.config),
        }
