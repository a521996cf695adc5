from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class AssetConfig(BaseModel):
    """Location and file names of the fixed tote bag art."""

    root_dir: Path = Field(default_factory=lambda: Path("assets"))
    background: str = Field(default="background.png")
    body_mask: str = Field(default="bag-body-shape.png.png")
    handles_mask: str = Field(default="handles-shape.png.png")
    shadow: str = Field(default="tote-shadows.png.png")
    highlight: str = Field(default="tote-highlights.png.png")
    cache: bool = Field(
        default=False,
        description="Keep decoded assets in memory between render calls",
    )


class CloudinaryConfig(BaseModel):
    """Settings required to upload mockups to Cloudinary."""

    cloud_name: str = Field(..., description="Cloudinary cloud name")
    api_key: str = Field(..., description="Cloudinary API key")
    api_secret: str = Field(..., description="Cloudinary API secret used to sign uploads")
    api_base_url: str = Field(
        default="https://api.cloudinary.com",
        description="Base URL of the Cloudinary upload API",
    )
    folder: str = Field(
        default="tote-bag-designs",
        description="Folder that groups every upload in the media library",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Per-request timeout for upload calls",
    )
    upload_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Total attempts per upload; 1 disables automatic retries",
    )


class OutputConfig(BaseModel):
    """Configuration for locally stored artifacts."""

    root_dir: Path = Field(default_factory=lambda: Path("output"))


class AppConfig(BaseModel):
    """Top-level configuration object consumed by the render service and CLI."""

    assets: AssetConfig = Field(default_factory=AssetConfig)
    cloudinary: CloudinaryConfig | None = None
    output: OutputConfig = Field(default_factory=OutputConfig)
    enable_cloudinary: bool = Field(
        default=True,
        description="Publish finalized mockups to Cloudinary",
    )
    texture_cache_size: int = Field(
        default=64,
        ge=1,
        description="Maximum number of procedural textures kept in memory",
    )

    @model_validator(mode="after")
    def _validate_store(self) -> "AppConfig":
        if self.enable_cloudinary and self.cloudinary is None:
            raise ValueError("Cloudinary configuration is required when enable_cloudinary is True")
        return self


def _bool_from_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _float_from_env(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid float value: {value}") from exc


def _int_from_env(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value: {value}") from exc


def load_config(
    dotenv_path: str | Path | None = None,
    enable_cloudinary: bool | None = None,
) -> AppConfig:
    """
    Load configuration from environment variables (optionally seeded by a .env file).

    Parameters
    ----------
    dotenv_path:
        Optional override for the .env file location. Defaults to ``.env`` in the
        working directory.
    enable_cloudinary:
        Overrides ``ENABLE_CLOUDINARY``; pass ``False`` when no uploads will happen.

    Raises
    ------
    RuntimeError
        If required configuration values are missing or malformed.
    """
    env_path = Path(dotenv_path) if dotenv_path else Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    if enable_cloudinary is None:
        enable_cloudinary = _bool_from_env(os.getenv("ENABLE_CLOUDINARY"), True)

    cloudinary_data: dict[str, object] | None
    if enable_cloudinary:
        cloudinary_data = {
            "cloud_name": os.getenv("CLOUDINARY_CLOUD_NAME"),
            "api_key": os.getenv("CLOUDINARY_API_KEY"),
            "api_secret": os.getenv("CLOUDINARY_API_SECRET"),
            "api_base_url": os.getenv("CLOUDINARY_API_BASE_URL", "https://api.cloudinary.com"),
            "folder": os.getenv("CLOUDINARY_FOLDER", "tote-bag-designs"),
            "timeout_seconds": _float_from_env(os.getenv("CLOUDINARY_TIMEOUT"), 60.0),
            "upload_attempts": _int_from_env(os.getenv("CLOUDINARY_UPLOAD_ATTEMPTS"), 1),
        }
        logger.info("Cloudinary cloud name: %s", cloudinary_data["cloud_name"] or "NOT LOADED")
        logger.info("Cloudinary API key: %s", "Loaded" if cloudinary_data["api_key"] else "NOT LOADED")
        logger.info(
            "Cloudinary API secret: %s", "Loaded" if cloudinary_data["api_secret"] else "NOT LOADED"
        )
    else:
        cloudinary_data = None

    data = {
        "assets": {
            "root_dir": Path(os.getenv("MOCKUP_ASSETS_DIR", "assets")),
            "cache": _bool_from_env(os.getenv("MOCKUP_CACHE_ASSETS"), False),
        },
        "cloudinary": cloudinary_data,
        "output": {
            "root_dir": Path(os.getenv("OUTPUT_ROOT_DIR", "output")),
        },
        "enable_cloudinary": enable_cloudinary,
        "texture_cache_size": _int_from_env(os.getenv("TEXTURE_CACHE_SIZE"), 64),
    }

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        invalid = {"/".join(str(part) for part in err["loc"]) or err["msg"] for err in exc.errors()}
        invalid_str = ", ".join(sorted(invalid))
        raise RuntimeError(f"Missing or invalid configuration values: {invalid_str}") from exc
