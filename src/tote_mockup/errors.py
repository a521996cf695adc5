from __future__ import annotations

from pathlib import Path


class MockupError(Exception):
    """Base class for every failure raised by a render or publish call."""

    is_client_error = False
    public_message = "An error occurred during image processing."


class ClientInputError(MockupError):
    """The caller supplied an unusable request (e.g. no logo file)."""

    is_client_error = True
    public_message = "No logo file was uploaded."


class InvalidLogoImage(ClientInputError):
    """The uploaded logo bytes could not be decoded as an image."""

    public_message = "The uploaded logo could not be read as an image."


class AssetMissing(MockupError):
    """A deployment-time raster asset is absent or corrupt."""

    def __init__(self, name: str, path: Path, reason: str | None = None) -> None:
        self.name = name
        self.path = path
        detail = f": {reason}" if reason else ""
        super().__init__(f"Asset '{name}' unavailable at {path}{detail}")


class CompositingFailure(MockupError):
    """A raster operation failed during resize, composite or encode."""


class UploadFailed(MockupError):
    """The remote store rejected or failed to receive an upload."""

    public_message = "An error occurred while preparing your design for the cart."

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class PublishFailed(UploadFailed):
    """At least one upload of a publish call failed; no URLs are reported."""


class RasterError(Exception):
    """Raised by the raster engine when the imaging library fails."""
