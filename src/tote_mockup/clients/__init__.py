"""
Upload adapters for publishing finalized mockups.
"""
from .cloudinary import CloudinaryStore
from .local import LocalStore
from .store import Store, make_public_id

__all__ = ["CloudinaryStore", "LocalStore", "Store", "make_public_id"]
