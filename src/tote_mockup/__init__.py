"""
Tote bag mockup rendering and publishing toolkit.
"""
from .config import load_config
from .service import RenderService
from .types import QualityTier, RenderRequest

__all__ = ["load_config", "RenderService", "QualityTier", "RenderRequest"]
