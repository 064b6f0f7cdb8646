"""
Data models for the menu scan backend.
"""

from .menu import ExtractedMenu, MenuCategory, MenuItem
from .api_models import (
    SupportedLanguage,
    ApiResponse,
    ErrorResponse,
    DishImageRequest,
    DishImageData,
    TranslateMenuRequest,
)
from .internal_models import (
    IntakePayload,
    ModelRequest,
    PriceInfo,
    CacheStatus,
    DishImageCacheEntry,
    CacheStats,
)

__all__ = [
    "ExtractedMenu",
    "MenuCategory",
    "MenuItem",
    "SupportedLanguage",
    "ApiResponse",
    "ErrorResponse",
    "DishImageRequest",
    "DishImageData",
    "TranslateMenuRequest",
    "IntakePayload",
    "ModelRequest",
    "PriceInfo",
    "CacheStatus",
    "DishImageCacheEntry",
    "CacheStats",
]
