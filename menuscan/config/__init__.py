"""
Configuration package for the menu scan backend.
"""

from .settings import (
    Settings,
    Environment,
    LogLevel,
    ModelApiSettings,
    RetrySettings,
    ConcurrencySettings,
    IntakeSettings,
    DishImageCacheSettings,
    RedisSettings,
    SecuritySettings,
    settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "Environment",
    "LogLevel",
    "ModelApiSettings",
    "RetrySettings",
    "ConcurrencySettings",
    "IntakeSettings",
    "DishImageCacheSettings",
    "RedisSettings",
    "SecuritySettings",
    "settings",
    "get_settings",
    "reload_settings",
]
