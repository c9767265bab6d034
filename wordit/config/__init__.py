"""Configuration module for WordIt."""

from wordit.config.settings import (
    CacheConfig,
    DocumentConfig,
    ImageConfig,
    SecurityConfig,
    WorditSettings,
    get_settings,
    reload_settings,
)

__all__ = [
    "WorditSettings",
    "ImageConfig",
    "SecurityConfig",
    "CacheConfig",
    "DocumentConfig",
    "get_settings",
    "reload_settings",
]
