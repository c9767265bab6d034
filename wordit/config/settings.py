"""Configuration settings using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from wordit.config.constants import (
    DEFAULT_ALLOWED_SCHEMES,
    DEFAULT_CACHE_DIR,
    DEFAULT_CODE_FONT,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DOCUMENT_AUTHOR,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_GENERATION_TIMEOUT,
    DEFAULT_IMAGE_CACHE_TTL,
    DEFAULT_IMAGE_HEIGHT_PX,
    DEFAULT_IMAGE_WIDTH_PX,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_LARGE_FILE_THRESHOLD,
    DEFAULT_LOCK_MAX_WAIT,
    DEFAULT_LOCK_MIN_WAIT,
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_STALE_SECONDS,
    DEFAULT_LOG_DIR,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_IMAGE_DIMENSION,
    DEFAULT_MAX_IMAGE_HEIGHT_IN,
    DEFAULT_MAX_IMAGE_WIDTH_IN,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from wordit.exceptions import ConfigurationError


class ImageConfig(BaseModel):
    """Image resolution configuration."""

    max_dimension: int = Field(default=DEFAULT_MAX_IMAGE_DIMENSION, ge=1)
    jpeg_quality: int = Field(default=DEFAULT_JPEG_QUALITY, ge=0, le=100)
    large_file_threshold: int = Field(default=DEFAULT_LARGE_FILE_THRESHOLD, ge=0)
    fetch_timeout: float = Field(default=DEFAULT_FETCH_TIMEOUT, gt=0)

    # Retry policy for the fetch collaborator
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1, le=10)
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, ge=0)
    retry_max_delay: float = Field(default=DEFAULT_RETRY_MAX_DELAY, ge=0)

    # Placement bounds inside the page
    max_width_inches: float = Field(default=DEFAULT_MAX_IMAGE_WIDTH_IN, gt=0)
    max_height_inches: float = Field(default=DEFAULT_MAX_IMAGE_HEIGHT_IN, gt=0)

    assets_dir: str | None = None  # Local asset root checked before remote fetch

    # Bounded cross-request cache (0 = per-generation only)
    cache_entries: int = Field(default=0, ge=0)
    cache_ttl_seconds: int = Field(default=DEFAULT_IMAGE_CACHE_TTL, ge=1)


class SecurityConfig(BaseModel):
    """Image URL validation configuration."""

    allowed_schemes: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_SCHEMES))
    allowed_hosts: list[str] | None = None  # None allows any host not blocked
    blocked_hosts: list[str] = Field(default_factory=list)
    block_private_networks: bool = True


class CacheConfig(BaseModel):
    """Artifact cache configuration."""

    directory: str = DEFAULT_CACHE_DIR
    policy: Literal["existence", "content_hash"] = "existence"
    lock_stale_seconds: float = Field(default=DEFAULT_LOCK_STALE_SECONDS, gt=0)
    lock_retries: int = Field(default=DEFAULT_LOCK_RETRIES, ge=0)
    lock_min_wait: float = Field(default=DEFAULT_LOCK_MIN_WAIT, ge=0)
    lock_max_wait: float = Field(default=DEFAULT_LOCK_MAX_WAIT, ge=0)
    max_entries: int | None = Field(default=None, ge=1)


class DocumentConfig(BaseModel):
    """Generated document configuration."""

    author: str = DEFAULT_DOCUMENT_AUTHOR
    description: str | None = None
    body_font: str | None = None
    code_font: str = DEFAULT_CODE_FONT
    default_image_width: int = Field(default=DEFAULT_IMAGE_WIDTH_PX, ge=1)
    default_image_height: int = Field(default=DEFAULT_IMAGE_HEIGHT_PX, ge=1)


class WorditSettings(BaseSettings):
    """Main configuration class for WordIt."""

    model_config = SettingsConfigDict(
        env_prefix="WORDIT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings sources to include YAML file."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=DEFAULT_CONFIG_FILE),
            file_secret_settings,
        )

    # Sub-configurations
    image: ImageConfig = Field(default_factory=ImageConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    document: DocumentConfig = Field(default_factory=DocumentConfig)

    # Global settings
    generation_timeout: float = Field(default=DEFAULT_GENERATION_TIMEOUT, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: str = DEFAULT_LOG_DIR


@lru_cache
def get_settings() -> WorditSettings:
    """Get cached settings instance.

    Raises:
        ConfigurationError: If the environment or wordit.yaml holds invalid values
    """
    try:
        return WorditSettings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def reload_settings() -> WorditSettings:
    """Force reload settings (clear cache)."""
    get_settings.cache_clear()
    return get_settings()
