"""Tests for configuration module."""

import pytest
from pydantic import ValidationError

from wordit.config.settings import (
    CacheConfig,
    ImageConfig,
    WorditSettings,
    get_settings,
    reload_settings,
)
from wordit.exceptions import ConfigurationError


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Run settings tests in an isolated directory without wordit.yaml."""
    monkeypatch.chdir(tmp_path)
    for name in ("WORDIT_GENERATION_TIMEOUT", "WORDIT_CACHE__DIRECTORY", "WORDIT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestWorditSettings:
    """Tests for WorditSettings."""

    def test_default_settings(self, isolated_settings):  # noqa: ARG002
        settings = WorditSettings()

        assert settings.generation_timeout == 30.0
        assert settings.log_level == "INFO"
        assert settings.log_dir == ".logs"
        assert settings.cache.directory == "data/documents"
        assert settings.cache.policy == "existence"
        assert settings.image.max_attempts == 3
        assert settings.security.allowed_schemes == ["http", "https"]
        assert settings.security.block_private_networks is True

    def test_env_override(self, isolated_settings, monkeypatch):  # noqa: ARG002
        monkeypatch.setenv("WORDIT_GENERATION_TIMEOUT", "12.5")
        monkeypatch.setenv("WORDIT_CACHE__DIRECTORY", "/srv/documents")

        settings = WorditSettings()

        assert settings.generation_timeout == 12.5
        assert settings.cache.directory == "/srv/documents"

    def test_yaml_file(self, isolated_settings):
        (isolated_settings / "wordit.yaml").write_text(
            "generation_timeout: 5\n"
            "cache:\n"
            "  policy: content_hash\n"
            "  max_entries: 100\n"
            "security:\n"
            "  blocked_hosts: [internal.example]\n"
        )

        settings = WorditSettings()

        assert settings.generation_timeout == 5
        assert settings.cache.policy == "content_hash"
        assert settings.cache.max_entries == 100
        assert settings.security.blocked_hosts == ["internal.example"]

    def test_env_wins_over_yaml(self, isolated_settings, monkeypatch):
        (isolated_settings / "wordit.yaml").write_text("generation_timeout: 5\n")
        monkeypatch.setenv("WORDIT_GENERATION_TIMEOUT", "7")

        assert WorditSettings().generation_timeout == 7

    def test_init_wins(self, isolated_settings):  # noqa: ARG002
        assert WorditSettings(generation_timeout=1).generation_timeout == 1


class TestValidation:
    """Field constraints."""

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            WorditSettings(generation_timeout=0)

    def test_jpeg_quality_range(self):
        with pytest.raises(ValidationError):
            ImageConfig(jpeg_quality=101)

    def test_unknown_cache_policy(self):
        with pytest.raises(ValidationError):
            CacheConfig(policy="forever")

    def test_max_attempts_at_least_one(self):
        with pytest.raises(ValidationError):
            ImageConfig(max_attempts=0)


class TestGetSettings:
    """Tests for the cached accessor."""

    def test_cached(self, isolated_settings):  # noqa: ARG002
        assert get_settings() is get_settings()

    def test_reload(self, isolated_settings, monkeypatch):  # noqa: ARG002
        first = get_settings()
        monkeypatch.setenv("WORDIT_LOG_LEVEL", "DEBUG")

        reloaded = reload_settings()

        assert reloaded is not first
        assert reloaded.log_level == "DEBUG"

    def test_invalid_environment(self, isolated_settings, monkeypatch):  # noqa: ARG002
        monkeypatch.setenv("WORDIT_GENERATION_TIMEOUT", "-1")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            get_settings()
