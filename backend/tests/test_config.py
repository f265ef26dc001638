"""Tests for application configuration and settings.

This module contains unit tests for the Settings Pydantic model and
application configuration logic in geopreview.core.config. It ensures that
default decoder limits, environment overrides, field validation and
get_settings caching work as expected.
"""

from __future__ import annotations

import pydantic
import pytest

from geopreview.core import config


def test_settings_defaults() -> None:
    """Test that Settings has expected default values."""
    settings = config.Settings()
    assert settings.max_upload_size_bytes == 512 * 1024 * 1024
    assert settings.max_working_dimension == 1024
    assert settings.max_wkb_depth == 64
    assert settings.row_batch_size == 1000
    assert settings.table_default_limit == 100
    assert settings.table_max_limit == 1000
    assert settings.default_vertical_exaggeration == 1.0
    assert settings.allow_origins == ["*"]
    assert settings.log_level == "INFO"


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that environment variables override defaults."""
    monkeypatch.setenv("MAX_WORKING_DIMENSION", "256")
    monkeypatch.setenv("row_batch_size", "10")
    settings = config.Settings()
    assert settings.max_working_dimension == 256
    assert settings.row_batch_size == 10


def test_settings_rejects_non_positive_limits() -> None:
    """Test that decoder limits must be positive."""
    with pytest.raises(pydantic.ValidationError):
        config.Settings(max_wkb_depth=0)
    with pytest.raises(pydantic.ValidationError):
        config.Settings(default_vertical_exaggeration=-1.0)


def test_get_settings_cached() -> None:
    """Test that get_settings returns cached instance."""
    config.get_settings.cache_clear()
    settings1 = config.get_settings()
    settings2 = config.get_settings()
    assert settings1 is settings2
    config.get_settings.cache_clear()


def test_settings_custom_values() -> None:
    """Test Settings with custom values."""
    settings = config.Settings(
        max_upload_size_bytes=1024,
        allow_origins=["http://localhost:3000"],
        table_max_limit=50,
    )
    assert settings.max_upload_size_bytes == 1024
    assert settings.allow_origins == ["http://localhost:3000"]
    assert settings.table_max_limit == 50
