"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
decoder safety limits (WKB nesting depth, raster working resolution), row
batching, attribute table paging, upload size limits, CORS origins and the
log level.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from geopreview.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.max_working_dimension)
        1024

    Environment variables can override defaults:
        >>> MAX_WORKING_DIMENSION=2048
        >>> ROW_BATCH_SIZE=5000
        >>> MAX_UPLOAD_SIZE_BYTES=1073741824
"""

import functools

import pydantic
import pydantic_settings


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        max_upload_size_bytes: Maximum accepted upload size (default 512MB).
        max_working_dimension: Long-side pixel limit for raster reads; the
            reader picks the overview level that fits under it.
        max_wkb_depth: Nesting cap for Multi*/GeometryCollection recursion.
        row_batch_size: Rows decoded between two cancellation checks.
        table_default_limit: Attribute table page size when none is given.
        table_max_limit: Largest attribute table page a caller may request.
        default_vertical_exaggeration: DEM display exaggeration default.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        log_level: Level for the package logger.
        disconnect_poll_seconds: How often the HTTP layer checks whether the
            client went away while a decode runs.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     max_working_dimension=512,
            ...     row_batch_size=250,
            ... )

        Or use environment variables:
            >>> export MAX_WKB_DEPTH=32
            >>> settings = Settings()  # Loads from environment
    """

    max_upload_size_bytes: int = pydantic.Field(512 * 1024 * 1024, gt=0)
    max_working_dimension: int = pydantic.Field(1024, gt=0)
    max_wkb_depth: int = pydantic.Field(64, gt=0)
    row_batch_size: int = pydantic.Field(1000, gt=0)
    table_default_limit: int = pydantic.Field(100, gt=0)
    table_max_limit: int = pydantic.Field(1000, gt=0)
    default_vertical_exaggeration: float = pydantic.Field(1.0, gt=0)
    allow_origins: list[str] = ["*"]
    log_level: str = "INFO"
    disconnect_poll_seconds: float = pydantic.Field(0.5, gt=0)

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the process. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.

    Example:
        The settings are cached, so multiple calls return the same instance:
            >>> settings1 = get_settings()
            >>> settings2 = get_settings()
            >>> assert settings1 is settings2  # Same instance
    """
    return Settings()
