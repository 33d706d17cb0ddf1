"""
MutaStore Configuration
=======================

Process-wide settings read from the environment.

The only setting the core consumes is ``patches_enabled``: whether the snapshot
engine records patches for each step. It is on everywhere except when
``APP_ENV`` (or ``MUTASTORE_APP_ENV``) is ``production``, and can be forced
either way with ``MUTASTORE_ENABLE_PATCHES``.

Example:
    ```python
    from mutastore.config import configure, get_settings

    configure(app_env="production")
    assert get_settings().patches_enabled is False
    ```
"""

import logging
from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PRODUCTION_ENV = "production"
LOG_FORMAT = "%(name)s: %(message)s"


class StoreSettings(BaseSettings):
    app_env: str = Field(
        default="development",
        validation_alias=AliasChoices("app_env", "MUTASTORE_APP_ENV", "APP_ENV"),
        description="Deployment environment; 'production' disables patch tracking",
    )
    enable_patches: Optional[bool] = Field(
        default=None, description="Explicit patch tracking override"
    )
    log_level: str = Field(default="WARNING", description="Level for configure_logging()")

    model_config = SettingsConfigDict(
        env_prefix="MUTASTORE_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {sorted(valid)}, got {v!r}")
        return v.upper()

    @property
    def patches_enabled(self) -> bool:
        if self.enable_patches is not None:
            return self.enable_patches
        return self.app_env.strip().lower() != PRODUCTION_ENV


_settings: Optional[StoreSettings] = None


def get_settings() -> StoreSettings:
    """Return the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = StoreSettings()
    return _settings


def configure(**overrides: Any) -> StoreSettings:
    """Replace the process-wide settings; unspecified fields still come from the environment."""
    global _settings
    _settings = StoreSettings(**overrides)
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next read picks up the environment again."""
    global _settings
    _settings = None


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a console handler to the ``mutastore`` logger."""
    logger = logging.getLogger("mutastore")
    logger.setLevel(level.upper() if level else get_settings().log_level)

    if not any(getattr(h, "_mutastore_handler", False) for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler._mutastore_handler = True  # type: ignore[attr-defined]
        logger.addHandler(console_handler)

    return logger
