"""
Base configuration for edit-sessions.

Shared settings and helper functions for all surfaces (CLI, MCP).
"""

from __future__ import annotations

import os
import pathlib
from typing import Literal, TypeVar

import lazy_object_proxy
import pydantic
import pydantic_settings


T = TypeVar('T', bound='BaseEditSessionSettings')


class BaseEditSessionSettings(pydantic_settings.BaseSettings):
    """Shared configuration across all edit-sessions surfaces (CLI, MCP)."""

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix='EDIT_SESSIONS_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,  # Fail fast on misconfiguration
        extra='forbid',  # Reject unknown settings
    )

    # Application metadata
    APP_NAME: str = 'edit-sessions'
    VERSION: str = '0.1.0'

    # Remote store
    STORAGE_BACKEND: Literal['local', 'gist'] = 'local'
    STORE_PATH: pathlib.Path = pathlib.Path.home() / '.edit-sessions' / 'store'
    GIST_ID: str | None = None
    MAX_SESSION_SIZE_MB: float = 10.0

    # Payload format (gists only accept text, so 'zst' is local-only)
    FORMAT: Literal['json', 'zst'] = 'json'
    COMPRESSION_LEVEL: int = 3  # 0-9, zstd compression level (3 = balanced)

    # Resume behaviour
    PARTIAL_MATCHES_ENABLED: bool = False
    AUTO_RESUME: Literal['onReload', 'off'] = 'onReload'
    AUTO_STORE: Literal['onShutdown', 'off'] = 'off'
    CONTINUE_ON: Literal['prompt', 'off'] = 'prompt'

    @pydantic.field_validator('COMPRESSION_LEVEL')
    @classmethod
    def validate_compression_level(cls, v: int) -> int:
        """Validate compression level is within zstd bounds."""
        if not 0 <= v <= 9:
            raise ValueError('COMPRESSION_LEVEL must be between 0-9')
        return v

    @pydantic.field_validator('MAX_SESSION_SIZE_MB')
    @classmethod
    def validate_max_session_size(cls, v: float) -> float:
        """Validate the size limit is positive."""
        if v <= 0:
            raise ValueError('MAX_SESSION_SIZE_MB must be positive')
        return v

    @property
    def max_session_size_bytes(self) -> int:
        return int(self.MAX_SESSION_SIZE_MB * 1024 * 1024)


def get_settings(settings_class: type[T], env_file: str | None = None) -> T:
    """
    Factory for creating settings with dynamic .env file loading.

    LOAD_ENV_FILE environment variable specifies custom .env file path.
    When unset, loads from environment variables only.

    Args:
        settings_class: Settings class to instantiate
        env_file: Optional path to .env file (overrides LOAD_ENV_FILE)

    Returns:
        Settings instance

    Raises:
        FileNotFoundError: If specified .env file doesn't exist
    """
    env_file_path = env_file or os.getenv('LOAD_ENV_FILE')

    if not env_file_path:
        return settings_class(_env_file=None)  # No .env file, load from environment only

    resolved_path = pathlib.Path(env_file_path).resolve()
    if not resolved_path.exists():
        raise FileNotFoundError(f'Environment file not found: {resolved_path}')

    return settings_class(_env_file=resolved_path)


def lazy_settings(settings_class: type[T]) -> T:
    """
    Lazy settings - defers instantiation until first access.

    Args:
        settings_class: Settings class to instantiate

    Returns:
        Proxy that instantiates settings on first access
    """
    return lazy_object_proxy.Proxy(lambda: get_settings(settings_class))
