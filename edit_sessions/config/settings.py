"""
Edit session configuration.

Extends base configuration with the settings singleton used by the CLI and MCP server.
"""

from __future__ import annotations

from edit_sessions.config.base import BaseEditSessionSettings, lazy_settings


class EditSessionSettings(BaseEditSessionSettings):
    """Edit session configuration."""

    pass  # Empty for now, room for surface-specific settings


# Module-level singleton (lazy-loaded)
settings = lazy_settings(EditSessionSettings)
