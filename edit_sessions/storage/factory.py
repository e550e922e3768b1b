"""
Store selection shared by the CLI and MCP server.

A store location is either 'gist://<gist-id>' (or bare 'gist://' to create a
new gist on first write) or a directory path. When no location is given, the
configured backend is used.
"""

from __future__ import annotations

import os
from pathlib import Path

from edit_sessions.config.settings import settings
from edit_sessions.storage.gist import GistStore
from edit_sessions.storage.local import LocalFileSystemStore

__all__ = ['GIST_SCHEME', 'default_location', 'open_store']

GIST_SCHEME = 'gist://'


def default_location() -> str:
    """Store location from settings."""
    match settings.STORAGE_BACKEND:
        case 'gist':
            return f'{GIST_SCHEME}{settings.GIST_ID or ""}'
        case 'local':
            return str(settings.STORE_PATH)
        case unknown:
            raise ValueError(f'Unhandled storage backend: {unknown!r}')


def open_store(location: str | None = None, token: str | None = None) -> GistStore | LocalFileSystemStore:
    """
    Open the store at location.

    Args:
        location: 'gist://<gist-id>' or a directory path (default: from settings)
        token: GitHub token for gists (default: GITHUB_TOKEN env). Without one the
            gist store is read-only and reports not signed in.

    Returns:
        GistStore or LocalFileSystemStore. Local directories are created if missing.
    """
    location = location or default_location()

    if location.startswith(GIST_SCHEME):
        return GistStore(
            token=token or os.environ.get('GITHUB_TOKEN') or '',
            gist_id=location[len(GIST_SCHEME) :] or None,
            max_size_bytes=settings.max_session_size_bytes,
        )

    base_path = Path(location).expanduser().resolve()
    base_path.mkdir(parents=True, exist_ok=True)
    return LocalFileSystemStore(
        base_path,
        format=settings.FORMAT,
        compression_level=settings.COMPRESSION_LEVEL,
        max_size_bytes=settings.max_session_size_bytes,
    )
