"""
Local filesystem store.

Implements EditSessionStore for a local (or synced/shared) directory.
Each edit session is one file named after its reference, a UUIDv7, so the
lexicographically greatest reference is the most recent.
"""

from __future__ import annotations

import logging
import pathlib
import re
from collections.abc import Sequence

import uuid6
from filelock import FileLock

from edit_sessions.exceptions import EditSessionStoreError, SessionTooLargeError
from edit_sessions.schemas.operations import StoredEditSession
from edit_sessions.schemas.session import EditSession
from edit_sessions.storage.codec import PayloadFormat, decode_session, encode_session

__all__ = ['LocalFileSystemStore']

logger = logging.getLogger(__name__)

REF_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$')


class LocalFileSystemStore:
    """Local filesystem edit session store."""

    EXTENSIONS: dict[PayloadFormat, str] = {'json': '.json', 'zst': '.json.zst'}

    def __init__(
        self,
        base_path: pathlib.Path,
        format: PayloadFormat = 'json',
        compression_level: int = 3,
        max_size_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        """
        Initialize local filesystem store.

        Args:
            base_path: Base directory for storing edit sessions
            format: Payload format for new edit sessions
            compression_level: zstd level for 'zst'
            max_size_bytes: Largest payload accepted by write()

        Raises:
            ValueError: If base_path doesn't exist (fail-fast)
        """
        if not base_path.exists():
            raise ValueError(f'Storage path does not exist: {base_path}. Please create it first.')

        if not base_path.is_dir():
            raise ValueError(f'Storage path is not a directory: {base_path}')

        self.base_path = base_path
        self.format = format
        self.compression_level = compression_level
        self.max_size_bytes = max_size_bytes
        self._lock = FileLock(base_path / '.edit-sessions.lock')

    @property
    def is_signed_in(self) -> bool:
        return True  # No credentials needed

    async def write(self, session: EditSession) -> str:
        """Write a new edit session file and return its reference."""
        data = encode_session(session, self.format, self.compression_level)
        if len(data) > self.max_size_bytes:
            raise SessionTooLargeError(len(data), self.max_size_bytes)

        ref = str(uuid6.uuid7())
        file_path = self.base_path / f'{ref}{self.EXTENSIONS[self.format]}'
        temp_path = file_path.with_name(f'.{file_path.name}.tmp')

        try:
            with self._lock:
                # Atomic write: readers never observe a partial file
                temp_path.write_bytes(data)
                temp_path.replace(file_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise EditSessionStoreError(f'Failed to write edit session to {file_path}: {e}') from e

        logger.debug('Wrote edit session %s (%d bytes)', ref, len(data))
        return ref

    async def read(self, ref: str | None = None) -> StoredEditSession | None:
        """Read an edit session by reference, or the most recent one."""
        if ref is None:
            refs = await self.list_refs()
            if not refs:
                return None
            ref = refs[0]

        file_path = self._find(ref)
        if file_path is None:
            return None

        try:
            data = file_path.read_bytes()
        except FileNotFoundError:
            return None  # Deleted concurrently
        except OSError as e:
            raise EditSessionStoreError(f'Failed to read edit session from {file_path}: {e}') from e

        return StoredEditSession(ref=ref, session=decode_session(data))

    async def delete(self, ref: str) -> None:
        """Delete an edit session file if it exists."""
        if not REF_PATTERN.match(ref):
            raise EditSessionStoreError(f'Invalid edit session reference: {ref!r}')

        try:
            with self._lock:
                for extension in self.EXTENSIONS.values():
                    (self.base_path / f'{ref}{extension}').unlink(missing_ok=True)
        except OSError as e:
            raise EditSessionStoreError(f'Failed to delete edit session {ref}: {e}') from e

    async def list_refs(self) -> Sequence[str]:
        """References of all stored edit sessions, newest first."""
        refs = set()
        for path in self.base_path.iterdir():
            for extension in self.EXTENSIONS.values():
                if path.name.endswith(extension):
                    candidate = path.name[: -len(extension)]
                    if REF_PATTERN.match(candidate):
                        refs.add(candidate)
        return sorted(refs, reverse=True)

    def _find(self, ref: str) -> pathlib.Path | None:
        """Locate the file for a reference (either format)."""
        if not REF_PATTERN.match(ref):
            return None
        for extension in self.EXTENSIONS.values():
            candidate = self.base_path / f'{ref}{extension}'
            if candidate.exists():
                return candidate
        return None
