"""
Conflict detection - would applying an incoming change overwrite local edits?

Only paths the local source control reports as changed can conflict: any
other path holds committed content, which the incoming change may replace
safely. Only whole-file equality is considered; there is no textual merge.
"""

from __future__ import annotations

import asyncio
from collections.abc import Set
from pathlib import Path

from edit_sessions.schemas.session import AdditionChange, Change, DeletionChange, decode_file_content
from edit_sessions.services.hashing import ContentHasher
from edit_sessions.services.workspace import FileSystem

__all__ = ['ConflictDetector']


class ConflictDetector:
    """Decides whether an incoming change would silently overwrite different local content."""

    def __init__(self, file_system: FileSystem, hasher: ContentHasher | None = None) -> None:
        self.file_system = file_system
        self.hasher = hasher or ContentHasher()

    async def would_overwrite(
        self,
        local_changes: Set[Path],
        path: Path,
        change: Change,
        *,
        version: int,
    ) -> bool:
        """
        Args:
            local_changes: Paths the local source control reports as changed
            path: Local path the change would be applied to
            change: Incoming change
            version: Schema version of the edit session (content encoding)

        Returns:
            True if applying the change would replace or delete different local content
        """
        if path not in local_changes:
            return False

        match change:
            case AdditionChange():
                # Both digests must be ready before a verdict
                incoming_digest, local_digest = await asyncio.gather(
                    self._digest_incoming(change, version),
                    self._digest_local(path),
                )
                return incoming_digest != local_digest

            case DeletionChange():
                return await self.file_system.exists(path)

            case _:
                # FAIL FAST: a well-formed edit session only carries additions and deletions
                raise ValueError(f'Unhandled change type: {type(change).__name__}')

    async def _digest_incoming(self, change: AdditionChange, version: int) -> str:
        return self.hasher.digest(decode_file_content(version, change.contents))

    async def _digest_local(self, path: Path) -> str | None:
        """Digest of the on-disk file, or None if it no longer exists."""
        if not await self.file_system.exists(path):
            return None
        return self.hasher.digest(await self.file_system.read_file(path))
