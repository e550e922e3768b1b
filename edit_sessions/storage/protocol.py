"""
Remote store protocol for edit sessions.

Defines interface for different storage backends (local directory, Gist).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from edit_sessions.schemas.operations import StoredEditSession
from edit_sessions.schemas.session import EditSession


@runtime_checkable
class EditSessionStore(Protocol):
    """Protocol for edit session stores."""

    @property
    def is_signed_in(self) -> bool:
        """True when the store has the credentials it needs to read and write."""
        ...

    async def write(self, session: EditSession) -> str:
        """
        Persist an edit session.

        Args:
            session: Edit session to persist

        Returns:
            Opaque reference identifying the stored edit session

        Raises:
            SessionTooLargeError: If the payload exceeds the store size limit
            EditSessionStoreError: If the write fails
        """
        ...

    async def read(self, ref: str | None = None) -> StoredEditSession | None:
        """
        Read an edit session.

        Args:
            ref: Reference returned by write(), or None for the most recent

        Returns:
            Stored edit session with its reference, or None if absent

        Raises:
            IncompatibleSessionVersionError: If written by a newer schema version
            InvalidEditSessionError: If the stored payload is malformed
            EditSessionStoreError: If the read fails
        """
        ...

    async def delete(self, ref: str) -> None:
        """
        Delete an edit session. Deleting an absent reference is a no-op.

        Raises:
            EditSessionStoreError: If the delete fails
        """
        ...

    async def list_refs(self) -> Sequence[str]:
        """References of all stored edit sessions, newest first."""
        ...
