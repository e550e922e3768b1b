"""
Shared exceptions for edit-sessions.

Domain-specific exceptions used across services.

Exception Hierarchy:
    EditSessionError (base)
    ├── InvalidEditSessionError (malformed payload or unsafe path)
    │   └── IncompatibleSessionVersionError (written by a newer schema)
    ├── EditSessionStoreError (remote store read/write failures)
    │   └── SessionTooLargeError (payload exceeds the store size limit)
    ├── EditSessionBuildError (filesystem failure while capturing changes)
    ├── SourceControlError (git could not be run or timed out)
    └── EditSessionApplyError (filesystem failure while applying changes)

Expected-empty outcomes (nothing to store, nothing to resume, no matching
folder) and user-declined confirmations are NOT exceptions - they are
reported through StoreResult/ResumeResult outcomes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal


class EditSessionError(Exception):
    """Base exception for all edit-sessions errors."""


class InvalidEditSessionError(EditSessionError):
    """Raised when an edit session payload cannot be decoded or is unsafe to apply."""


class IncompatibleSessionVersionError(InvalidEditSessionError):
    """Raised when an edit session was written by a newer schema version."""

    def __init__(self, version: int, supported_version: int) -> None:
        self.version = version
        self.supported_version = supported_version
        super().__init__(
            f'Edit session schema version {version} is newer than the supported version {supported_version}. '
            f'Please upgrade edit-sessions to resume this edit session.'
        )


class EditSessionStoreError(EditSessionError):
    """Raised when the remote store fails to read, write or delete an edit session."""


class SessionTooLargeError(EditSessionStoreError):
    """Raised when an edit session exceeds the store size limit."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f'Your edit session exceeds the size limit and cannot be stored '
            f'({size_bytes / (1024 * 1024):.2f}MB > {limit_bytes / (1024 * 1024):.2f}MB). '
            f'Reduce the number or size of uncommitted changes and try again.'
        )


class EditSessionApplyError(EditSessionError):
    """
    Raised when applying resumed changes fails partway.

    Apply is not transactional: changes before the failing one stay applied.
    The remote edit session is kept so the resume can be retried.
    """

    def __init__(
        self,
        ref: str,
        path: Path,
        operation: Literal['write', 'delete'],
        applied: int,
        total: int,
    ) -> None:
        self.ref = ref
        self.path = path
        self.operation = operation
        self.applied = applied
        self.total = total
        super().__init__(
            f'Failed to resume edit session {ref}: could not {operation} {path} '
            f'({applied} of {total} changes applied). The edit session was kept so the resume can be retried.'
        )


class EditSessionBuildError(EditSessionError):
    """Raised when a changed file cannot be inspected or read while capturing the workspace."""

    def __init__(self, path: Path, operation: Literal['stat', 'read'], reason: str) -> None:
        self.path = path
        self.operation = operation
        self.reason = reason
        super().__init__(f'Failed to store edit session: could not {operation} {path} ({reason}).')


class SourceControlError(EditSessionError):
    """Raised when the git executable cannot be run or does not answer in time."""
