"""
Operation schemas for service results.

Models returned by the store/resume/continue-on operations of SessionReconciler.
Expected-empty and user-declined outcomes are reported here rather than raised.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence

from edit_sessions.base_model import StrictModel
from edit_sessions.schemas.session import EditSession


class StoredEditSession(StrictModel):
    """An edit session as read back from the store, with its reference."""

    ref: str
    session: EditSession


# ==============================================================================
# Store
# ==============================================================================


class StoreOutcome(enum.StrEnum):
    STORED = 'stored'
    NO_EDITS = 'no_edits'


class StoreResult(StrictModel):
    """Result of a store operation."""

    outcome: StoreOutcome
    ref: str | None = None  # Opaque store reference (STORED only)
    folder_count: int = 0
    change_count: int = 0


# ==============================================================================
# Resume
# ==============================================================================


class ResumeOutcome(enum.StrEnum):
    APPLIED = 'applied'
    EMPTY_WORKSPACE = 'empty_workspace'  # No folder open to resume into
    NOT_SIGNED_IN = 'not_signed_in'  # Silent resume without store credentials
    NOTHING_TO_RESUME = 'nothing_to_resume'  # Store has no edit session for the ref
    VERSION_REJECTED = 'version_rejected'  # Written by a newer schema version
    NO_MATCHING_FOLDER = 'no_matching_folder'  # A session folder matched no local folder
    NO_CHANGES = 'no_changes'  # Matched, but nothing to apply
    DECLINED = 'declined'  # User cancelled the overwrite confirmation


class PartialMatchSuggestion(StrictModel):
    """
    A local folder whose identity only partially matches a session folder.

    Advisory only: the resume that produced it did not apply anything for the
    folder. Resuming the same ref again with force=True accepts the match.
    """

    ref: str
    session_folder: str  # Folder name recorded in the edit session
    local_folder: str  # Name of the partially matching workspace folder
    local_path: str


class ResumeResult(StrictModel):
    """Result of a resume operation."""

    outcome: ResumeOutcome
    ref: str | None = None
    session_version: int | None = None
    changes_applied: int = 0
    conflicting_paths: Sequence[str] = ()
    partial_matches: Sequence[PartialMatchSuggestion] = ()
    remote_deleted: bool = False


# ==============================================================================
# Continue On
# ==============================================================================


class ContinueOnResult(StrictModel):
    """Result of handing the current edit session over to another environment."""

    destination: str  # Destination URI, with editSessionId appended when stored
    ref: str | None = None
    stored: bool = False
