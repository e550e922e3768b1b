"""
Schemas for the edit session wire format and operation results.
"""

from __future__ import annotations

from edit_sessions.schemas.operations import (
    ContinueOnResult,
    PartialMatchSuggestion,
    ResumeOutcome,
    ResumeResult,
    StoredEditSession,
    StoreOutcome,
    StoreResult,
)
from edit_sessions.schemas.session import (
    EDIT_SESSION_SCHEMA_VERSION,
    AdditionChange,
    Change,
    ChangeType,
    DeletionChange,
    EditSession,
    FileType,
    Folder,
    decode_file_content,
    encode_file_content,
)

__all__ = [
    # Session
    'EDIT_SESSION_SCHEMA_VERSION',
    'AdditionChange',
    'Change',
    'ChangeType',
    'DeletionChange',
    'EditSession',
    'FileType',
    'Folder',
    'decode_file_content',
    'encode_file_content',
    # Operations
    'ContinueOnResult',
    'PartialMatchSuggestion',
    'ResumeOutcome',
    'ResumeResult',
    'StoreOutcome',
    'StoreResult',
    'StoredEditSession',
]
