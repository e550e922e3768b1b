"""
Edit session wire format.

An edit session is a versioned snapshot of uncommitted working-directory
changes across one or more workspace folders. The JSON produced by
`EditSession.model_dump_json(by_alias=True)` is the payload persisted to and
retrieved from the remote store verbatim.

Version history:
- 2: File contents are base64-encoded
- 1: File contents stored as plain UTF-8 text

Wire shape (version 2):

    {
      "version": 2,
      "folders": [
        {
          "name": "project",
          "canonicalIdentity": "{\"remote\": ...}",
          "workingChanges": [
            {"type": 1, "fileType": 1, "relativeFilePath": "a.txt", "contents": "aGVsbG8="},
            {"type": 2, "fileType": 1, "relativeFilePath": "b.txt"}
          ]
        }
      ]
    }
"""

from __future__ import annotations

import base64
import binascii
import enum
from collections.abc import Sequence
from typing import Annotated, Literal

import pydantic

from edit_sessions.base_model import WireModel
from edit_sessions.exceptions import InvalidEditSessionError

__all__ = [
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
]

EDIT_SESSION_SCHEMA_VERSION = 2
"""Current schema version. Used when storing; newer versions are refused on resume."""


class ChangeType(enum.IntEnum):
    """Wire values of Change.type."""

    ADDITION = 1
    DELETION = 2


class FileType(enum.IntEnum):
    """Wire values of Change.fileType - only whole files are supported."""

    FILE = 1


# ==============================================================================
# Changes (tagged union on "type")
# ==============================================================================


class AdditionChange(WireModel):
    """A file that exists locally; contents carry the full file."""

    type: Literal[1] = 1  # ChangeType.ADDITION
    file_type: Literal[1] = pydantic.Field(default=1, alias='fileType')
    relative_file_path: str = pydantic.Field(alias='relativeFilePath', min_length=1)
    contents: str  # base64 since version 2


class DeletionChange(WireModel):
    """A tracked file that no longer exists locally. Never carries contents."""

    type: Literal[2] = 2  # ChangeType.DELETION
    file_type: Literal[1] = pydantic.Field(default=1, alias='fileType')
    relative_file_path: str = pydantic.Field(alias='relativeFilePath', min_length=1)


Change = Annotated[AdditionChange | DeletionChange, pydantic.Field(discriminator='type')]


# ==============================================================================
# Folder and Session
# ==============================================================================


class Folder(WireModel):
    """Changes captured from one workspace folder."""

    name: str
    canonical_identity: str | None = pydantic.Field(default=None, alias='canonicalIdentity')
    working_changes: Sequence[Change] = pydantic.Field(default=(), alias='workingChanges')


class EditSession(WireModel):
    """Complete edit session snapshot (written to the remote store)."""

    version: int
    folders: Sequence[Folder]

    @property
    def change_count(self) -> int:
        return sum(len(folder.working_changes) for folder in self.folders)


# ==============================================================================
# File Content Encoding
# ==============================================================================


def encode_file_content(data: bytes) -> str:
    """Encode raw file bytes for the current schema version."""
    return base64.b64encode(data).decode('ascii')


def decode_file_content(version: int, contents: str) -> bytes:
    """
    Decode change contents according to the schema version that wrote them.

    Args:
        version: Schema version of the enclosing edit session
        contents: Contents string from an AdditionChange

    Returns:
        Raw file bytes

    Raises:
        InvalidEditSessionError: If contents are not valid base64 (version 2+)
    """
    if version == 1:
        return contents.encode('utf-8')
    try:
        return base64.b64decode(contents, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidEditSessionError(f'Change contents are not valid base64: {e}') from e
