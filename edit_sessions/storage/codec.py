"""
Edit session payload codec.

Serializes EditSession to JSON or zstd-compressed JSON, and decodes payloads
read back from a store. The schema version is checked BEFORE the payload
shape is validated: a newer writer may have changed the shape, and the
caller must see "upgrade required" rather than a validation error.
"""

from __future__ import annotations

import json
from typing import Literal

import pydantic
import zstandard

from edit_sessions.exceptions import IncompatibleSessionVersionError, InvalidEditSessionError
from edit_sessions.schemas.session import EDIT_SESSION_SCHEMA_VERSION, EditSession

__all__ = [
    'PayloadFormat',
    'ZSTD_MAGIC',
    'decode_session',
    'encode_session',
]

PayloadFormat = Literal['json', 'zst']

# Zstandard frame magic number (RFC 8878)
ZSTD_MAGIC = b'\x28\xb5\x2f\xfd'


def encode_session(session: EditSession, format: PayloadFormat = 'json', compression_level: int = 3) -> bytes:
    """
    Serialize an edit session for storage.

    Args:
        session: Edit session to serialize
        format: 'json' for plain UTF-8 JSON, 'zst' for zstd-compressed JSON
        compression_level: zstd level (only used for 'zst')

    Returns:
        Payload bytes
    """
    json_bytes = session.model_dump_json(by_alias=True, exclude_none=True).encode('utf-8')

    if format == 'json':
        return json_bytes
    elif format == 'zst':
        compressor = zstandard.ZstdCompressor(level=compression_level)
        return compressor.compress(json_bytes)
    else:
        raise ValueError(f'Unsupported format: {format}')


def decode_session(data: bytes) -> EditSession:
    """
    Decode a stored payload into an edit session.

    Compressed payloads are detected by the zstd magic number.

    Raises:
        IncompatibleSessionVersionError: If the payload was written by a newer schema version
        InvalidEditSessionError: If the payload is not a valid edit session
    """
    if data.startswith(ZSTD_MAGIC):
        try:
            data = zstandard.ZstdDecompressor().decompress(data)
        except zstandard.ZstdError as e:
            raise InvalidEditSessionError(f'Corrupt compressed edit session: {e}') from e

    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidEditSessionError(f'Edit session is not valid JSON: {e}') from e

    if not isinstance(raw, dict):
        raise InvalidEditSessionError(f'Edit session must be a JSON object, got {type(raw).__name__}')

    version = raw.get('version')
    if not isinstance(version, int) or isinstance(version, bool):
        raise InvalidEditSessionError(f'Edit session has no integer version: {version!r}')
    if version > EDIT_SESSION_SCHEMA_VERSION:
        raise IncompatibleSessionVersionError(version, EDIT_SESSION_SCHEMA_VERSION)

    try:
        return EditSession.model_validate_json(data)
    except pydantic.ValidationError as e:
        raise InvalidEditSessionError(f'Invalid edit session payload: {e}') from e
