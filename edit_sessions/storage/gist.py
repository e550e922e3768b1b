"""
GitHub Gist store for edit sessions.

Provides an async store that keeps edit sessions as files of a single GitHub
Gist. Each edit session is one file named `edit-session-<ref>.json`, where the
reference is a UUIDv7 so the greatest reference is the most recent.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
import uuid6

from edit_sessions.exceptions import EditSessionStoreError, SessionTooLargeError
from edit_sessions.schemas.operations import StoredEditSession
from edit_sessions.schemas.session import EditSession
from edit_sessions.storage.codec import decode_session, encode_session

__all__ = ['GistStore']

logger = logging.getLogger(__name__)


class GistStore:
    """
    GitHub Gist edit session store.

    Creates the gist on first write when no gist_id is configured; the new
    gist_id is kept on the instance for subsequent calls.
    """

    # GitHub API limits: 100MB hard limit per file
    MAX_FILE_SIZE_MB = 100

    FILENAME_PREFIX = 'edit-session-'
    FILENAME_SUFFIX = '.json'

    def __init__(
        self,
        token: str,
        gist_id: str | None = None,
        description: str = 'Edit Sessions',
        max_size_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize Gist store.

        Args:
            token: GitHub Personal Access Token with 'gist' scope (empty string allowed for read-only)
            gist_id: Optional existing gist ID (if None, creates new gist on first write)
            description: Gist description used when creating the gist
            max_size_bytes: Optional limit stricter than GitHub's per-file limit
            transport: Optional httpx transport (tests)
        """
        self.token = token
        self.gist_id = gist_id
        self.description = description
        self.base_url = 'https://api.github.com'
        hard_limit = self.MAX_FILE_SIZE_MB * 1024 * 1024
        self.max_size_bytes = min(max_size_bytes, hard_limit) if max_size_bytes else hard_limit
        self._transport = transport

    @property
    def is_signed_in(self) -> bool:
        return bool(self.token)

    def sign_in(self, token: str) -> None:
        """Provide the GitHub token after construction."""
        self.token = token

    async def write(self, session: EditSession) -> str:
        """
        Save an edit session as a new gist file.

        Returns:
            Reference of the stored edit session

        Raises:
            SessionTooLargeError: If the payload exceeds the size limit
            EditSessionStoreError: If the token is missing or the GitHub API call fails
        """
        if not self.token:
            raise EditSessionStoreError('GitHub token is required to store edit sessions in a Gist')

        # Gists are text-based, always plain JSON
        data = encode_session(session, 'json')
        if len(data) > self.max_size_bytes:
            raise SessionTooLargeError(len(data), self.max_size_bytes)

        ref = str(uuid6.uuid7())
        files = {self._filename(ref): {'content': data.decode('utf-8')}}

        async with self._client() as client:
            if self.gist_id:
                await self._request(client, 'PATCH', f'/gists/{self.gist_id}', json={'files': files})
            else:
                gist_data = await self._request(
                    client,
                    'POST',
                    '/gists',
                    json={'description': self.description, 'public': False, 'files': files},
                )
                self.gist_id = gist_data['id']  # Store for future writes
                logger.info('Created gist %s for edit sessions', self.gist_id)

        return ref

    async def read(self, ref: str | None = None) -> StoredEditSession | None:
        """Read an edit session by reference, or the most recent one."""
        if not self.gist_id:
            return None

        async with self._client() as client:
            gist_data = await self._get_gist(client)
            if gist_data is None:
                return None

            files = gist_data.get('files', {})
            refs = self._refs_from_files(files)
            if ref is None:
                if not refs:
                    return None
                ref = refs[0]
            elif ref not in refs:
                return None

            file_data = files[self._filename(ref)]
            if file_data.get('truncated', False) or 'content' not in file_data:
                # Truncated or missing content - fetch full content from raw_url
                raw_url = file_data.get('raw_url')
                if not raw_url:
                    raise EditSessionStoreError(
                        f"Edit session '{ref}' is truncated but no raw_url available. "
                        f'File size: {file_data.get("size", "unknown")} bytes'
                    )
                try:
                    raw_response = await client.get(raw_url)
                    raw_response.raise_for_status()
                except httpx.HTTPError as e:
                    raise EditSessionStoreError(f'Failed to download edit session {ref}: {e}') from e
                content = raw_response.text
            else:
                content = file_data['content']

        return StoredEditSession(ref=ref, session=decode_session(content.encode('utf-8')))

    async def delete(self, ref: str) -> None:
        """Remove an edit session file from the gist."""
        if not self.gist_id:
            return
        if not self.token:
            raise EditSessionStoreError('GitHub token is required to delete edit sessions from a Gist')

        async with self._client() as client:
            gist_data = await self._get_gist(client)
            if gist_data is None or self._filename(ref) not in gist_data.get('files', {}):
                return
            # A null file entry deletes the file
            await self._request(client, 'PATCH', f'/gists/{self.gist_id}', json={'files': {self._filename(ref): None}})

    async def list_refs(self) -> Sequence[str]:
        """References of all stored edit sessions, newest first."""
        if not self.gist_id:
            return []

        async with self._client() as client:
            gist_data = await self._get_gist(client)
        if gist_data is None:
            return []
        return self._refs_from_files(gist_data.get('files', {}))

    def _client(self) -> httpx.AsyncClient:
        headers = {
            'Accept': 'application/vnd.github.v3+json',
            'X-GitHub-Api-Version': '2022-11-28',
        }
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return httpx.AsyncClient(base_url=self.base_url, headers=headers, transport=self._transport)

    async def _get_gist(self, client: httpx.AsyncClient) -> dict[str, Any] | None:
        """Fetch gist metadata, or None if the gist does not exist."""
        try:
            response = await client.get(f'/gists/{self.gist_id}')
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EditSessionStoreError(f'Failed to read gist {self.gist_id}: {e}') from e
        return response.json()

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, json: Any) -> dict[str, Any]:
        try:
            response = await client.request(method, url, json=json)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EditSessionStoreError(f'GitHub API {method} {url} failed: {e}') from e
        return response.json()

    def _filename(self, ref: str) -> str:
        return f'{self.FILENAME_PREFIX}{ref}{self.FILENAME_SUFFIX}'

    def _refs_from_files(self, files: dict[str, Any]) -> list[str]:
        refs = [
            name[len(self.FILENAME_PREFIX) : -len(self.FILENAME_SUFFIX)]
            for name in files
            if name.startswith(self.FILENAME_PREFIX) and name.endswith(self.FILENAME_SUFFIX)
        ]
        return sorted(refs, reverse=True)
