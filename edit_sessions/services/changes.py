"""
Change set builder - captures uncommitted changes as edit session folders.

For every tracked repository, the union of its resource groups is examined:
existing regular files become additions carrying their full contents
(base64), missing files become deletions. Repositories are scanned
concurrently; the "did we find any edits" total is only computed once every
scan has finished.

Changes are grouped by the innermost workspace folder containing them, and
every relative path is taken against that same folder. A repository spanning
several workspace folders therefore yields one Folder per workspace folder,
each with its own canonical identity.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

import attrs

from edit_sessions.exceptions import EditSessionBuildError
from edit_sessions.paths import relative_file_path
from edit_sessions.protocols import LoggerProtocol, NullLogger
from edit_sessions.schemas.session import AdditionChange, Change, DeletionChange, Folder, encode_file_content
from edit_sessions.services.identity import IdentityProvider
from edit_sessions.services.scm import Repository, changed_resources
from edit_sessions.services.workspace import FileStat, FileSystem, Workspace, WorkspaceFolder

__all__ = ['ChangeSet', 'ChangeSetBuilder']


@attrs.define(frozen=True)
class ChangeSet:
    folders: Sequence[Folder] = attrs.field(converter=tuple, factory=tuple)
    examined: int = 0  # Resources that produced a change

    @property
    def has_edits(self) -> bool:
        return self.examined > 0


@attrs.define(frozen=True)
class _FolderChange:
    workspace_folder: WorkspaceFolder
    change: Change


class ChangeSetBuilder:
    """Builds edit session folders from the workspace's tracked repositories."""

    def __init__(
        self,
        workspace: Workspace,
        file_system: FileSystem,
        identity_provider: IdentityProvider,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self.workspace = workspace
        self.file_system = file_system
        self.identity_provider = identity_provider
        self.logger = logger or NullLogger()

    async def build(self, repositories: Sequence[Repository]) -> ChangeSet:
        """
        Capture the working changes of all repositories.

        Args:
            repositories: Tracked repositories with their resource groups

        Returns:
            ChangeSet - one Folder per workspace folder that had changes, in workspace order

        Raises:
            EditSessionBuildError: A changed file could not be inspected or read
        """
        scans = await asyncio.gather(*(self._scan_repository(repository) for repository in repositories))

        grouped: dict[WorkspaceFolder, list[Change]] = {}
        for scan in scans:
            for folder_change in scan:
                grouped.setdefault(folder_change.workspace_folder, []).append(folder_change.change)

        owners = sorted(grouped, key=lambda workspace_folder: workspace_folder.index)
        identities = await asyncio.gather(*(self.identity_provider.identify(owner) for owner in owners))

        folders = [
            Folder(name=owner.name, canonical_identity=canonical_identity, working_changes=grouped[owner])
            for owner, canonical_identity in zip(owners, identities)
        ]
        return ChangeSet(folders, sum(len(changes) for changes in grouped.values()))

    async def _scan_repository(self, repository: Repository) -> list[_FolderChange]:
        folder_changes: list[_FolderChange] = []
        for path in changed_resources(repository):
            workspace_folder = self.workspace.get_workspace_folder(path)
            if workspace_folder is None:
                await self.logger.info(f'Skipping working change {path} as no associated workspace folder was found.')
                continue

            # Only deal with file contents for now
            file_stat = await self._stat(path)
            if file_stat is not None and not file_stat.is_file:
                await self.logger.info(f'Skipping working change {path} as it is not a regular file.')
                continue

            relative_path = relative_file_path(workspace_folder.path, path)
            change: Change
            if file_stat is not None:
                contents = encode_file_content(await self._read_file(path))
                change = AdditionChange(relative_file_path=relative_path, contents=contents)
            else:
                # Tracked but gone: a deletion
                change = DeletionChange(relative_file_path=relative_path)
            folder_changes.append(_FolderChange(workspace_folder, change))

        return folder_changes

    async def _stat(self, path: Path) -> FileStat | None:
        try:
            return await self.file_system.stat(path)
        except OSError as e:
            await self.logger.error(f'Failed to stat {path} while storing edit session: {e}')
            raise EditSessionBuildError(path, 'stat', str(e)) from e

    async def _read_file(self, path: Path) -> bytes:
        # A file removed after stat also lands here
        try:
            return await self.file_system.read_file(path)
        except OSError as e:
            await self.logger.error(f'Failed to read {path} while storing edit session: {e}')
            raise EditSessionBuildError(path, 'read', str(e)) from e
