"""
Workspace model and filesystem adapter.

A workspace is the ordered set of folders open locally. The filesystem
adapter is the only place edit session services touch the disk; blocking
calls run in a worker thread so concurrent reads really overlap.
"""

from __future__ import annotations

import asyncio
import os
import stat
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol

import attrs

__all__ = [
    'FileStat',
    'FileSystem',
    'LocalFileSystem',
    'Workspace',
    'WorkspaceFolder',
]


@attrs.define(frozen=True)
class WorkspaceFolder:
    """A folder open in the local workspace."""

    name: str
    path: Path
    index: int = 0

    def contains(self, path: Path) -> bool:
        return path == self.path or path.is_relative_to(self.path)


@attrs.define(frozen=True)
class Workspace:
    """Ordered workspace folders. Order matters for identity matching."""

    folders: Sequence[WorkspaceFolder] = attrs.field(converter=tuple, factory=tuple)

    @classmethod
    def from_paths(cls, paths: Iterable[Path]) -> Workspace:
        """Build a workspace from folder paths, naming each folder after its directory."""
        folders = []
        for index, path in enumerate(paths):
            resolved = path.resolve()
            folders.append(WorkspaceFolder(name=resolved.name, path=resolved, index=index))
        return cls(folders)

    @property
    def is_empty(self) -> bool:
        return not self.folders

    def get_workspace_folder(self, path: Path) -> WorkspaceFolder | None:
        """Folder containing path; the innermost one wins for nested folders."""
        candidates = [folder for folder in self.folders if folder.contains(path)]
        if not candidates:
            return None
        return max(candidates, key=lambda folder: len(folder.path.parts))


@attrs.define(frozen=True)
class FileStat:
    is_file: bool
    size: int


class FileSystem(Protocol):
    """Filesystem operations used by edit session services."""

    async def exists(self, path: Path) -> bool: ...
    async def stat(self, path: Path) -> FileStat | None: ...
    async def read_file(self, path: Path) -> bytes: ...
    async def write_file(self, path: Path, data: bytes) -> None: ...
    async def delete(self, path: Path) -> None: ...


class LocalFileSystem:
    """FileSystem backed by the local disk."""

    async def exists(self, path: Path) -> bool:
        return await asyncio.to_thread(path.exists)

    async def stat(self, path: Path) -> FileStat | None:
        """Stat a path, or None if it does not exist."""
        try:
            result = await asyncio.to_thread(os.stat, path)
        except FileNotFoundError:
            return None
        return FileStat(is_file=stat.S_ISREG(result.st_mode), size=result.st_size)

    async def read_file(self, path: Path) -> bytes:
        return await asyncio.to_thread(path.read_bytes)

    async def write_file(self, path: Path, data: bytes) -> None:
        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)

    async def delete(self, path: Path) -> None:
        await asyncio.to_thread(path.unlink)
