"""
Shared fixtures and in-memory fakes for edit session tests.

The fakes implement the service protocols (store, source control, identity
provider, filesystem, confirmation prompt, logger) so reconciliation flows run against a
real tmp_path filesystem without git or network access.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from edit_sessions.exceptions import EditSessionStoreError
from edit_sessions.schemas.operations import StoredEditSession
from edit_sessions.schemas.session import EditSession
from edit_sessions.services.identity import IdentityMatch
from edit_sessions.services.reconciler import SessionReconciler
from edit_sessions.services.scm import Repository, ResourceGroup
from edit_sessions.services.workspace import FileStat, LocalFileSystem, Workspace, WorkspaceFolder


# ==============================================================================
# Fakes
# ==============================================================================


class MemoryStore:
    """In-memory EditSessionStore. References sort in write order."""

    def __init__(self, signed_in: bool = True) -> None:
        self.sessions: dict[str, EditSession] = {}
        self.deleted: list[str] = []
        self.signed_in = signed_in
        self.fail_writes = False
        self._counter = 0

    @property
    def is_signed_in(self) -> bool:
        return self.signed_in

    async def write(self, session: EditSession) -> str:
        if self.fail_writes:
            raise EditSessionStoreError('store unavailable')
        self._counter += 1
        ref = f'ref-{self._counter:04d}'
        self.sessions[ref] = session
        return ref

    async def read(self, ref: str | None = None) -> StoredEditSession | None:
        if ref is None:
            if not self.sessions:
                return None
            ref = max(self.sessions)
        session = self.sessions.get(ref)
        if session is None:
            return None
        return StoredEditSession(ref=ref, session=session)

    async def delete(self, ref: str) -> None:
        self.sessions.pop(ref, None)
        self.deleted.append(ref)

    async def list_refs(self) -> Sequence[str]:
        return sorted(self.sessions, reverse=True)


class FakeSourceControl:
    """SourceControl reporting scripted changed paths per repository root."""

    def __init__(self) -> None:
        self.changes: dict[Path, list[Path]] = {}

    def set_changes(self, root: Path, *paths: Path) -> None:
        self.changes[root] = list(paths)

    async def repositories(self) -> Sequence[Repository]:
        return [
            Repository(root, [ResourceGroup('workingTree', paths)])
            for root, paths in self.changes.items()
        ]


class FakeIdentityProvider:
    """IdentityProvider with scripted identities (by folder path) and classifications."""

    def __init__(self) -> None:
        self.identities: dict[Path, str] = {}
        self.classifications: dict[tuple[str, str], IdentityMatch] = {}

    async def identify(self, folder: WorkspaceFolder) -> str | None:
        return self.identities.get(folder.path)

    async def classify(self, local_identity: str, remote_identity: str) -> IdentityMatch:
        return self.classifications.get((local_identity, remote_identity), IdentityMatch.NONE)


class UnreadableFileSystem(LocalFileSystem):
    """Local filesystem whose stat or read of one path fails with a scripted error."""

    def __init__(self, path: Path, operation: str, error: OSError) -> None:
        self.path = path
        self.operation = operation
        self.error = error

    async def stat(self, path: Path) -> FileStat | None:
        if path == self.path and self.operation == 'stat':
            raise self.error
        return await super().stat(path)

    async def read_file(self, path: Path) -> bytes:
        if path == self.path and self.operation == 'read':
            raise self.error
        return await super().read_file(path)


class RecordingConfirmation:
    """ConfirmationPrompt that records what it was asked and answers as scripted."""

    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.asked: list[list[Path]] = []

    async def confirm(self, conflicting_paths: Sequence[Path]) -> bool:
        self.asked.append(list(conflicting_paths))
        return self.answer


class RecordingLogger:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    async def info(self, message: str) -> None:
        self.messages.append(('info', message))

    async def warning(self, message: str) -> None:
        self.messages.append(('warning', message))

    async def error(self, message: str) -> None:
        self.messages.append(('error', message))

    def of(self, level: str) -> list[str]:
        return [message for message_level, message in self.messages if message_level == level]


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = (tmp_path / 'machine-a' / 'project').resolve()
    path.mkdir(parents=True)
    return path


@pytest.fixture
def workspace(project_dir: Path) -> Workspace:
    return Workspace.from_paths([project_dir])


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def source_control() -> FakeSourceControl:
    return FakeSourceControl()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def make_reconciler(
    memory_store: MemoryStore,
    source_control: FakeSourceControl,
    identity_provider: FakeIdentityProvider,
    recording_logger: RecordingLogger,
):
    """Factory for reconcilers sharing the store, source control and identity fakes."""

    def _make(workspace: Workspace, confirmation: RecordingConfirmation | None = None) -> SessionReconciler:
        return SessionReconciler(
            store=memory_store,
            workspace=workspace,
            source_control=source_control,
            identity_provider=identity_provider,
            confirmation=confirmation or RecordingConfirmation(True),
            logger=recording_logger,
        )

    return _make
