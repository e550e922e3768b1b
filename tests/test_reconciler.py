"""Tests for the store and resume flows of SessionReconciler."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import (
    FakeIdentityProvider,
    FakeSourceControl,
    MemoryStore,
    RecordingConfirmation,
    RecordingLogger,
    UnreadableFileSystem,
)
from edit_sessions.exceptions import (
    EditSessionApplyError,
    EditSessionBuildError,
    EditSessionStoreError,
    InvalidEditSessionError,
)
from edit_sessions.schemas.operations import ResumeOutcome, StoreOutcome
from edit_sessions.schemas.session import (
    AdditionChange,
    DeletionChange,
    EditSession,
    Folder,
    encode_file_content,
)
from edit_sessions.services.identity import IdentityMatch
from edit_sessions.services.reconciler import (
    AUTO_RESUME_KEY,
    ResolvedChange,
    SessionReconciler,
    edit_session_ref_from_uri,
    with_edit_session_ref,
)
from edit_sessions.services.workspace import Workspace


@pytest.fixture
def other_project_dir(tmp_path: Path) -> Path:
    """The same project checked out on a second machine."""
    path = (tmp_path / 'machine-b' / 'project').resolve()
    path.mkdir(parents=True)
    return path


@pytest.fixture
def other_workspace(other_project_dir: Path) -> Workspace:
    return Workspace.from_paths([other_project_dir])


def put_session(store: MemoryStore, ref: str, *folders: Folder, version: int = 2) -> None:
    store.sessions[ref] = EditSession(version=version, folders=list(folders))


def addition(path: str, data: bytes) -> AdditionChange:
    return AdditionChange(relative_file_path=path, contents=encode_file_content(data))


# ==============================================================================
# End to end
# ==============================================================================


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_store_then_resume_on_another_machine(
        self,
        make_reconciler,
        workspace: Workspace,
        other_workspace: Workspace,
        project_dir: Path,
        other_project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
    ) -> None:
        (project_dir / 'a.txt').write_bytes(b'hello')
        source_control.set_changes(project_dir, project_dir / 'a.txt')

        stored = await make_reconciler(workspace).store_session()

        assert stored.outcome == StoreOutcome.STORED
        session = memory_store.sessions[stored.ref]
        assert len(session.folders) == 1
        [change] = session.folders[0].working_changes
        assert isinstance(change, AdditionChange)
        assert change.relative_file_path == 'a.txt'

        confirmation = RecordingConfirmation(True)
        resumed = await make_reconciler(other_workspace, confirmation).resume()

        assert resumed.outcome == ResumeOutcome.APPLIED
        assert resumed.conflicting_paths == []
        assert confirmation.asked == []
        assert (other_project_dir / 'a.txt').read_bytes() == b'hello'
        assert memory_store.deleted == [stored.ref]
        assert stored.ref not in memory_store.sessions

    @pytest.mark.asyncio
    async def test_declined_deletion_conflict_changes_nothing(
        self,
        make_reconciler,
        other_workspace: Workspace,
        other_project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
    ) -> None:
        deletion = DeletionChange(relative_file_path='b.txt')
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[deletion]))
        target = other_project_dir / 'b.txt'
        target.write_bytes(b'local work')
        source_control.set_changes(other_project_dir, target)
        confirmation = RecordingConfirmation(False)

        result = await make_reconciler(other_workspace, confirmation).resume()

        assert result.outcome == ResumeOutcome.DECLINED
        assert result.conflicting_paths == [str(target)]
        assert confirmation.asked == [[target]]
        assert target.read_bytes() == b'local work'
        assert 'ref-9000' in memory_store.sessions
        assert memory_store.deleted == []

    @pytest.mark.asyncio
    async def test_binary_contents_are_reproduced_exactly(
        self,
        make_reconciler,
        workspace: Workspace,
        other_workspace: Workspace,
        project_dir: Path,
        other_project_dir: Path,
        source_control: FakeSourceControl,
    ) -> None:
        data = bytes(range(256)) * 4
        (project_dir / 'blob.bin').write_bytes(data)
        source_control.set_changes(project_dir, project_dir / 'blob.bin')

        await make_reconciler(workspace).store_session()
        await make_reconciler(other_workspace).resume()

        assert (other_project_dir / 'blob.bin').read_bytes() == data

    @pytest.mark.asyncio
    async def test_repository_spanning_two_folders_resumes_each_into_its_own(
        self,
        make_reconciler,
        tmp_path: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
    ) -> None:
        source = (tmp_path / 'machine-a' / 'mono').resolve()
        target = (tmp_path / 'machine-b' / 'mono').resolve()
        for root in (source, target):
            (root / 'a').mkdir(parents=True)
            (root / 'b').mkdir(parents=True)
        (source / 'a' / 'x.txt').write_bytes(b'from a')
        (source / 'b' / 'y.txt').write_bytes(b'from b')
        (source / 'a' / 'README.md').write_bytes(b'readme a')
        (source / 'b' / 'README.md').write_bytes(b'readme b')
        source_control.set_changes(
            source,
            source / 'a' / 'x.txt',
            source / 'b' / 'y.txt',
            source / 'a' / 'README.md',
            source / 'b' / 'README.md',
        )

        stored = await make_reconciler(Workspace.from_paths([source / 'a', source / 'b'])).store_session()

        assert stored.folder_count == 2
        source_control.changes.clear()
        resumed = await make_reconciler(Workspace.from_paths([target / 'a', target / 'b'])).resume()

        assert resumed.outcome == ResumeOutcome.APPLIED
        assert resumed.changes_applied == 4
        assert (target / 'a' / 'x.txt').read_bytes() == b'from a'
        assert (target / 'b' / 'y.txt').read_bytes() == b'from b'
        assert (target / 'a' / 'README.md').read_bytes() == b'readme a'
        assert (target / 'b' / 'README.md').read_bytes() == b'readme b'
        assert not (target / 'a' / 'y.txt').exists()
        assert not (target / 'b' / 'x.txt').exists()


# ==============================================================================
# Store
# ==============================================================================


class TestStore:
    @pytest.mark.asyncio
    async def test_no_edits_stores_nothing(
        self,
        make_reconciler,
        workspace: Workspace,
        project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
    ) -> None:
        source_control.set_changes(project_dir)

        result = await make_reconciler(workspace).store_session()

        assert result.outcome == StoreOutcome.NO_EDITS
        assert result.ref is None
        assert memory_store.sessions == {}

    @pytest.mark.asyncio
    async def test_store_failure_is_logged_and_raised(
        self,
        make_reconciler,
        workspace: Workspace,
        project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
        recording_logger: RecordingLogger,
    ) -> None:
        (project_dir / 'a.txt').write_bytes(b'x')
        source_control.set_changes(project_dir, project_dir / 'a.txt')
        memory_store.fail_writes = True

        with pytest.raises(EditSessionStoreError):
            await make_reconciler(workspace).store_session()

        assert any('Failed to store edit session' in message for message in recording_logger.of('error'))

    @pytest.mark.asyncio
    async def test_unreadable_file_is_logged_and_nothing_is_stored(
        self,
        workspace: Workspace,
        project_dir: Path,
        source_control: FakeSourceControl,
        identity_provider: FakeIdentityProvider,
        memory_store: MemoryStore,
        recording_logger: RecordingLogger,
    ) -> None:
        secret = project_dir / 'secret.txt'
        secret.write_bytes(b'x')
        source_control.set_changes(project_dir, secret)
        reconciler = SessionReconciler(
            store=memory_store,
            workspace=workspace,
            source_control=source_control,
            identity_provider=identity_provider,
            file_system=UnreadableFileSystem(secret, 'read', PermissionError(13, 'Permission denied')),
            logger=recording_logger,
        )

        with pytest.raises(EditSessionBuildError) as exc_info:
            await reconciler.store_session()

        assert exc_info.value.path == secret
        assert memory_store.sessions == {}
        errors = recording_logger.of('error')
        assert errors[0].startswith(f'Failed to read {secret} while storing edit session')
        assert errors[1].startswith('Failed to store edit session, reason:')

    @pytest.mark.asyncio
    async def test_has_edit_session(
        self, make_reconciler, workspace: Workspace, project_dir: Path, source_control: FakeSourceControl
    ) -> None:
        reconciler = make_reconciler(workspace)
        assert not await reconciler.has_edit_session()

        source_control.set_changes(project_dir, project_dir / 'a.txt')
        assert await reconciler.has_edit_session()


# ==============================================================================
# Resume
# ==============================================================================


class TestResume:
    @pytest.mark.asyncio
    async def test_newer_version_is_rejected_without_changes(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        folder = Folder(name='project', working_changes=[addition('a.txt', b'x')])
        put_session(memory_store, 'ref-9000', folder, version=3)

        result = await make_reconciler(other_workspace).resume()

        assert result.outcome == ResumeOutcome.VERSION_REJECTED
        assert result.session_version == 3
        assert not (other_project_dir / 'a.txt').exists()
        assert 'ref-9000' in memory_store.sessions

    @pytest.mark.asyncio
    async def test_absent_ref_is_nothing_to_resume(
        self, make_reconciler, other_workspace: Workspace, recording_logger: RecordingLogger
    ) -> None:
        result = await make_reconciler(other_workspace).resume('missing')

        assert result.outcome == ResumeOutcome.NOTHING_TO_RESUME
        assert recording_logger.of('warning') == ['Could not resume edit session contents for ID missing.']

    @pytest.mark.asyncio
    async def test_empty_store_is_nothing_to_resume(self, make_reconciler, other_workspace: Workspace) -> None:
        result = await make_reconciler(other_workspace).resume()

        assert result.outcome == ResumeOutcome.NOTHING_TO_RESUME

    @pytest.mark.asyncio
    async def test_empty_workspace_is_refused(self, make_reconciler, memory_store: MemoryStore) -> None:
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))

        result = await make_reconciler(Workspace()).resume()

        assert result.outcome == ResumeOutcome.EMPTY_WORKSPACE
        assert 'ref-9000' in memory_store.sessions

    @pytest.mark.asyncio
    async def test_silent_resume_without_sign_in(
        self, make_reconciler, other_workspace: Workspace, memory_store: MemoryStore
    ) -> None:
        memory_store.signed_in = False
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))

        result = await make_reconciler(other_workspace).resume(silent=True)

        assert result.outcome == ResumeOutcome.NOT_SIGNED_IN

    @pytest.mark.asyncio
    async def test_unmatched_folder_aborts_whole_resume(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        put_session(
            memory_store,
            'ref-9000',
            Folder(name='project', working_changes=[addition('a.txt', b'x')]),
            Folder(name='other-project', working_changes=[addition('b.txt', b'y')]),
        )

        result = await make_reconciler(other_workspace).resume()

        assert result.outcome == ResumeOutcome.NO_MATCHING_FOLDER
        assert not (other_project_dir / 'a.txt').exists()
        assert 'ref-9000' in memory_store.sessions

    @pytest.mark.asyncio
    async def test_partial_match_is_suggested_then_forced(
        self,
        make_reconciler,
        other_workspace: Workspace,
        other_project_dir: Path,
        memory_store: MemoryStore,
        identity_provider: FakeIdentityProvider,
    ) -> None:
        identity_provider.identities[other_project_dir] = 'same-branch-older-commit'
        identity_provider.classifications[('same-branch-older-commit', 'remote-identity')] = IdentityMatch.PARTIAL
        put_session(
            memory_store,
            'ref-9000',
            Folder(name='project', canonical_identity='remote-identity', working_changes=[addition('a.txt', b'x')]),
        )
        reconciler = make_reconciler(other_workspace)

        suggested = await reconciler.resume(partial_matches_enabled=True)

        assert suggested.outcome == ResumeOutcome.NO_MATCHING_FOLDER
        [suggestion] = suggested.partial_matches
        assert suggestion.ref == 'ref-9000'
        assert suggestion.local_path == str(other_project_dir)
        assert not (other_project_dir / 'a.txt').exists()

        forced = await reconciler.resume(suggestion.ref, partial_matches_enabled=True, force=True)

        assert forced.outcome == ResumeOutcome.APPLIED
        assert (other_project_dir / 'a.txt').read_bytes() == b'x'

    @pytest.mark.asyncio
    async def test_folder_without_changes_is_no_changes(
        self, make_reconciler, other_workspace: Workspace, memory_store: MemoryStore
    ) -> None:
        put_session(memory_store, 'ref-9000', Folder(name='project'))

        result = await make_reconciler(other_workspace).resume()

        assert result.outcome == ResumeOutcome.NO_CHANGES
        assert 'ref-9000' in memory_store.sessions

    @pytest.mark.asyncio
    async def test_accepted_conflicts_are_overwritten(
        self,
        make_reconciler,
        other_workspace: Workspace,
        other_project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
    ) -> None:
        target = other_project_dir / 'a.txt'
        target.write_bytes(b'local')
        source_control.set_changes(other_project_dir, target)
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'remote')]))

        result = await make_reconciler(other_workspace, RecordingConfirmation(True)).resume()

        assert result.outcome == ResumeOutcome.APPLIED
        assert result.conflicting_paths == [str(target)]
        assert target.read_bytes() == b'remote'

    @pytest.mark.asyncio
    async def test_deletions_and_nested_additions_are_applied(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        (other_project_dir / 'c.txt').write_bytes(b'committed')
        put_session(
            memory_store,
            'ref-9000',
            Folder(
                name='project',
                working_changes=[
                    DeletionChange(relative_file_path='c.txt'),
                    DeletionChange(relative_file_path='already-gone.txt'),
                    addition('new/dir/d.txt', b'd'),
                ],
            ),
        )

        result = await make_reconciler(other_workspace).resume()

        assert result.changes_applied == 3
        assert not (other_project_dir / 'c.txt').exists()
        assert (other_project_dir / 'new' / 'dir' / 'd.txt').read_bytes() == b'd'

    @pytest.mark.asyncio
    async def test_version_one_session_is_applied_as_text(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        put_session(
            memory_store,
            'ref-9000',
            Folder(name='project', working_changes=[AdditionChange(relative_file_path='a.txt', contents='plain')]),
            version=1,
        )

        await make_reconciler(other_workspace).resume()

        assert (other_project_dir / 'a.txt').read_text(encoding='utf-8') == 'plain'

    @pytest.mark.asyncio
    async def test_apply_failure_keeps_remote_session(
        self,
        make_reconciler,
        other_workspace: Workspace,
        other_project_dir: Path,
        memory_store: MemoryStore,
        recording_logger: RecordingLogger,
    ) -> None:
        (other_project_dir / 'blocked').mkdir()  # A directory where a file must be written
        put_session(
            memory_store,
            'ref-9000',
            Folder(name='project', working_changes=[addition('ok.txt', b'ok'), addition('blocked', b'x')]),
        )

        with pytest.raises(EditSessionApplyError) as exc_info:
            await make_reconciler(other_workspace).resume()

        assert exc_info.value.applied == 1
        assert exc_info.value.total == 2
        assert exc_info.value.operation == 'write'
        assert exc_info.value.path == other_project_dir / 'blocked'
        assert (other_project_dir / 'ok.txt').read_bytes() == b'ok'
        assert 'ref-9000' in memory_store.sessions
        assert any('blocked' in message for message in recording_logger.of('error'))

    @pytest.mark.asyncio
    async def test_addition_without_decoded_contents_is_refused(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path
    ) -> None:
        target = other_project_dir / 'a.txt'
        undecoded = ResolvedChange(target, addition('a.txt', b'x'), None)

        with pytest.raises(ValueError, match='Unhandled change'):
            await make_reconciler(other_workspace)._apply('ref-9000', [undecoded])

        assert not target.exists()

    @pytest.mark.asyncio
    async def test_unsafe_path_is_rejected_before_any_write(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        put_session(
            memory_store,
            'ref-9000',
            Folder(name='project', working_changes=[addition('a.txt', b'a'), addition('../escape.txt', b'x')]),
        )

        with pytest.raises(InvalidEditSessionError):
            await make_reconciler(other_workspace).resume()

        assert not (other_project_dir / 'a.txt').exists()
        assert not (other_project_dir.parent / 'escape.txt').exists()
        assert 'ref-9000' in memory_store.sessions

    @pytest.mark.asyncio
    async def test_concurrent_resumes_are_serialized(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))
        reconciler = make_reconciler(other_workspace)

        results = await asyncio.gather(reconciler.resume('ref-9000'), reconciler.resume('ref-9000'))

        assert [result.outcome for result in results] == [ResumeOutcome.APPLIED, ResumeOutcome.NOTHING_TO_RESUME]
        assert memory_store.deleted == ['ref-9000']


# ==============================================================================
# Automatic flows
# ==============================================================================


class TestAutomaticFlows:
    @pytest.mark.asyncio
    async def test_auto_resume_waits_for_sign_in(
        self, make_reconciler, other_workspace: Workspace, other_project_dir: Path, memory_store: MemoryStore
    ) -> None:
        memory_store.signed_in = False
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))
        reconciler = make_reconciler(other_workspace)

        assert await reconciler.auto_resume(auto_resume_setting='onReload') is None
        assert AUTO_RESUME_KEY in reconciler.pending
        assert not (other_project_dir / 'a.txt').exists()

        memory_store.signed_in = True
        assert await reconciler.notify_signed_in() == 1

        assert (other_project_dir / 'a.txt').read_bytes() == b'x'
        assert len(reconciler.pending) == 0

    @pytest.mark.asyncio
    async def test_auto_resume_when_signed_in(
        self, make_reconciler, other_workspace: Workspace, memory_store: MemoryStore
    ) -> None:
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))

        result = await make_reconciler(other_workspace).auto_resume(auto_resume_setting='onReload')

        assert result is not None
        assert result.outcome == ResumeOutcome.APPLIED

    @pytest.mark.asyncio
    async def test_auto_resume_disabled(
        self, make_reconciler, other_workspace: Workspace, memory_store: MemoryStore
    ) -> None:
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))

        assert await make_reconciler(other_workspace).auto_resume(auto_resume_setting='off') is None
        assert 'ref-9000' in memory_store.sessions

    @pytest.mark.asyncio
    async def test_environment_ref_is_resumed_even_when_disabled(
        self, make_reconciler, other_workspace: Workspace, memory_store: MemoryStore
    ) -> None:
        put_session(memory_store, 'ref-9000', Folder(name='project', working_changes=[addition('a.txt', b'x')]))
        put_session(memory_store, 'ref-9001', Folder(name='project', working_changes=[addition('b.txt', b'y')]))

        result = await make_reconciler(other_workspace).auto_resume('ref-9000', auto_resume_setting='off')

        assert result is not None
        assert result.ref == 'ref-9000'
        assert list(memory_store.sessions) == ['ref-9001']

    @pytest.mark.asyncio
    async def test_auto_store_on_shutdown(
        self, make_reconciler, workspace: Workspace, project_dir: Path, source_control: FakeSourceControl
    ) -> None:
        (project_dir / 'a.txt').write_bytes(b'x')
        source_control.set_changes(project_dir, project_dir / 'a.txt')
        reconciler = make_reconciler(workspace)

        assert await reconciler.auto_store(auto_store_setting='off') is None
        result = await reconciler.auto_store(auto_store_setting='onShutdown')

        assert result is not None
        assert result.outcome == StoreOutcome.STORED


class TestContinueOn:
    @pytest.mark.asyncio
    async def test_continue_on_appends_ref(
        self,
        make_reconciler,
        workspace: Workspace,
        project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
    ) -> None:
        (project_dir / 'a.txt').write_bytes(b'x')
        source_control.set_changes(project_dir, project_dir / 'a.txt')

        result = await make_reconciler(workspace).continue_on('vscode://folder/project?windowId=1')

        assert result.stored
        assert result.destination == f'vscode://folder/project?windowId=1&editSessionId={result.ref}&continueOn=1'
        assert result.ref in memory_store.sessions

    @pytest.mark.asyncio
    async def test_continue_on_without_edits_keeps_destination(
        self, make_reconciler, workspace: Workspace, memory_store: MemoryStore
    ) -> None:
        result = await make_reconciler(workspace).continue_on('vscode://folder/project')

        assert not result.stored
        assert result.destination == 'vscode://folder/project'
        assert memory_store.sessions == {}

    @pytest.mark.asyncio
    async def test_continue_on_when_signed_out_warns(
        self,
        make_reconciler,
        workspace: Workspace,
        project_dir: Path,
        source_control: FakeSourceControl,
        memory_store: MemoryStore,
        recording_logger: RecordingLogger,
    ) -> None:
        memory_store.signed_in = False
        source_control.set_changes(project_dir, project_dir / 'a.txt')

        result = await make_reconciler(workspace).continue_on('vscode://folder/project')

        assert not result.stored
        assert memory_store.sessions == {}
        assert len(recording_logger.of('warning')) == 1


def test_edit_session_ref_round_trips_through_uri() -> None:
    uri = with_edit_session_ref('vscode://folder/project', 'abc-123')

    assert uri == 'vscode://folder/project?editSessionId=abc-123&continueOn=1'
    assert edit_session_ref_from_uri(uri) == 'abc-123'
    assert edit_session_ref_from_uri('vscode://folder/project') is None
