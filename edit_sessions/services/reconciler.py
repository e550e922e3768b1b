"""
Session reconciler - stores and resumes edit sessions.

Pure service layer with no CLI/MCP dependencies. Collaborators (store,
source control, identity provider, filesystem, confirmation prompt, logger)
are injected, so every flow can run against in-memory fakes.

Resume:
    Idle → Fetching → (NotFound | VersionRejected | Reconciling)
         → (AwaitingConfirmation)? → Applying → Cleanup → Done

Store:
    Idle → Building → (NoEdits | Persisting) → Done | Failed

Apply is NOT transactional. A failure partway leaves the already-applied
changes in place and raises EditSessionApplyError; the remote edit session is
only deleted after every change has been applied, so a failed resume can be
retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Literal
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import attrs

from edit_sessions.exceptions import (
    EditSessionApplyError,
    EditSessionError,
    IncompatibleSessionVersionError,
)
from edit_sessions.paths import resolve_change_path
from edit_sessions.protocols import AlwaysConfirm, ConfirmationPrompt, LoggerProtocol, NullLogger
from edit_sessions.schemas.operations import (
    ContinueOnResult,
    PartialMatchSuggestion,
    ResumeOutcome,
    ResumeResult,
    StoreOutcome,
    StoreResult,
)
from edit_sessions.schemas.session import (
    EDIT_SESSION_SCHEMA_VERSION,
    AdditionChange,
    Change,
    DeletionChange,
    EditSession,
    Folder,
    decode_file_content,
)
from edit_sessions.services.changes import ChangeSetBuilder
from edit_sessions.services.conflicts import ConflictDetector
from edit_sessions.services.hashing import ContentHasher
from edit_sessions.services.identity import FolderMatch, IdentityProvider, match_folder
from edit_sessions.services.pending import PendingOperationQueue
from edit_sessions.services.scm import Repository, SourceControl, changed_resources
from edit_sessions.services.workspace import FileSystem, LocalFileSystem, Workspace, WorkspaceFolder
from edit_sessions.storage.protocol import EditSessionStore

__all__ = [
    'AUTO_RESUME_KEY',
    'EDIT_SESSION_QUERY_PARAM',
    'ResolvedChange',
    'SessionReconciler',
    'edit_session_ref_from_uri',
    'with_edit_session_ref',
]

EDIT_SESSION_QUERY_PARAM = 'editSessionId'
AUTO_RESUME_KEY = 'auto-resume'


# ==============================================================================
# Continue-On URIs
# ==============================================================================


def with_edit_session_ref(uri: str, ref: str) -> str:
    """
    Append an edit session reference to a destination URI.

    Examples:
        >>> with_edit_session_ref('vscode://folder/project?x=1', 'abc')
        'vscode://folder/project?x=1&editSessionId=abc&continueOn=1'
    """
    parts = urlsplit(uri)
    addition = urlencode({EDIT_SESSION_QUERY_PARAM: ref, 'continueOn': '1'})
    query = f'{parts.query}&{addition}' if parts.query else addition
    return urlunsplit(parts._replace(query=query))


def edit_session_ref_from_uri(uri: str) -> str | None:
    """Extract the edit session reference appended by with_edit_session_ref, if any."""
    values = parse_qs(urlsplit(uri).query).get(EDIT_SESSION_QUERY_PARAM)
    return values[0] if values else None


# ==============================================================================
# Resume Plan
# ==============================================================================


@attrs.define(frozen=True)
class ResolvedChange:
    """A change bound to a path in the local workspace."""

    path: Path
    change: Change
    contents: bytes | None  # Decoded contents (additions only)


@attrs.define(frozen=True)
class _ResumePlan:
    changes: Sequence[ResolvedChange] = attrs.field(converter=tuple, factory=tuple)
    conflicts: Sequence[ResolvedChange] = attrs.field(converter=tuple, factory=tuple)
    unmatched: Sequence[Folder] = attrs.field(converter=tuple, factory=tuple)
    suggestions: Sequence[PartialMatchSuggestion] = attrs.field(converter=tuple, factory=tuple)


# ==============================================================================
# Session Reconciler
# ==============================================================================


class SessionReconciler:
    """
    Orchestrates the store and resume flows.

    Resumes on one reconciler are serialized: a resume triggered at startup and
    one triggered explicitly never interleave their reads and writes.
    """

    def __init__(
        self,
        store: EditSessionStore,
        workspace: Workspace,
        source_control: SourceControl,
        identity_provider: IdentityProvider,
        file_system: FileSystem | None = None,
        confirmation: ConfirmationPrompt | None = None,
        hasher: ContentHasher | None = None,
        logger: LoggerProtocol | None = None,
        pending: PendingOperationQueue | None = None,
    ) -> None:
        self.store = store
        self.workspace = workspace
        self.source_control = source_control
        self.identity_provider = identity_provider
        self.file_system = file_system or LocalFileSystem()
        self.confirmation = confirmation or AlwaysConfirm()
        self.logger = logger or NullLogger()

        self.builder = ChangeSetBuilder(workspace, self.file_system, identity_provider, self.logger)
        self.conflict_detector = ConflictDetector(self.file_system, hasher)
        self.pending = pending if pending is not None else PendingOperationQueue()  # An empty queue is falsy
        self._resume_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    async def store_session(self) -> StoreResult:
        """
        Capture the workspace's uncommitted changes and persist them.

        Returns:
            StoreResult - NO_EDITS when no tracked repository has changes

        Raises:
            EditSessionBuildError: If a changed file cannot be read
            SourceControlError: If git cannot be run
            SessionTooLargeError: If the store rejects the payload size
            EditSessionStoreError: If persisting fails
        """
        try:
            repositories = await self.source_control.repositories()
            change_set = await self.builder.build(repositories)
        except EditSessionError as e:
            await self.logger.error(f'Failed to store edit session, reason: {e}')
            raise

        if not change_set.has_edits:
            await self.logger.info('Skipping storing edit session as there are no edits to store.')
            return StoreResult(outcome=StoreOutcome.NO_EDITS)

        session = EditSession(version=EDIT_SESSION_SCHEMA_VERSION, folders=change_set.folders)

        await self.logger.info('Storing edit session...')
        try:
            ref = await self.store.write(session)
        except EditSessionError as e:
            await self.logger.error(f'Failed to store edit session, reason: {e}')
            raise
        await self.logger.info(f'Stored edit session with ref {ref}.')

        return StoreResult(
            outcome=StoreOutcome.STORED,
            ref=ref,
            folder_count=len(session.folders),
            change_count=session.change_count,
        )

    async def has_edit_session(self) -> bool:
        """Whether any tracked repository currently has changed resources."""
        for repository in await self.source_control.repositories():
            if changed_resources(repository):
                return True
        return False

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    async def resume(
        self,
        ref: str | None = None,
        *,
        partial_matches_enabled: bool = False,
        force: bool = False,
        silent: bool = False,
    ) -> ResumeResult:
        """
        Resume an edit session into the workspace.

        Args:
            ref: Store reference, or None for the most recent edit session
            partial_matches_enabled: Allow partial identity matches to be considered
            force: Accept eligible partial identity matches
            silent: Background resume - do nothing when not signed in, and stay
                quiet when there is nothing to resume

        Returns:
            ResumeResult describing the outcome

        Raises:
            EditSessionApplyError: If applying fails partway (remote edit session kept)
            InvalidEditSessionError: If the edit session is malformed or unsafe
            EditSessionStoreError: If reading or deleting the remote edit session fails
        """
        async with self._resume_lock:
            try:
                return await self._resume(ref, partial_matches_enabled, force, silent)
            except EditSessionError as e:
                await self.logger.error(f'Failed to resume edit session, reason: {e}')
                raise

    async def _resume(
        self,
        ref: str | None,
        partial_matches_enabled: bool,
        force: bool,
        silent: bool,
    ) -> ResumeResult:
        # Nothing to resume into
        if self.workspace.is_empty:
            await self.logger.info('Skipping resuming edit session as no workspace folder is open.')
            return ResumeResult(outcome=ResumeOutcome.EMPTY_WORKSPACE, ref=ref)

        await self.logger.info(
            f'Resuming edit session with ref {ref}...' if ref is not None else 'Resuming edit session...'
        )

        if silent and not self.store.is_signed_in:
            await self.logger.info('Skipping resuming edit session as the store is not signed in.')
            return ResumeResult(outcome=ResumeOutcome.NOT_SIGNED_IN, ref=ref)

        # Fetch
        try:
            stored = await self.store.read(ref)
        except IncompatibleSessionVersionError as e:
            return await self._reject_version(ref, e.version)

        if stored is None:
            if ref is None and not silent:
                await self.logger.info('There are no edit sessions to resume.')
            elif ref is not None:
                await self.logger.warning(f'Could not resume edit session contents for ID {ref}.')
            return ResumeResult(outcome=ResumeOutcome.NOTHING_TO_RESUME, ref=ref)

        session, ref = stored.session, stored.ref

        # Version check
        if session.version > EDIT_SESSION_SCHEMA_VERSION:
            return await self._reject_version(ref, session.version)

        # Reconcile - everything is resolved before anything is written
        plan = await self._generate_changes(session, ref, partial_matches_enabled, force)

        if plan.suggestions:
            await self.logger.info(
                f'You have a pending edit session {ref} that partially matches this workspace. '
                f'Resume it with force to apply it anyway.'
            )
        if plan.unmatched:
            return ResumeResult(
                outcome=ResumeOutcome.NO_MATCHING_FOLDER,
                ref=ref,
                session_version=session.version,
                partial_matches=plan.suggestions,
            )
        if not plan.changes:
            await self.logger.info(f'Edit session {ref} has no changes to apply.')
            return ResumeResult(outcome=ResumeOutcome.NO_CHANGES, ref=ref, session_version=session.version)

        conflicting_paths = [str(resolved.path) for resolved in plan.conflicts]
        if plan.conflicts:
            await self.logger.warning(
                f'Resuming edit session {ref} will overwrite {len(plan.conflicts)} locally changed file(s).'
            )
            if not await self.confirmation.confirm([resolved.path for resolved in plan.conflicts]):
                await self.logger.info(f'Resuming edit session {ref} was cancelled.')
                return ResumeResult(
                    outcome=ResumeOutcome.DECLINED,
                    ref=ref,
                    session_version=session.version,
                    conflicting_paths=conflicting_paths,
                )

        # Apply
        applied = await self._apply(ref, plan.changes)

        # Cleanup - only once every change is on disk
        await self.logger.info(
            f'Deleting edit session with ref {ref} after successfully applying it to current workspace...'
        )
        await self.store.delete(ref)
        await self.logger.info(f'Deleted edit session with ref {ref}.')

        return ResumeResult(
            outcome=ResumeOutcome.APPLIED,
            ref=ref,
            session_version=session.version,
            changes_applied=applied,
            conflicting_paths=conflicting_paths,
            remote_deleted=True,
        )

    async def _reject_version(self, ref: str | None, version: int) -> ResumeResult:
        await self.logger.error(
            f'Edit session {ref} uses schema version {version}, newer than the supported version '
            f'{EDIT_SESSION_SCHEMA_VERSION}. Please upgrade to a newer version of edit-sessions to resume it.'
        )
        return ResumeResult(outcome=ResumeOutcome.VERSION_REJECTED, ref=ref, session_version=version)

    async def _generate_changes(
        self,
        session: EditSession,
        ref: str,
        partial_matches_enabled: bool,
        force: bool,
    ) -> _ResumePlan:
        """Match every folder, then resolve all changes and the conflicting subset."""
        matches: list[FolderMatch] = await asyncio.gather(
            *(
                match_folder(
                    folder,
                    self.workspace.folders,
                    self.identity_provider,
                    partial_matches_enabled=partial_matches_enabled,
                    force=force,
                )
                for folder in session.folders
            )
        )

        suggestions = [
            PartialMatchSuggestion(
                ref=ref,
                session_folder=folder.name,
                local_folder=suggestion.name,
                local_path=str(suggestion.path),
            )
            for folder, match in zip(session.folders, matches)
            for suggestion in match.suggestions
        ]

        unmatched = [folder for folder, match in zip(session.folders, matches) if match.folder is None]
        if unmatched:
            for folder in unmatched:
                await self.logger.info(
                    f'Skipping applying {len(folder.working_changes)} changes from edit session with ref {ref} '
                    f"as no matching workspace folder was found for '{folder.name}'."
                )
            return _ResumePlan(unmatched=unmatched, suggestions=suggestions)

        repositories = await self.source_control.repositories()

        changes: list[ResolvedChange] = []
        conflicts: list[ResolvedChange] = []
        for folder, match in zip(session.folders, matches):
            local_folder = match.folder
            if local_folder is None:
                raise ValueError(f"Edit session folder '{folder.name}' reached resolution without a workspace folder")
            await self.logger.info(
                f"Matched edit session folder '{folder.name}' to {local_folder.path} ({match.kind.value})."
            )

            local_changes = self._local_changes(repositories, local_folder)
            resolved = [self._resolve(local_folder, change, session.version) for change in folder.working_changes]
            verdicts = await asyncio.gather(
                *(
                    self.conflict_detector.would_overwrite(
                        local_changes, item.path, item.change, version=session.version
                    )
                    for item in resolved
                )
            )
            changes.extend(resolved)
            conflicts.extend(item for item, conflicting in zip(resolved, verdicts) if conflicting)

        return _ResumePlan(changes=changes, conflicts=conflicts, suggestions=suggestions)

    def _resolve(self, folder: WorkspaceFolder, change: Change, version: int) -> ResolvedChange:
        path = resolve_change_path(folder.path, change.relative_file_path)
        match change:
            case AdditionChange():
                return ResolvedChange(path, change, decode_file_content(version, change.contents))
            case DeletionChange():
                return ResolvedChange(path, change, None)
            case _:
                raise ValueError(f'Unhandled change type: {type(change).__name__}')

    def _local_changes(self, repositories: Sequence[Repository], folder: WorkspaceFolder) -> set[Path]:
        """
        Locally changed paths within the matched folder.

        Covers repositories rooted in the folder as well as one rooted above it
        (the folder is a subdirectory of a larger checkout).
        """
        local_changes: set[Path] = set()
        for repository in repositories:
            local_changes.update(path for path in changed_resources(repository) if folder.contains(path))
        return local_changes

    async def _apply(self, ref: str, changes: Sequence[ResolvedChange]) -> int:
        applied = 0
        for resolved in changes:
            operation: Literal['write', 'delete']
            try:
                match resolved:
                    case ResolvedChange(change=AdditionChange(), contents=bytes() as contents):
                        operation = 'write'
                        await self.file_system.write_file(resolved.path, contents)
                    case ResolvedChange(change=DeletionChange()):
                        operation = 'delete'
                        if await self.file_system.exists(resolved.path):
                            await self.file_system.delete(resolved.path)
                    case _:
                        raise ValueError(
                            f'Unhandled change for {resolved.path}: {type(resolved.change).__name__} '
                            f'with contents {type(resolved.contents).__name__}'
                        )
            except OSError as e:
                await self.logger.error(f'Failed to {operation} {resolved.path} while resuming edit session {ref}: {e}')
                raise EditSessionApplyError(ref, resolved.path, operation, applied, len(changes)) from e
            applied += 1
        return applied

    # ------------------------------------------------------------------
    # Automatic flows
    # ------------------------------------------------------------------

    async def auto_resume(
        self,
        environment_ref: str | None = None,
        *,
        auto_resume_setting: Literal['onReload', 'off'] = 'onReload',
        partial_matches_enabled: bool = False,
    ) -> ResumeResult | None:
        """
        Resume at startup.

        A reference handed over by the environment (continue-on) is always resumed.
        Otherwise, with 'onReload', the latest edit session is resumed silently when
        signed in, or deferred until notify_signed_in() when not.

        Returns:
            ResumeResult, or None when nothing was attempted (disabled or deferred)
        """
        if environment_ref is not None:
            await self.logger.info(
                f'Resuming edit session, reason: found editSessionId {environment_ref} in environment...'
            )
            return await self.resume(environment_ref, partial_matches_enabled=partial_matches_enabled)

        if auto_resume_setting != 'onReload':
            return None

        if self.store.is_signed_in:
            await self.logger.info('Resuming edit session, reason: edit sessions enabled...')
            return await self.resume(silent=True, partial_matches_enabled=partial_matches_enabled)

        await self.logger.info('Deferring resuming edit session until signed in...')
        await self.pending.enqueue(
            AUTO_RESUME_KEY,
            lambda: self.resume(silent=True, partial_matches_enabled=partial_matches_enabled),
        )
        return None

    async def notify_signed_in(self) -> int:
        """Release operations deferred until sign-in. Returns how many ran."""
        return await self.pending.complete()

    async def auto_store(self, *, auto_store_setting: Literal['onShutdown', 'off'] = 'off') -> StoreResult | None:
        """Store at shutdown when enabled."""
        if auto_store_setting != 'onShutdown':
            return None
        return await self.store_session()

    async def continue_on(
        self,
        destination: str,
        *,
        continue_on_setting: Literal['prompt', 'off'] = 'prompt',
    ) -> ContinueOnResult:
        """
        Store the current edit session and attach its reference to a destination URI.

        The edit session is only stored when the store is signed in and there are edits.

        Raises:
            SessionTooLargeError: If the store rejects the payload size
            EditSessionStoreError: If persisting fails
        """
        if not self.store.is_signed_in:
            if continue_on_setting != 'off' and await self.has_edit_session():
                await self.logger.warning('Sign in to the edit session store to take your uncommitted changes along.')
            return ContinueOnResult(destination=destination)

        if not await self.has_edit_session():
            return ContinueOnResult(destination=destination)

        result = await self.store_session()
        if result.ref is None:
            await self.logger.warning('Failed to store edit session when continuing on.')
            return ContinueOnResult(destination=destination)

        uri = with_edit_session_ref(destination, result.ref)
        await self.logger.info(f'Opening {uri}')
        return ContinueOnResult(destination=uri, ref=result.ref, stored=True)
