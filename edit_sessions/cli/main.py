#!/usr/bin/env python3
"""
Command-line interface for edit-sessions.

Store uncommitted edits from the workspace folders and resume them elsewhere.
"""

from __future__ import annotations

import asyncio
import traceback
from collections.abc import Sequence
from pathlib import Path

import typer

from edit_sessions.cli.logger import CLILogger
from edit_sessions.config.settings import settings
from edit_sessions.exceptions import EditSessionApplyError, EditSessionError, SessionTooLargeError
from edit_sessions.protocols import AlwaysConfirm, ConfirmationPrompt
from edit_sessions.schemas.operations import ResumeOutcome, ResumeResult, StoreOutcome
from edit_sessions.schemas.session import AdditionChange, DeletionChange
from edit_sessions.services.git import GitIdentityProvider, GitSourceControl
from edit_sessions.services.reconciler import SessionReconciler, edit_session_ref_from_uri
from edit_sessions.services.workspace import Workspace
from edit_sessions.storage.factory import open_store
from edit_sessions.storage.gist import GistStore
from edit_sessions.storage.protocol import EditSessionStore

app = typer.Typer(
    name='edit-sessions',
    help='Store uncommitted edits and resume them on another machine',
    add_completion=False,
)

# Shared options
FOLDER_OPTION = typer.Option(None, '--folder', '-F', help='Workspace folder (repeatable, default: current directory)')
STORE_OPTION = typer.Option(
    None, '--store', '-s', help='Store location: gist://<gist-id> or a directory (default: settings)'
)
GIST_TOKEN_OPTION = typer.Option(None, '--gist-token', help='GitHub token (or use GITHUB_TOKEN env)')
VERBOSE_OPTION = typer.Option(False, '--verbose', '-v', help='Verbose output')


class TyperConfirmation:
    """Asks on the terminal before overwriting locally changed files."""

    async def confirm(self, conflicting_paths: Sequence[Path]) -> bool:
        typer.secho('Resuming will overwrite local changes to:', fg=typer.colors.YELLOW)
        for path in conflicting_paths:
            typer.echo(f'  - {path}')
        return typer.confirm('Overwrite these files?', default=False)


def _workspace(folders: list[Path] | None) -> Workspace:
    paths = folders or [Path.cwd()]
    for path in paths:
        if not path.is_dir():
            typer.secho(f'Error: Workspace folder does not exist: {path}', fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
    return Workspace.from_paths(paths)


def _require_signed_in(store: EditSessionStore) -> None:
    if store.is_signed_in:
        return
    typer.secho('Error: GitHub token required to write to Gist storage.', fg=typer.colors.RED, err=True)
    typer.echo('Provide via --gist-token or set GITHUB_TOKEN environment variable.')
    typer.echo()
    typer.echo('To create a token:')
    typer.echo('  1. Go to https://github.com/settings/tokens')
    typer.echo('  2. Generate new token (classic)')
    typer.echo("  3. Select 'gist' scope")
    typer.echo('  4. Copy the token')
    raise typer.Exit(1)


def _reconciler(
    store: EditSessionStore,
    workspace: Workspace,
    logger: CLILogger,
    confirmation: ConfirmationPrompt | None = None,
) -> SessionReconciler:
    return SessionReconciler(
        store=store,
        workspace=workspace,
        source_control=GitSourceControl(workspace),
        identity_provider=GitIdentityProvider(),
        confirmation=confirmation,
        logger=logger,
    )


async def _fail(logger: CLILogger, message: str, error: Exception, verbose: bool) -> None:
    """Report an unexpected exception and exit."""
    await logger.error(f'{message}: {error}')
    if verbose:
        traceback.print_exc()
    raise typer.Exit(1)


# ==============================================================================
# store
# ==============================================================================


@app.command()
def store(
    folders: list[Path] | None = FOLDER_OPTION,
    store_location: str | None = STORE_OPTION,
    gist_token: str | None = GIST_TOKEN_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Store the uncommitted changes of the workspace folders."""
    asyncio.run(_store_async(folders, store_location, gist_token, verbose))


async def _store_async(
    folders: list[Path] | None,
    store_location: str | None,
    gist_token: str | None,
    verbose: bool,
) -> None:
    """Async implementation of store command."""
    logger = CLILogger(verbose=verbose)

    try:
        workspace = _workspace(folders)
        edit_store = open_store(store_location, gist_token)
        _require_signed_in(edit_store)

        result = await _reconciler(edit_store, workspace, logger).store_session()

        if result.outcome == StoreOutcome.NO_EDITS:
            typer.echo('No edits to store.')
            return

        typer.secho('✓ Edit session stored!', fg=typer.colors.GREEN)
        typer.echo(f'  Ref: {result.ref}')
        typer.echo(f'  Folders: {result.folder_count}')
        typer.echo(f'  Changes: {result.change_count}')
        if isinstance(edit_store, GistStore):
            typer.echo(f'  Gist ID: {edit_store.gist_id}')
        typer.echo()
        typer.echo('To resume, use:')
        typer.secho(f'  edit-sessions resume {result.ref}', fg=typer.colors.CYAN)

    except typer.Exit:
        raise
    except SessionTooLargeError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        typer.echo('Commit some of the changes, or raise EDIT_SESSIONS_MAX_SESSION_SIZE_MB.', err=True)
        raise typer.Exit(1)
    except EditSessionError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        await _fail(logger, 'Failed to store edit session', e, verbose)


# ==============================================================================
# resume
# ==============================================================================


@app.command()
def resume(
    ref: str | None = typer.Argument(None, help='Edit session ref or a URI carrying editSessionId (default: latest)'),
    folders: list[Path] | None = FOLDER_OPTION,
    store_location: str | None = STORE_OPTION,
    gist_token: str | None = GIST_TOKEN_OPTION,
    partial_matches: bool | None = typer.Option(
        None, '--partial-matches/--no-partial-matches', help='Consider partial folder identity matches'
    ),
    force: bool = typer.Option(False, '--force', help='Accept partial folder identity matches'),
    yes: bool = typer.Option(False, '--yes', '-y', help='Overwrite locally changed files without asking'),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Resume an edit session into the workspace folders.

    Locally changed files that would be overwritten are listed first and need confirmation.
    """
    partial_matches_enabled = settings.PARTIAL_MATCHES_ENABLED if partial_matches is None else partial_matches
    asyncio.run(
        _resume_async(ref, folders, store_location, gist_token, partial_matches_enabled, force, yes, verbose)
    )


async def _resume_async(
    ref: str | None,
    folders: list[Path] | None,
    store_location: str | None,
    gist_token: str | None,
    partial_matches_enabled: bool,
    force: bool,
    yes: bool,
    verbose: bool,
) -> None:
    """Async implementation of resume command."""
    logger = CLILogger(verbose=verbose)

    try:
        if ref is not None and '://' in ref:
            ref = edit_session_ref_from_uri(ref)
            if ref is None:
                typer.secho('Error: URI does not carry an editSessionId.', fg=typer.colors.RED, err=True)
                raise typer.Exit(1)

        workspace = _workspace(folders)
        edit_store = open_store(store_location, gist_token)
        confirmation = AlwaysConfirm() if yes else TyperConfirmation()

        result = await _reconciler(edit_store, workspace, logger, confirmation).resume(
            ref, partial_matches_enabled=partial_matches_enabled, force=force
        )
        _print_resume_result(result)

    except typer.Exit:
        raise
    except EditSessionApplyError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        typer.echo(f'The edit session was kept. Retry with: edit-sessions resume {e.ref}', err=True)
        raise typer.Exit(1)
    except EditSessionError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        await _fail(logger, 'Failed to resume edit session', e, verbose)


def _print_resume_result(result: ResumeResult) -> None:
    match result.outcome:
        case ResumeOutcome.APPLIED:
            typer.secho('✓ Edit session resumed!', fg=typer.colors.GREEN)
            typer.echo(f'  Ref: {result.ref}')
            typer.echo(f'  Changes applied: {result.changes_applied}')
            if result.conflicting_paths:
                typer.echo(f'  Overwritten: {len(result.conflicting_paths)}')
        case ResumeOutcome.NOTHING_TO_RESUME:
            typer.echo('No edit session to resume.')
        case ResumeOutcome.NO_CHANGES:
            typer.echo(f'Edit session {result.ref} has no changes to apply.')
        case ResumeOutcome.DECLINED:
            typer.echo('Resume cancelled. Nothing was changed.')
        case ResumeOutcome.EMPTY_WORKSPACE | ResumeOutcome.NOT_SIGNED_IN:
            typer.echo('Nothing to resume into.')
        case ResumeOutcome.VERSION_REJECTED:
            typer.secho(
                f'Error: Edit session {result.ref} uses schema version {result.session_version}. '
                f'Upgrade edit-sessions to resume it.',
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        case ResumeOutcome.NO_MATCHING_FOLDER:
            typer.secho(
                f'Error: No workspace folder matches edit session {result.ref}.', fg=typer.colors.RED, err=True
            )
            for suggestion in result.partial_matches:
                typer.echo(f"  '{suggestion.session_folder}' partially matches {suggestion.local_path}", err=True)
            if result.partial_matches:
                typer.echo('Resume with --partial-matches --force to apply it anyway.', err=True)
            raise typer.Exit(1)
        case _:
            raise ValueError(f'Unhandled resume outcome: {result.outcome!r}')


# ==============================================================================
# list / show / delete
# ==============================================================================


@app.command('list')
def list_sessions(
    store_location: str | None = STORE_OPTION,
    gist_token: str | None = GIST_TOKEN_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List stored edit sessions, newest first."""
    asyncio.run(_list_async(store_location, gist_token, verbose))


async def _list_async(store_location: str | None, gist_token: str | None, verbose: bool) -> None:
    logger = CLILogger(verbose=verbose)

    try:
        refs = await open_store(store_location, gist_token).list_refs()
        if not refs:
            typer.echo('No edit sessions stored.')
            return
        for ref in refs:
            typer.echo(ref)
    except EditSessionError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        await _fail(logger, 'Failed to list edit sessions', e, verbose)


@app.command()
def show(
    ref: str | None = typer.Argument(None, help='Edit session ref (default: latest)'),
    store_location: str | None = STORE_OPTION,
    gist_token: str | None = GIST_TOKEN_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show the folders and changes of a stored edit session without applying it."""
    asyncio.run(_show_async(ref, store_location, gist_token, verbose))


async def _show_async(ref: str | None, store_location: str | None, gist_token: str | None, verbose: bool) -> None:
    logger = CLILogger(verbose=verbose)

    try:
        stored = await open_store(store_location, gist_token).read(ref)
        if stored is None:
            typer.secho(f'Error: Edit session not found: {ref or "latest"}', fg=typer.colors.RED, err=True)
            raise typer.Exit(1)

        typer.secho(f'Edit session {stored.ref}', bold=True)
        typer.echo(f'  Version: {stored.session.version}')
        typer.echo(f'  Changes: {stored.session.change_count}')
        for folder in stored.session.folders:
            typer.echo()
            typer.secho(f'  {folder.name}', bold=True)
            if folder.canonical_identity:
                typer.echo(f'    Identity: {folder.canonical_identity}')
            for change in folder.working_changes:
                match change:
                    case AdditionChange():
                        typer.secho(f'    + {change.relative_file_path}', fg=typer.colors.GREEN)
                    case DeletionChange():
                        typer.secho(f'    - {change.relative_file_path}', fg=typer.colors.RED)
                    case _:
                        raise ValueError(f'Unhandled change type: {type(change).__name__}')
    except typer.Exit:
        raise
    except EditSessionError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        await _fail(logger, 'Failed to show edit session', e, verbose)


@app.command()
def delete(
    ref: str = typer.Argument(..., help='Edit session ref'),
    store_location: str | None = STORE_OPTION,
    gist_token: str | None = GIST_TOKEN_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Delete a stored edit session."""
    asyncio.run(_delete_async(ref, store_location, gist_token, verbose))


async def _delete_async(ref: str, store_location: str | None, gist_token: str | None, verbose: bool) -> None:
    logger = CLILogger(verbose=verbose)

    try:
        edit_store = open_store(store_location, gist_token)
        _require_signed_in(edit_store)
        await edit_store.delete(ref)
        typer.secho(f'✓ Deleted edit session {ref}', fg=typer.colors.GREEN)
    except typer.Exit:
        raise
    except EditSessionError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        await _fail(logger, 'Failed to delete edit session', e, verbose)


# ==============================================================================
# continue
# ==============================================================================


@app.command('continue')
def continue_on(
    destination: str = typer.Argument(..., help='URI of the environment to continue in'),
    folders: list[Path] | None = FOLDER_OPTION,
    store_location: str | None = STORE_OPTION,
    gist_token: str | None = GIST_TOKEN_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Store the current edit session and print the destination URI carrying its ref."""
    asyncio.run(_continue_async(destination, folders, store_location, gist_token, verbose))


async def _continue_async(
    destination: str,
    folders: list[Path] | None,
    store_location: str | None,
    gist_token: str | None,
    verbose: bool,
) -> None:
    """Async implementation of continue command."""
    logger = CLILogger(verbose=verbose)

    try:
        workspace = _workspace(folders)
        edit_store = open_store(store_location, gist_token)

        result = await _reconciler(edit_store, workspace, logger).continue_on(
            destination, continue_on_setting=settings.CONTINUE_ON
        )

        if result.stored:
            typer.secho(f'✓ Stored edit session {result.ref}', fg=typer.colors.GREEN, err=True)
        typer.echo(result.destination)

    except typer.Exit:
        raise
    except EditSessionError as e:
        typer.secho(f'Error: {e}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        await _fail(logger, 'Failed to continue on', e, verbose)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == '__main__':
    main()
