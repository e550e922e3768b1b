"""
Edit Sessions MCP Server.

Provides tools for storing and resuming the uncommitted edits of the project
the server was started in.

Setup:
    claude mcp add --scope user edit-sessions -- uvx --from edit-sessions edit-sessions-mcp

Example:
    # Store the current uncommitted edits
    store_edit_session()

    # Resume the latest edit session, overwriting conflicting local changes
    resume_edit_session(overwrite_conflicts=True)
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import Any, Literal

import attrs
from mcp.server.fastmcp import Context, FastMCP

from edit_sessions.config.settings import settings
from edit_sessions.exceptions import EditSessionError
from edit_sessions.mcp.utils import DualLogger, ServerLogger
from edit_sessions.protocols import AlwaysConfirm, LoggerProtocol, NeverConfirm
from edit_sessions.schemas.operations import ResumeResult, StoreResult
from edit_sessions.services.git import GitIdentityProvider, GitSourceControl
from edit_sessions.services.pending import PendingOperationQueue
from edit_sessions.services.reconciler import SessionReconciler
from edit_sessions.services.workspace import Workspace
from edit_sessions.storage.factory import open_store
from edit_sessions.storage.gist import GistStore
from edit_sessions.storage.local import LocalFileSystemStore

# Ref handed over by an environment opened through continue-on
EDIT_SESSION_ID_ENV = 'EDIT_SESSION_ID'

# ==============================================================================
# Server State (immutable)
# ==============================================================================


@attrs.define(frozen=True)
class ServerState:
    """
    Immutable server state initialized at startup.

    The store and pending queue are shared by every tool call; reconcilers are
    built per call so each one logs to its caller's context.
    """

    workspace: Workspace
    store: GistStore | LocalFileSystemStore
    source_control: GitSourceControl
    identity_provider: GitIdentityProvider
    pending: PendingOperationQueue
    resume_lock: asyncio.Lock

    def reconciler(self, logger: LoggerProtocol, overwrite_conflicts: bool = False) -> SessionReconciler:
        return SessionReconciler(
            store=self.store,
            workspace=self.workspace,
            source_control=self.source_control,
            identity_provider=self.identity_provider,
            confirmation=AlwaysConfirm() if overwrite_conflicts else NeverConfirm(),
            logger=logger,
            pending=self.pending,
        )


# ==============================================================================
# Lifespan Management
# ==============================================================================


@contextlib.asynccontextmanager
async def lifespan(mcp_server: FastMCP) -> AsyncIterator[None]:
    """
    Manage server lifecycle.

    Startup resumes the edit session handed over by the environment (or the
    latest one, per EDIT_SESSIONS_AUTO_RESUME); shutdown stores the current
    one when EDIT_SESSIONS_AUTO_STORE is 'onShutdown'.
    """
    logger = ServerLogger()
    workspace = Workspace.from_paths([Path.cwd()])

    state = ServerState(
        workspace=workspace,
        store=open_store(),
        source_control=GitSourceControl(workspace),
        identity_provider=GitIdentityProvider(),
        pending=PendingOperationQueue(),
        resume_lock=asyncio.Lock(),
    )

    # Register tools with closure over state
    register_tools(state)

    await logger.info(f'Workspace: {workspace.folders[0].path}')
    await logger.info(f'Store: {type(state.store).__name__} (signed in: {state.store.is_signed_in})')

    # A failed startup resume keeps its edit session; the server still starts
    try:
        async with state.resume_lock:
            await state.reconciler(logger).auto_resume(
                os.environ.get(EDIT_SESSION_ID_ENV),
                auto_resume_setting=settings.AUTO_RESUME,
                partial_matches_enabled=settings.PARTIAL_MATCHES_ENABLED,
            )
    except EditSessionError as e:
        await logger.warning(f'Starting without resuming the edit session: {e}')

    try:
        yield  # Setup successful; application active
    finally:
        await shutdown(state, logger, auto_store_setting=settings.AUTO_STORE)


async def shutdown(
    state: ServerState,
    logger: LoggerProtocol,
    *,
    auto_store_setting: Literal['onShutdown', 'off'],
) -> None:
    """Store the edit session if enabled, then drop pending operations even when storing fails."""
    try:
        await state.reconciler(logger).auto_store(auto_store_setting=auto_store_setting)
    except EditSessionError as e:
        await logger.warning(f'Shutting down without storing the edit session: {e}')
    finally:
        state.pending.cancel()


# ==============================================================================
# Server Setup
# ==============================================================================

server = FastMCP('edit-sessions', lifespan=lifespan)


# ==============================================================================
# Tool Registration (Closure Pattern)
# ==============================================================================


def register_tools(state: ServerState) -> None:
    """
    Register MCP tools with closure over server state.

    Args:
        state: Server state containing the store and adapters
    """

    @server.tool()
    async def store_edit_session(ctx: Context[Any, Any, Any] | None = None) -> StoreResult:
        """
        Store the uncommitted changes of the current project as an edit session.

        Returns:
            StoreResult with the edit session ref, or outcome 'no_edits'
        """
        if ctx is None:
            raise RuntimeError('Context is required - must be called via FastMCP')
        return await state.reconciler(DualLogger(ctx)).store_session()

    @server.tool()
    async def resume_edit_session(
        ref: str | None = None,
        partial_matches_enabled: bool | None = None,
        force: bool = False,
        overwrite_conflicts: bool = False,
        ctx: Context[Any, Any, Any] | None = None,
    ) -> ResumeResult:
        """
        Resume an edit session into the current project.

        Args:
            ref: Edit session ref (default: latest)
            partial_matches_enabled: Consider partial folder identity matches (default: settings)
            force: Accept partial folder identity matches
            overwrite_conflicts: Overwrite locally changed files (otherwise a conflict declines the resume)

        Returns:
            ResumeResult - outcome 'declined' lists the conflicting paths
        """
        if ctx is None:
            raise RuntimeError('Context is required - must be called via FastMCP')
        if partial_matches_enabled is None:
            partial_matches_enabled = settings.PARTIAL_MATCHES_ENABLED

        async with state.resume_lock:
            return await state.reconciler(DualLogger(ctx), overwrite_conflicts).resume(
                ref, partial_matches_enabled=partial_matches_enabled, force=force
            )

    @server.tool()
    async def list_edit_sessions() -> Sequence[str]:
        """List stored edit session refs, newest first."""
        return await state.store.list_refs()

    @server.tool()
    async def sign_in(token: str, ctx: Context[Any, Any, Any] | None = None) -> int:
        """
        Provide the GitHub token for Gist storage and run operations deferred until sign-in.

        Args:
            token: GitHub Personal Access Token with 'gist' scope

        Returns:
            Number of deferred operations run
        """
        if ctx is None:
            raise RuntimeError('Context is required - must be called via FastMCP')
        logger = DualLogger(ctx)

        if isinstance(state.store, GistStore):
            state.store.sign_in(token)
            await logger.info('Signed in to Gist storage.')
        else:
            await logger.info('Local storage needs no sign-in.')

        async with state.resume_lock:
            return await state.pending.complete()


# ==============================================================================
# Server Entry Point
# ==============================================================================


def main() -> None:
    """Run the MCP server."""
    server.run()


if __name__ == '__main__':
    main()
