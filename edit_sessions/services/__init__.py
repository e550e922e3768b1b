"""Service layer for edit session operations."""

from edit_sessions.services.changes import ChangeSet, ChangeSetBuilder
from edit_sessions.services.conflicts import ConflictDetector
from edit_sessions.services.extensions import MembershipIndex, ProfileExtensionsReconciler
from edit_sessions.services.git import GitIdentityProvider, GitSourceControl
from edit_sessions.services.hashing import ContentHasher
from edit_sessions.services.identity import FolderMatch, IdentityMatch, MatchKind, match_folder
from edit_sessions.services.pending import PendingOperationQueue
from edit_sessions.services.reconciler import SessionReconciler, with_edit_session_ref
from edit_sessions.services.workspace import LocalFileSystem, Workspace, WorkspaceFolder

__all__ = [
    'ChangeSet',
    'ChangeSetBuilder',
    'ConflictDetector',
    'ContentHasher',
    'FolderMatch',
    'GitIdentityProvider',
    'GitSourceControl',
    'IdentityMatch',
    'LocalFileSystem',
    'MatchKind',
    'MembershipIndex',
    'PendingOperationQueue',
    'ProfileExtensionsReconciler',
    'SessionReconciler',
    'Workspace',
    'WorkspaceFolder',
    'match_folder',
    'with_edit_session_ref',
]
