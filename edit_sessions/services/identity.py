"""
Workspace folder identity matching.

Resolves which local workspace folder an edit session folder belongs to.
Identities (e.g. derived from a repository's remote) survive folder renames
and relocations, so they take precedence over names whenever the edit session
recorded one. Partial identity matches are weaker: they require opt-in via
partial_matches_enabled, and even then only resolve with force=True; without
force they are surfaced as suggestions and scanning continues.

match_folder is a pure function of its inputs - no instance state, no
configuration lookups - so every branch is independently testable.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from typing import Protocol

import attrs

from edit_sessions.schemas.session import Folder
from edit_sessions.services.workspace import WorkspaceFolder

__all__ = [
    'FolderMatch',
    'IdentityMatch',
    'IdentityProvider',
    'MatchKind',
    'match_folder',
]


class IdentityMatch(enum.Enum):
    """Provider classification of two identities that are not byte-equal."""

    COMPLETE = 'complete'
    PARTIAL = 'partial'
    NONE = 'none'


class IdentityProvider(Protocol):
    """Computes and compares canonical workspace folder identities."""

    async def identify(self, folder: WorkspaceFolder) -> str | None: ...
    async def classify(self, local_identity: str, remote_identity: str) -> IdentityMatch: ...


class MatchKind(enum.Enum):
    EXACT = 'exact'  # Identities byte-equal
    COMPLETE = 'complete'  # Provider says equivalent
    PARTIAL = 'partial'  # Partial match accepted with force
    NAME = 'name'  # No identity recorded; folder names equal
    NONE = 'none'


@attrs.define(frozen=True)
class FolderMatch:
    """Outcome of matching one edit session folder against the workspace."""

    kind: MatchKind
    folder: WorkspaceFolder | None = None
    # Partially matching folders that were NOT resolved (advisory)
    suggestions: Sequence[WorkspaceFolder] = attrs.field(converter=tuple, factory=tuple)

    @property
    def matched(self) -> bool:
        return self.folder is not None


async def match_folder(
    remote_folder: Folder,
    local_folders: Sequence[WorkspaceFolder],
    identity_provider: IdentityProvider,
    *,
    partial_matches_enabled: bool = False,
    force: bool = False,
) -> FolderMatch:
    """
    Match an edit session folder to a local workspace folder.

    Args:
        remote_folder: Folder recorded in the edit session
        local_folders: Workspace folders, in workspace order
        identity_provider: Computes local identities and classifies pairs
        partial_matches_enabled: Whether partial identity matches are eligible at all
        force: Accept an eligible partial match instead of only suggesting it

    Returns:
        FolderMatch - folder is None when nothing matched
    """
    if remote_folder.canonical_identity is None:
        for local_folder in local_folders:
            if local_folder.name == remote_folder.name:
                return FolderMatch(MatchKind.NAME, local_folder)
        return FolderMatch(MatchKind.NONE)

    remote_identity = remote_folder.canonical_identity
    suggestions: list[WorkspaceFolder] = []

    for local_folder in local_folders:
        local_identity = await identity_provider.identify(local_folder)
        if local_identity is None:
            continue

        if local_identity == remote_identity:
            return FolderMatch(MatchKind.EXACT, local_folder, suggestions)

        match await identity_provider.classify(local_identity, remote_identity):
            case IdentityMatch.COMPLETE:
                return FolderMatch(MatchKind.COMPLETE, local_folder, suggestions)
            case IdentityMatch.PARTIAL if partial_matches_enabled:
                if force:
                    return FolderMatch(MatchKind.PARTIAL, local_folder, suggestions)
                suggestions.append(local_folder)
            case IdentityMatch.PARTIAL | IdentityMatch.NONE:
                pass
            case unknown:
                raise ValueError(f'Unhandled identity match: {unknown!r}')

    return FolderMatch(MatchKind.NONE, suggestions=suggestions)
