"""Tests for workspace folder identity matching."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeIdentityProvider
from edit_sessions.schemas.session import Folder
from edit_sessions.services.identity import IdentityMatch, MatchKind, match_folder
from edit_sessions.services.workspace import WorkspaceFolder

ALPHA = WorkspaceFolder('alpha', Path('/work/alpha'), 0)
BETA = WorkspaceFolder('beta', Path('/work/beta'), 1)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    provider = FakeIdentityProvider()
    provider.identities = {ALPHA.path: 'local-alpha', BETA.path: 'local-beta'}
    return provider


class TestNameMatching:
    @pytest.mark.asyncio
    async def test_folder_without_identity_matches_by_name(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(Folder(name='beta'), [ALPHA, BETA], provider)

        assert result.kind == MatchKind.NAME
        assert result.folder == BETA

    @pytest.mark.asyncio
    async def test_name_mismatch_is_no_match(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(Folder(name='gamma'), [ALPHA, BETA], provider)

        assert result.kind == MatchKind.NONE
        assert not result.matched

    @pytest.mark.asyncio
    async def test_name_is_ignored_when_identity_recorded(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(Folder(name='alpha', canonical_identity='elsewhere'), [ALPHA], provider)

        assert result.kind == MatchKind.NONE


class TestIdentityMatching:
    @pytest.mark.asyncio
    async def test_exact_identity_wins(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(Folder(name='renamed', canonical_identity='local-beta'), [ALPHA, BETA], provider)

        assert result.kind == MatchKind.EXACT
        assert result.folder == BETA

    @pytest.mark.asyncio
    async def test_complete_classification_matches(self, provider: FakeIdentityProvider) -> None:
        provider.classifications[('local-alpha', 'remote')] = IdentityMatch.COMPLETE

        result = await match_folder(Folder(name='x', canonical_identity='remote'), [ALPHA, BETA], provider)

        assert result.kind == MatchKind.COMPLETE
        assert result.folder == ALPHA

    @pytest.mark.asyncio
    async def test_local_folder_without_identity_is_skipped(self, provider: FakeIdentityProvider) -> None:
        del provider.identities[ALPHA.path]
        provider.classifications[('local-beta', 'remote')] = IdentityMatch.COMPLETE

        result = await match_folder(Folder(name='alpha', canonical_identity='remote'), [ALPHA, BETA], provider)

        assert result.folder == BETA


class TestPartialMatching:
    @pytest.fixture(autouse=True)
    def partial_alpha(self, provider: FakeIdentityProvider) -> None:
        provider.classifications[('local-alpha', 'remote')] = IdentityMatch.PARTIAL

    @pytest.mark.asyncio
    async def test_partial_is_ignored_when_disabled(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(Folder(name='x', canonical_identity='remote'), [ALPHA, BETA], provider, force=True)

        assert result.kind == MatchKind.NONE
        assert result.suggestions == ()

    @pytest.mark.asyncio
    async def test_partial_without_force_is_only_suggested(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(
            Folder(name='x', canonical_identity='remote'), [ALPHA, BETA], provider, partial_matches_enabled=True
        )

        assert result.kind == MatchKind.NONE
        assert result.folder is None
        assert result.suggestions == (ALPHA,)

    @pytest.mark.asyncio
    async def test_partial_with_force_resolves(self, provider: FakeIdentityProvider) -> None:
        result = await match_folder(
            Folder(name='x', canonical_identity='remote'),
            [ALPHA, BETA],
            provider,
            partial_matches_enabled=True,
            force=True,
        )

        assert result.kind == MatchKind.PARTIAL
        assert result.folder == ALPHA

    @pytest.mark.asyncio
    async def test_scanning_continues_past_a_suggestion(self, provider: FakeIdentityProvider) -> None:
        provider.classifications[('local-beta', 'remote')] = IdentityMatch.COMPLETE

        result = await match_folder(
            Folder(name='x', canonical_identity='remote'), [ALPHA, BETA], provider, partial_matches_enabled=True
        )

        assert result.kind == MatchKind.COMPLETE
        assert result.folder == BETA
        assert result.suggestions == (ALPHA,)

    @pytest.mark.asyncio
    async def test_identity_beats_an_earlier_folder_with_the_same_name(self, provider: FakeIdentityProvider) -> None:
        first = WorkspaceFolder('project', Path('/a/project'), 0)
        second = WorkspaceFolder('project', Path('/b/project'), 1)
        provider.identities = {first.path: 'unrelated', second.path: 'remote'}

        result = await match_folder(Folder(name='project', canonical_identity='remote'), [first, second], provider)

        assert result.kind == MatchKind.EXACT
        assert result.folder == second
