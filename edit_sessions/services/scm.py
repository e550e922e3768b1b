"""
Source-control enumeration interface.

A repository exposes resource groups (e.g. staged, unstaged, untracked), each
listing the paths it considers changed. The same path may appear in more
than one group.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import attrs

__all__ = [
    'Repository',
    'ResourceGroup',
    'SourceControl',
    'changed_resources',
]


@attrs.define(frozen=True)
class ResourceGroup:
    id: str
    resources: Sequence[Path] = attrs.field(converter=tuple, factory=tuple)


@attrs.define(frozen=True)
class Repository:
    root: Path | None
    groups: Sequence[ResourceGroup] = attrs.field(converter=tuple, factory=tuple)


class SourceControl(Protocol):
    """Enumerates the repositories tracked in the workspace."""

    async def repositories(self) -> Sequence[Repository]: ...


def changed_resources(repository: Repository) -> list[Path]:
    """
    Union of all resource groups' paths, in first-appearance order.

    A path might appear in more than one resource group (staged and then
    modified again); it is returned once.
    """
    seen: dict[Path, None] = {}
    for group in repository.groups:
        for resource in group.resources:
            seen.setdefault(resource, None)
    return list(seen)
