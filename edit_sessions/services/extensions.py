"""
Profile extension membership reconciliation.

Every user profile lists the extensions it uses in an extensions file. An
installed extension referenced by no profile is garbage and gets uninstalled.
The reconciler keeps a membership index (extension key → profile locations)
up to date from profile add/remove events, extension add/remove events, and
profile-file change events, and reports changes made to a profile file by
another process to registered listeners.

Extension keys are '<lower-cased id>@<version>', so two versions of the same
extension are tracked independently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from pathlib import Path
from typing import Protocol

import attrs
import pydantic

from edit_sessions.base_model import StrictModel
from edit_sessions.protocols import LoggerProtocol, NullLogger

__all__ = [
    'ExtensionManager',
    'ExtensionRef',
    'ExtensionsChange',
    'JsonProfileScanner',
    'MembershipIndex',
    'Profile',
    'ProfileExtensionsReconciler',
    'ProfileScanner',
    'ProfilesService',
    'extension_key',
    'parse_extension_key',
]


# ==============================================================================
# Value Objects
# ==============================================================================


@attrs.define(frozen=True)
class ExtensionRef:
    """An extension identifier at a specific version."""

    id: str
    version: str


@attrs.define(frozen=True)
class Profile:
    id: str
    extensions_location: Path


@attrs.define(frozen=True)
class ExtensionsChange:
    """Extensions added to or removed from a profile file by another source."""

    profile_location: Path
    added: Sequence[str] = attrs.field(converter=tuple, factory=tuple)
    removed: Sequence[str] = attrs.field(converter=tuple, factory=tuple)


def extension_key(extension: ExtensionRef) -> str:
    return f'{extension.id.lower()}@{extension.version}'


def parse_extension_key(key: str) -> ExtensionRef | None:
    """Inverse of extension_key (the id comes back lower-cased). None if the key has no version."""
    extension_id, _, version = key.rpartition('@')
    if not extension_id or not version:
        return None
    return ExtensionRef(extension_id, version)


# ==============================================================================
# Collaborators
# ==============================================================================


class ProfilesService(Protocol):
    @property
    def profiles(self) -> Sequence[Profile]: ...


class ProfileScanner(Protocol):
    async def scan_profile_extensions(self, location: Path) -> Sequence[ExtensionRef]: ...


class ExtensionManager(Protocol):
    async def get_all_user_installed(self) -> Sequence[ExtensionRef]: ...
    async def mark_as_uninstalled(self, extensions: Sequence[ExtensionRef]) -> None: ...


class _ProfileExtensionIdentifier(StrictModel):
    id: str


class _ProfileExtensionEntry(pydantic.BaseModel):
    # Profile files carry more fields (location, metadata, ...) than are needed here
    model_config = pydantic.ConfigDict(extra='ignore', frozen=True)

    identifier: _ProfileExtensionIdentifier
    version: str


_PROFILE_FILE_ADAPTER = pydantic.TypeAdapter(list[_ProfileExtensionEntry])


class JsonProfileScanner:
    """
    Reads a profile's extensions file: a JSON array of
    {"identifier": {"id": ...}, "version": ...} entries.

    A missing file means the profile has no extensions.
    """

    async def scan_profile_extensions(self, location: Path) -> Sequence[ExtensionRef]:
        try:
            data = await asyncio.to_thread(location.read_bytes)
        except FileNotFoundError:
            return []
        entries = _PROFILE_FILE_ADAPTER.validate_json(data)
        return [ExtensionRef(entry.identifier.id, entry.version) for entry in entries]


# ==============================================================================
# Membership Index
# ==============================================================================


class MembershipIndex:
    """Key → set of sources. A key is dropped as soon as its last source is removed."""

    def __init__(self) -> None:
        self._members: dict[str, set[Path]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)

    def keys(self) -> list[str]:
        return list(self._members)

    def add(self, key: str, source: Path) -> None:
        self._members.setdefault(key, set()).add(source)

    def remove(self, key: str, source: Path) -> None:
        sources = self._members.get(key)
        if sources is not None:
            sources.discard(source)
        if not sources:
            self._members.pop(key, None)

    def remove_source(self, source: Path) -> None:
        for key in self.keys():
            self.remove(key, source)

    def sources_of(self, key: str) -> frozenset[Path]:
        return frozenset(self._members.get(key, ()))

    def keys_for(self, source: Path) -> set[str]:
        return {key for key, sources in self._members.items() if source in sources}


# ==============================================================================
# Reconciler
# ==============================================================================

ChangeListener = Callable[[ExtensionsChange], Awaitable[None]]


class ProfileExtensionsReconciler:
    """Keeps profile memberships current and uninstalls extensions no profile references."""

    def __init__(
        self,
        profiles_service: ProfilesService,
        scanner: ProfileScanner,
        extension_manager: ExtensionManager,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self.profiles_service = profiles_service
        self.scanner = scanner
        self.extension_manager = extension_manager
        self.logger = logger or NullLogger()
        self.index = MembershipIndex()
        self._listeners: list[ChangeListener] = []

    def on_did_change_by_another_source(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    async def initialize(self) -> None:
        await self.on_did_change_profiles(self.profiles_service.profiles, [])
        await self._uninstall_unreferenced()

    async def on_did_change_profiles(self, added: Sequence[Profile], removed: Sequence[Profile]) -> None:
        """Drop removed profiles' memberships (uninstalling the unreferenced), then scan added ones."""
        if removed:
            try:
                for profile in removed:
                    self.index.remove_source(profile.extensions_location)
                await self._uninstall_unreferenced()
            except Exception as e:
                await self.logger.error(f'Failed to remove extensions of removed profiles: {e}')

        if added:
            try:
                await asyncio.gather(*(self._populate(profile.extensions_location) for profile in added))
            except Exception as e:
                await self.logger.error(f'Failed to scan extensions of added profiles: {e}')

    async def on_add_extensions(self, extensions: Iterable[ExtensionRef], profile_location: Path) -> None:
        for extension in extensions:
            self.index.add(extension_key(extension), profile_location)

    async def on_did_add_extensions(
        self,
        extensions: Iterable[ExtensionRef],
        profile_location: Path,
        *,
        error: bool = False,
    ) -> None:
        for extension in extensions:
            if error:
                self.index.remove(extension_key(extension), profile_location)
            else:
                self.index.add(extension_key(extension), profile_location)

    async def on_remove_extensions(self, extensions: Iterable[ExtensionRef], profile_location: Path) -> None:
        for extension in extensions:
            self.index.remove(extension_key(extension), profile_location)

    async def on_did_remove_extensions(
        self,
        extensions: Iterable[ExtensionRef],
        profile_location: Path,
        *,
        error: bool = False,
    ) -> None:
        to_uninstall: list[ExtensionRef] = []
        for extension in extensions:
            key = extension_key(extension)
            if error:
                self.index.add(key, profile_location)
                continue
            self.index.remove(key, profile_location)
            if key not in self.index:
                to_uninstall.append(extension)

        if to_uninstall:
            await self.extension_manager.mark_as_uninstalled(to_uninstall)

    async def on_did_files_change(self, changed_paths: Iterable[Path]) -> list[ExtensionsChange]:
        """
        Rescan every profile whose extensions file changed.

        Returns:
            The changes found (also delivered to listeners)
        """
        changed = set(changed_paths)
        changes = []
        for profile in self.profiles_service.profiles:
            if profile.extensions_location in changed:
                change = await self._rescan(profile.extensions_location)
                if change is not None:
                    changes.append(change)
        return changes

    async def _rescan(self, location: Path) -> ExtensionsChange | None:
        extensions = await self.scanner.scan_profile_extensions(location)
        cached = self.index.keys_for(location)

        added: list[str] = []
        scanned: set[str] = set()
        for extension in extensions:
            key = extension_key(extension)
            scanned.add(key)
            if key not in cached:
                added.append(extension.id)
                self.index.add(key, location)

        removed: list[str] = []
        for key in sorted(cached - scanned):
            extension = parse_extension_key(key)
            if extension is not None:
                removed.append(extension.id)
                self.index.remove(key, location)

        if not added and not removed:
            return None

        change = ExtensionsChange(location, added, removed)
        for listener in list(self._listeners):
            await listener(change)
        return change

    async def _populate(self, location: Path) -> None:
        for extension in await self.scanner.scan_profile_extensions(location):
            self.index.add(extension_key(extension), location)

    async def _uninstall_unreferenced(self) -> None:
        installed = await self.extension_manager.get_all_user_installed()
        to_uninstall = [extension for extension in installed if extension_key(extension) not in self.index]
        if to_uninstall:
            await self.logger.info(f'Uninstalling {len(to_uninstall)} extension(s) not referenced by any profile.')
            await self.extension_manager.mark_as_uninstalled(to_uninstall)
