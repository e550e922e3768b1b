"""
Path utilities for edit sessions.

Edit sessions record file locations relative to their workspace folder, with
forward slashes, so they can be re-rooted on another machine. Relative paths
read from a store are untrusted: they must not escape the folder they are
applied to.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from edit_sessions.exceptions import InvalidEditSessionError

__all__ = ['relative_file_path', 'resolve_change_path']


def relative_file_path(folder_root: Path, path: Path) -> str:
    """
    Path of a resource relative to its workspace folder, POSIX-style.

    Falls back to the absolute POSIX path when path is outside folder_root.

    Examples:
        >>> relative_file_path(Path('/work/project'), Path('/work/project/src/a.py'))
        'src/a.py'
    """
    try:
        return path.relative_to(folder_root).as_posix()
    except ValueError:
        return path.as_posix()


def resolve_change_path(folder_root: Path, relative_path: str) -> Path:
    """
    Bind a recorded relative path to a local folder root.

    Raises:
        InvalidEditSessionError: If the path is absolute or escapes folder_root
    """
    posix = PurePosixPath(relative_path)
    if posix.is_absolute() or '..' in posix.parts or not posix.parts:
        raise InvalidEditSessionError(f'Unsafe path in edit session: {relative_path!r}')

    resolved = folder_root.joinpath(*posix.parts)
    if not resolved.is_relative_to(folder_root):
        raise InvalidEditSessionError(f'Unsafe path in edit session: {relative_path!r}')
    return resolved
