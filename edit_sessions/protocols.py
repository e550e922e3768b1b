"""
Shared protocols for edit-sessions services.

This module contains Protocol definitions used across multiple services.
Having a single source of truth for protocols prevents type incompatibility
issues when the same protocol is defined in multiple modules.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol


class LoggerProtocol(Protocol):
    """
    Protocol for async logger - enables services to work with any logging implementation.

    Implementations:
    - DualLogger (mcp/utils.py): Logs to both stderr and MCP client
    - CLILogger (cli/logger.py): Logs to stdout with optional verbose mode
    - NullLogger (below): No-op implementation for when logging is optional
    """

    async def info(self, message: str) -> None: ...
    async def warning(self, message: str) -> None: ...
    async def error(self, message: str) -> None: ...


class NullLogger:
    """
    No-op logger implementation for when logging is optional.

    Use this when a function requires a LoggerProtocol but the caller
    doesn't need logging output.
    """

    async def info(self, message: str) -> None:
        pass

    async def warning(self, message: str) -> None:
        pass

    async def error(self, message: str) -> None:
        pass


class ConfirmationPrompt(Protocol):
    """Asks the user whether resuming may overwrite locally changed files."""

    async def confirm(self, conflicting_paths: Sequence[Path]) -> bool: ...


class AlwaysConfirm:
    """Confirmation prompt that accepts every overwrite (non-interactive callers)."""

    async def confirm(self, conflicting_paths: Sequence[Path]) -> bool:
        return True


class NeverConfirm:
    """Confirmation prompt that declines every overwrite."""

    async def confirm(self, conflicting_paths: Sequence[Path]) -> bool:
        return False
