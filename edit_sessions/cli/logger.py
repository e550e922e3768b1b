"""
CLI logger adapter - implements LoggerProtocol for command-line usage.

Info messages are only shown in verbose mode; warnings and errors go to stderr.
"""

from __future__ import annotations

import typer


class CLILogger:
    """Logger implementation for CLI (implements LoggerProtocol from protocols)."""

    def __init__(self, verbose: bool = False) -> None:
        """
        Args:
            verbose: If True, show info messages. If False, only warnings/errors.
        """
        self.verbose = verbose

    async def info(self, message: str) -> None:
        if self.verbose:
            typer.echo(f'[INFO] {message}')

    async def warning(self, message: str) -> None:
        typer.secho(f'[WARNING] {message}', fg=typer.colors.YELLOW, err=True)

    async def error(self, message: str) -> None:
        typer.secho(f'[ERROR] {message}', fg=typer.colors.RED, err=True)
