"""Shared utilities for the MCP server."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from typing import Any

from mcp.server.fastmcp import Context


def _timestamp() -> str:
    return datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S')


class DualLogger:
    """
    Logs messages to both stderr and the MCP client context.

    stdout carries the stdio transport, so local output goes to stderr.
    """

    def __init__(self, ctx: Context[Any, Any, Any]) -> None:
        self.ctx = ctx

    async def info(self, message: str) -> None:
        print(f'[{_timestamp()}] [INFO] {message}', file=sys.stderr)
        await self.ctx.info(message)

    async def warning(self, message: str) -> None:
        print(f'[{_timestamp()}] [WARNING] {message}', file=sys.stderr)
        await self.ctx.warning(message)

    async def error(self, message: str) -> None:
        print(f'[{_timestamp()}] [ERROR] {message}', file=sys.stderr)
        await self.ctx.error(message)


class ServerLogger:
    """Logs server lifecycle messages (no client context yet) to stderr."""

    async def info(self, message: str) -> None:
        print(f'[{_timestamp()}] [MCP Server] {message}', file=sys.stderr)

    async def warning(self, message: str) -> None:
        print(f'[{_timestamp()}] [MCP Server] [WARNING] {message}', file=sys.stderr)

    async def error(self, message: str) -> None:
        print(f'[{_timestamp()}] [MCP Server] [ERROR] {message}', file=sys.stderr)
