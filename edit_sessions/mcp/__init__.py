"""MCP server entry point for edit-sessions."""

from __future__ import annotations

from edit_sessions.mcp.server import main, server

__all__ = ['main', 'server']
