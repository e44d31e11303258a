"""MCP server entry point for kibbutz."""

from __future__ import annotations

from kibbutz.mcp.server import main

__all__ = ["main"]
