"""Kibbutz: MCP server that lets an AI host organize Chrome tabs through a paired extension."""

__version__ = "0.1.0"
