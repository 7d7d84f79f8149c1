"""MCP server for the Pica API."""

__version__ = "1.0.0"
