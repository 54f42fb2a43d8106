"""Outlook MCP server: Microsoft Graph mailbox access for tool-calling assistants."""

__version__ = "1.0.0"
