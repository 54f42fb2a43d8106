"""MCP server, auth tools and browser-facing OAuth routes."""
