"""Shared utilities: configuration, logging, Graph client and MCP responses."""
