"""MCP server exposing the reconciliation workflow as tools."""
