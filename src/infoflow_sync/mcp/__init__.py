"""MCP server exposing the InfoFlow sync as tools."""
