"""MCP tool handlers for the InfoFlow sync.

This package wraps the ``SyncManager`` with async handlers and structured
error responses.
"""

from .errors import build_error_response, translate_sync_error
from .sync import SYNC_TOOLS, handle_sync_tool

__all__ = [
    "SYNC_TOOLS",
    "build_error_response",
    "handle_sync_tool",
    "translate_sync_error",
]
