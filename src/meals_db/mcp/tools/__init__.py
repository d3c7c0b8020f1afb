"""MCP tool handlers for Meals DB reconciliation.

This package contains MCP tool implementations that wrap the SyncEngine
facade with async handlers and structured error responses.
"""

from .errors import build_error_response, failure_to_response
from .registry import (
    SYNC_ADMIN,
    SYNC_VIEW,
    SYNC_WRITE,
    ToolRegistry,
    ToolSpec,
    load_permissions_file,
)
from .sync import SYNC_SPECS, SYNC_TOOLS, handle_sync_tool

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "failure_to_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    "SYNC_ADMIN",
    "SYNC_VIEW",
    "SYNC_WRITE",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    # Tool lists
    "SYNC_TOOLS",
    "handle_sync_tool",
]
