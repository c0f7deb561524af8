"""MCP tool handlers for crosspost.

This package contains the MCP tool implementations that wrap the
SyncOrchestrator with async handlers and structured error responses.
"""

from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
]
