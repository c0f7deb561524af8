"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...errors import SyncError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, unauthorized, validation_error,
            unknown_target, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("unknown_target", "unknown target 'x'", "Use sync_targets to list targets.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Corrective action messages per error kind
# ---------------------------------------------------------------------------

_ACTIONS: dict[str, str] = {
    "not_found": "Check the item id; use sync_status to see known keys.",
    "unauthorized": "Check the source permissions or the target api_key.",
    "network_transient": "Retry later; the endpoint was unreachable.",
    "validation_error": "Fix the item (title and content must be non-empty) and retry.",
    "media_upload_failure": "Retry, or publish with the original media URLs.",
    "publish_failure": "Check the target configuration and retry with sync_run.",
    "cancelled": "Start a new run with sync_run if the item should still be published.",
    "timeout": "Retry with sync_run; raise sync.timeout_seconds for large items.",
}

_DEFAULT_ACTION = "Check the crosspost configuration and retry."


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Translate a ``SyncError`` into a structured error response."""
    action = _ACTIONS.get(error.kind, _DEFAULT_ACTION)
    return build_error_response(error.kind, error.message, action)