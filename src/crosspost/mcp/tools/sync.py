"""MCP tool handlers for the sync engine.

Defines the tools:

- ``sync_run`` -- sync one item to one target.
- ``sync_run_multi`` -- sync one item to several targets concurrently.
- ``sync_cancel`` -- cancel an in-flight sync.
- ``sync_reset`` -- forget the record of a sync key.
- ``sync_status`` -- show one sync record, or all of them.
- ``sync_preview`` -- render an item for a target without publishing.
- ``sync_targets`` -- list the configured targets.

Sync keys can be passed directly (``key``) or as ``item_id`` + ``target``.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...sync.engine import SyncOrchestrator
from ...sync.models import PublishMode, SyncStatus
from ...sync.reporter import (
    format_outcome,
    format_state,
    format_states,
    state_to_json,
    states_to_json,
)
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


_MODE_SCHEMA = {
    "type": "string",
    "enum": [mode.value for mode in PublishMode],
    "default": PublishMode.PUBLISH.value,
    "description": (
        "publish (default) or draft. Targets without drafts get a "
        "scheduled publish instead."
    ),
}

_KEY_PROPERTIES = {
    "key": {
        "type": "string",
        "description": "Sync key (item id, or item_id:target for secondary targets)",
    },
    "item_id": {"type": "string", "description": "Source item id"},
    "target": {"type": "string", "description": "Target name"},
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text_result(text: str, structured: dict[str, Any]) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def _require(args: dict[str, Any], name: str) -> str:
    value = args.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required")
    return value.strip()


def _resolve_key(orchestrator: SyncOrchestrator, args: dict[str, Any]) -> str:
    """Sync key from ``key`` or from ``item_id`` + ``target``."""
    key = args.get("key")
    if key:
        return str(key)
    if args.get("item_id") and args.get("target"):
        return orchestrator.key_for(_require(args, "item_id"), _require(args, "target"))
    raise ValueError("Provide either 'key' or both 'item_id' and 'target'")


def _unknown_target(
    orchestrator: SyncOrchestrator, name: str
) -> types.CallToolResult | None:
    if name in orchestrator.targets:
        return None
    available = sorted(orchestrator.targets)
    return build_error_response(
        "unknown_target",
        f"unknown target '{name}'",
        f"Available targets: {available}. Configure targets in .crosspost/config.yml.",
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_sync_run(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_run`` tool."""
    item_id = _require(args, "item_id")
    target = _require(args, "target")
    mode = PublishMode(args.get("mode", PublishMode.PUBLISH.value))

    outcome = await orchestrator.run_sync_detailed(item_id, target, mode)
    structured = state_to_json(outcome.state)
    structured["target"] = outcome.target
    structured["failed_media"] = list(outcome.failed_media)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_outcome(outcome))],
        structuredContent=structured,
        isError=not outcome.succeeded,
    )


async def _handle_sync_run_multi(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_run_multi`` tool."""
    item_id = _require(args, "item_id")
    targets = args.get("targets")
    if not targets or not isinstance(targets, list):
        raise ValueError("targets must be a non-empty list of target names")
    mode = PublishMode(args.get("mode", PublishMode.PUBLISH.value))

    states = await orchestrator.run_multi_target(item_id, targets, mode)
    lines = [f"Sync of {item_id} to {len(states)} target(s):"]
    lines.extend(f"  {target}: {format_state(state)}" for target, state in states.items())
    succeeded = sum(1 for s in states.values() if s.status == SyncStatus.SUCCESS)
    structured = {
        "item_id": item_id,
        "succeeded": succeeded,
        "results": {target: state_to_json(state) for target, state in states.items()},
    }
    return _text_result("\n".join(lines), structured)


async def _handle_sync_cancel(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_cancel`` tool."""
    key = _resolve_key(orchestrator, args)
    cancelled = orchestrator.cancel_sync(key)
    text = f"Cancelled sync {key}." if cancelled else f"No sync in progress for {key}."
    return _text_result(text, {"key": key, "cancelled": cancelled})


async def _handle_sync_reset(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_reset`` tool."""
    key = _resolve_key(orchestrator, args)
    existed = orchestrator.reset_sync(key)
    text = f"Reset {key}; it is pending again." if existed else f"No record for {key}."
    return _text_result(text, {"key": key, "reset": existed})


async def _handle_sync_status(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_status`` tool."""
    if not (args.get("key") or args.get("item_id") or args.get("target")):
        states = orchestrator.get_all_states()
        return _text_result(format_states(states), states_to_json(states))

    key = _resolve_key(orchestrator, args)
    state = orchestrator.get_state(key)
    text = format_state(state) if state else f"{key}: pending (never synced)"
    return _text_result(text, state_to_json(state, key))


async def _handle_sync_preview(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_preview`` tool."""
    item_id = _require(args, "item_id")
    target = _require(args, "target")
    if (error := _unknown_target(orchestrator, target)) is not None:
        return error

    article = await orchestrator.preview(item_id, target)
    return _text_result(article.content, article.model_dump(exclude={"content"}))


async def _handle_sync_targets(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_targets`` tool."""
    rows = []
    for name in sorted(orchestrator.targets):
        adapter = orchestrator.targets[name]
        rows.append(
            {
                "name": name,
                "primary": name == orchestrator.config.primary_target,
                "supports_draft": getattr(adapter, "supports_draft", True),
                "profile": orchestrator.profile_for(name).name,
            }
        )
    if not rows:
        text = "No targets configured."
    else:
        text = "\n".join(
            f"{row['name']}{' (primary)' if row['primary'] else ''}: "
            f"profile={row['profile']}, drafts={'yes' if row['supports_draft'] else 'no'}"
            for row in rows
        )
    return _text_result(text, {"targets": rows})


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="sync_run",
            description=(
                "Publish one source item to one target: fetch, rehost images, "
                "render and publish. Returns the final sync state."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "item_id": _KEY_PROPERTIES["item_id"],
                    "target": _KEY_PROPERTIES["target"],
                    "mode": _MODE_SCHEMA,
                },
                "required": ["item_id", "target"],
            },
        ),
        mutating=True,
        handler=_handle_sync_run,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_run_multi",
            description=(
                "Publish one source item to several targets concurrently. "
                "Each target succeeds or fails independently."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=False,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "item_id": _KEY_PROPERTIES["item_id"],
                    "targets": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                        "description": "Target names",
                    },
                    "mode": _MODE_SCHEMA,
                },
                "required": ["item_id", "targets"],
            },
        ),
        mutating=True,
        handler=_handle_sync_run_multi,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_cancel",
            description=(
                "Cancel an in-flight sync. The record becomes failed with "
                "'sync cancelled'."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": dict(_KEY_PROPERTIES),
                "required": [],
            },
        ),
        mutating=True,
        handler=_handle_sync_cancel,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_reset",
            description=(
                "Forget the sync record of a key so the item is pending again "
                "for that target. Aborts a run in progress."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": dict(_KEY_PROPERTIES),
                "required": [],
            },
        ),
        mutating=True,
        handler=_handle_sync_reset,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_status",
            description=(
                "Show the sync record of one key, or every record grouped by "
                "status when no key is given."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": dict(_KEY_PROPERTIES),
                "required": [],
            },
        ),
        mutating=False,
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_preview",
            description=(
                "Render an item as HTML for a target without uploading or "
                "publishing anything."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "item_id": _KEY_PROPERTIES["item_id"],
                    "target": _KEY_PROPERTIES["target"],
                },
                "required": ["item_id", "target"],
            },
        ),
        mutating=False,
        handler=_handle_sync_preview,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_targets",
            description="List configured publishing targets and their style profiles.",
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        mutating=False,
        handler=_handle_sync_targets,
    ),
]
