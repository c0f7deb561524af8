"""ToolSpec and ToolRegistry for the crosspost MCP tools.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, whether the tool
  changes sync state, and an async handler with standardized signature
  (orchestrator, args) -> CallToolResult.
- ToolRegistry: Optionally drops state-changing tools at construction time
  (read-only servers), then provides list_tools() and call_tool() dispatch
  with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...errors import SyncError
from ...sync.engine import SyncOrchestrator
from .errors import build_error_response, translate_sync_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        mutating: Whether the tool starts, cancels or resets syncs.
        handler: Async handler with signature (orchestrator, args) -> CallToolResult.
    """

    tool: types.Tool
    mutating: bool
    handler: Callable[[SyncOrchestrator, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs.

    With ``read_only=True`` only non-mutating specs are registered.
    """

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if read_only and spec.mutating:
                continue
            self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        orchestrator: SyncOrchestrator,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Translates sync errors, validation errors and unexpected exceptions
        into structured CallToolResult responses with corrective actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            orchestrator: The running SyncOrchestrator.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(orchestrator, args)
        except SyncError as e:
            logger.warning("Sync error in %s: %s", name, e.message)
            return translate_sync_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the crosspost log file or retry later.",
            )
