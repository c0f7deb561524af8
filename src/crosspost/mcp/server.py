"""MCP server for crosspost using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents start, cancel and inspect syncs of source items to publishing
targets.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import DEFAULT_MCP_LOG_FILE, setup_logging
from ..sync.engine import SyncOrchestrator
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("crosspost")

# Global orchestrator instance (initialized in main)
_orchestrator: SyncOrchestrator | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_orchestrator() -> SyncOrchestrator:
    """Get the global SyncOrchestrator instance.

    Raises:
        RuntimeError: If the orchestrator is not initialized
    """
    if _orchestrator is None:
        raise RuntimeError(
            "SyncOrchestrator not initialized. Server lifespan not started."
        )
    return _orchestrator


def set_orchestrator(orchestrator: SyncOrchestrator | None) -> None:
    """Set the global SyncOrchestrator instance, or None to clear."""
    global _orchestrator
    _orchestrator = orchestrator


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    orchestrator = get_orchestrator()
    try:
        return await get_registry().call_tool(name, arguments, orchestrator)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None, read_only: bool = False):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), starts the
    orchestrator via the lifespan manager and serves over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (state_file, timeout, primary_target, debug, log_file)
        read_only: Only expose tools that do not change sync state.
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", debug=overrides.get("debug", False), log_file=log_file)

    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(ALL_SPECS)} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_orchestrator() is called here rather than in the lifespan so that
    # running this file as __main__ still updates this module's globals.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_orchestrator(ctx["orchestrator"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="crosspost",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_orchestrator(None)
            set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crosspost-mcp",
        description="crosspost MCP server - publish source items to multiple platforms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .crosspost/config.yml)
  crosspost-mcp

  # Keep state somewhere else and allow longer runs
  crosspost-mcp --state-file ~/sync.json --timeout 600

  # Only expose status and preview tools
  crosspost-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )
    add_server_arguments(parser)
    parser.add_argument(
        "--version",
        action="version",
        version=f"crosspost version {__version__}",
    )
    return parser


def add_server_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by ``crosspost-mcp`` and ``crosspost serve``."""
    parser.add_argument(
        "--state-file",
        help="Sync state document (overrides CROSSPOST_STATE_FILE and config files)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-run timeout in seconds (overrides CROSSPOST_TIMEOUT)",
    )
    parser.add_argument(
        "--primary-target",
        help="Target whose sync keys are the bare item id",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_MCP_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_MCP_LOG_FILE})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that do not start, cancel or reset syncs",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Build the config overrides dict from parsed server options."""
    config_overrides: dict = {}
    if args.state_file:
        config_overrides["state_file"] = args.state_file
    if args.timeout is not None:
        config_overrides["timeout"] = args.timeout
    if args.primary_target:
        config_overrides["primary_target"] = args.primary_target
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    return config_overrides


def serve(args: argparse.Namespace) -> None:
    """Run the server from parsed options, exiting on startup errors."""
    config_overrides = overrides_from_args(args)
    shown = [k for k in config_overrides if k != "log_file"]
    if shown:
        print(f"Config overrides from CLI: {', '.join(shown)}", file=sys.stderr)

    try:
        asyncio.run(main(config_overrides, read_only=args.read_only))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


def run() -> None:
    """Entry point that parses CLI arguments and runs the server."""
    serve(build_parser().parse_args())


if __name__ == "__main__":
    run()
