"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..app import create_orchestrator, load_settings

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load settings: CLI > env vars (.env loaded first) > YAML config > defaults
    - Build the orchestrator over the configured source and targets
    - Recover persisted state (interrupted syncs become failed), sweep
      stuck records and start the periodic sweeper

    On shutdown:
    - Cancel in-flight syncs and drain abandoned pipelines

    Args:
        config_overrides: Optional dict with config values from CLI
            (state_file, timeout, primary_target, debug)

    Yields:
        Dict with 'orchestrator' key containing the started SyncOrchestrator

    Raises:
        RuntimeError: If configuration is invalid or the state file is unusable.
    """
    logger.info("MCP server starting...")
    _stderr_print("crosspost MCP server starting...")

    try:
        unified, config = load_settings(config_overrides)
        orchestrator = create_orchestrator(unified, config)
        await orchestrator.start()
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Check .crosspost/config.yml and CROSSPOST_* variables.")
        raise RuntimeError(f"Configuration error: {e}") from e
    except OSError as e:
        logger.error("Cannot use state file: %s", e)
        _stderr_print(f"ERROR: Cannot use state file: {e}")
        raise RuntimeError(f"State file error: {e}") from e

    states = orchestrator.get_all_states()
    _stderr_print(f"  State file: {config.state_file} ({len(states)} records)")
    _stderr_print(f"  Targets: {', '.join(orchestrator.targets) or '(none)'}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"orchestrator": orchestrator}
    finally:
        logger.info("MCP server shutting down")
        await orchestrator.aclose()
        _stderr_print("crosspost MCP server shutting down.")
