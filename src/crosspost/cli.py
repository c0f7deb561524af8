"""Command-line interface for crosspost.

Subcommands:

- ``init``     write a starter ``.crosspost/config.yml``
- ``sync``     publish an item to one or more targets
- ``status``   show one sync record, or all of them
- ``cancel``   fail a sync that is stuck in ``syncing``
- ``reset``    forget a sync record
- ``preview``  render an item for a target without publishing
- ``serve``    run the MCP server over stdio

All diagnostics go to stderr; command output goes to stdout.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .app import create_orchestrator, load_settings
from .config_loader import ensure_config
from .errors import SyncError
from .file_handler import write_file
from .logger import setup_logging
from .mcp.server import add_server_arguments, serve
from .sync.engine import SyncOrchestrator
from .sync.models import PublishMode, SyncStatus
from .sync.reporter import (
    format_outcome,
    format_state,
    format_states,
    state_to_json,
    states_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.state_file:
        overrides["state_file"] = args.state_file
    if args.primary_target:
        overrides["primary_target"] = args.primary_target
    if getattr(args, "timeout", None) is not None:
        overrides["timeout"] = args.timeout
    if args.debug:
        overrides["debug"] = True
    return overrides


def _orchestrator(args: argparse.Namespace) -> SyncOrchestrator:
    """Load settings, reconfigure logging from them and build the orchestrator."""
    unified, config = load_settings(_overrides(args))
    setup_logging(
        mode="cli",
        debug=config.debug,
        log_file=unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )
    return create_orchestrator(unified, config)


def _resolve_key(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> str:
    if args.key:
        return args.key
    if args.item and args.target:
        return orchestrator.key_for(args.item, args.target)
    raise ValueError("give a sync key, or both --item and --target")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    path = ensure_config(Path(args.path) if args.path else None)
    print(f"Config file: {path}")
    return EXIT_OK


async def _run_sync(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> int:
    mode = PublishMode.DRAFT if args.draft else PublishMode.PUBLISH
    targets = args.target or [orchestrator.config.primary_target]

    await orchestrator.start(recover=False)
    try:
        if len(targets) == 1:
            outcome = await orchestrator.run_sync_detailed(args.item, targets[0], mode)
            if args.json:
                data = state_to_json(outcome.state)
                data["failed_media"] = list(outcome.failed_media)
                _print_json(data)
            else:
                print(format_outcome(outcome))
            return EXIT_OK if outcome.succeeded else EXIT_FAILED

        states = await orchestrator.run_multi_target(args.item, targets, mode)
    finally:
        await orchestrator.aclose()

    if args.json:
        _print_json({t: state_to_json(s) for t, s in states.items()})
    else:
        for target, state in states.items():
            print(f"{target}: {format_state(state)}")
    ok = all(s.status == SyncStatus.SUCCESS for s in states.values())
    return EXIT_OK if ok else EXIT_FAILED


def cmd_sync(args: argparse.Namespace) -> int:
    return asyncio.run(_run_sync(_orchestrator(args), args))


def cmd_status(args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(args)
    orchestrator.store.refresh()
    if not (args.key or args.item or args.target):
        states = orchestrator.get_all_states()
        if args.json:
            _print_json(states_to_json(states))
        else:
            print(format_states(states))
        return EXIT_OK

    key = _resolve_key(orchestrator, args)
    state = orchestrator.get_state(key)
    if args.json:
        _print_json(state_to_json(state, key))
    else:
        print(format_state(state) if state else f"{key}: pending (never synced)")
    return EXIT_OK


def cmd_cancel(args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(args)
    orchestrator.store.refresh()
    key = _resolve_key(orchestrator, args)
    if orchestrator.cancel_sync(key):
        print(f"Cancelled sync {key}.")
        return EXIT_OK
    print(f"No sync in progress for {key}.", file=sys.stderr)
    return EXIT_FAILED


def cmd_reset(args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(args)
    orchestrator.store.refresh()
    key = _resolve_key(orchestrator, args)
    if orchestrator.reset_sync(key):
        print(f"Reset {key}; it is pending again.")
    else:
        print(f"No record for {key}.")
    return EXIT_OK


def cmd_preview(args: argparse.Namespace) -> int:
    orchestrator = _orchestrator(args)
    article = asyncio.run(orchestrator.preview(args.item, args.target))
    if args.output:
        write_file(Path(args.output), article.content)
        print(f"Wrote {article.title!r} to {args.output}", file=sys.stderr)
    else:
        print(article.content)
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    serve(args)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--state-file", help="Sync state document")
    parser.add_argument(
        "--primary-target", help="Target whose sync keys are the bare item id"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log line format on stderr (default: text)",
    )


def _add_key(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("key", nargs="?", help="Sync key")
    parser.add_argument("--item", help="Item id (with --target instead of a key)")
    parser.add_argument("--target", help="Target name (with --item instead of a key)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crosspost",
        description="Publish source items to multiple platforms and track each sync.",
    )
    parser.add_argument(
        "--version", action="version", version=f"crosspost version {__version__}"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Write a starter config file")
    p.add_argument("--path", help="Config file to create (default: .crosspost/config.yml)")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("sync", help="Publish an item")
    _add_common(p)
    p.add_argument("item", help="Item id")
    p.add_argument(
        "-t",
        "--target",
        action="append",
        help="Target name; repeat for several (default: the primary target)",
    )
    p.add_argument("--draft", action="store_true", help="Create drafts instead of publishing")
    p.add_argument("--timeout", type=float, help="Per-run timeout in seconds")
    p.add_argument("--json", action="store_true", help="Print JSON")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("status", help="Show sync records")
    _add_common(p)
    _add_key(p)
    p.add_argument("--json", action="store_true", help="Print JSON")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("cancel", help="Cancel a sync")
    _add_common(p)
    _add_key(p)
    p.set_defaults(func=cmd_cancel)

    p = sub.add_parser("reset", help="Forget a sync record")
    _add_common(p)
    _add_key(p)
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("preview", help="Render an item without publishing")
    _add_common(p)
    p.add_argument("item", help="Item id")
    p.add_argument("target", help="Target name")
    p.add_argument("-o", "--output", help="Write the HTML to a file")
    p.set_defaults(func=cmd_preview)

    p = sub.add_parser("serve", help="Run the MCP server over stdio")
    add_server_arguments(p)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command not in ("serve", "init"):
        setup_logging(mode="cli", debug=args.debug, debug_format=args.log_format)

    try:
        return args.func(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except SyncError as e:
        print(f"Error ({e.kind}): {e.message}", file=sys.stderr)
        return EXIT_FAILED
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
