"""Logging setup for the CLI and the MCP server."""

import json
import logging
import os
import sys

DEFAULT_MCP_LOG_FILE = "/tmp/crosspost.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
TEXT_FORMAT_WITH_NAME = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"

# Chatty libraries kept at WARNING unless debugging.
_QUIET_LOGGERS = ("urllib3", "requests", "charset_normalizer", "mcp")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter.

    One object per record with ``ts``, ``level``, ``logger`` and ``msg``;
    ``sync_key`` is added when the record carries one (``extra=``) and
    ``exc`` when exception info is present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        sync_key = getattr(record, "sync_key", None)
        if sync_key is not None:
            entry["sync_key"] = sync_key
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def _make_formatter(debug_format: str, with_name: bool = False) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    return logging.Formatter(
        TEXT_FORMAT_WITH_NAME if with_name else TEXT_FORMAT, datefmt=DATE_FORMAT
    )


def resolve_level(mode: str, debug: bool, level: str | None = None) -> int:
    """Pick the log level: *debug* > ``LOG_LEVEL`` > *level* > mode default."""
    if debug:
        return logging.DEBUG
    default_level = "WARNING" if mode == "mcp" else "INFO"
    name = (os.getenv("LOG_LEVEL") or level or default_level).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" logs to a file only (stdout carries JSON-RPC),
            "cli" logs to stderr.
        debug: Force DEBUG level.
        log_file: Log file path.  In MCP mode it overrides ``LOG_FILE``;
            in CLI mode it adds a file handler next to stderr.
        debug_format: "text" (default) or "json".
        level: Level from the config file, below ``LOG_LEVEL``.

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Log file for MCP mode. Default: /tmp/crosspost.log
    """
    log_level = resolve_level(mode, debug, level)
    handlers: list[logging.Handler] = []

    if mode == "mcp":
        path = log_file or os.getenv("LOG_FILE", DEFAULT_MCP_LOG_FILE)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(_make_formatter(debug_format, with_name=True))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_make_formatter(debug_format))
        handlers.append(stderr_handler)
        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setFormatter(_make_formatter(debug_format, with_name=True))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    if log_level != logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
