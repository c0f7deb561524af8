"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: mock logging.basicConfig to verify the arguments setup_logging
passes, since pytest's log capture plugin interferes with real calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from crosspost.logger import DEFAULT_MCP_LOG_FILE, JsonFormatter, resolve_level, setup_logging


@pytest.fixture(autouse=True)
def _no_log_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)


def _close(handlers):
    for handler in handlers:
        handler.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    @patch("crosspost.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert kwargs["force"] is True

    @patch("crosspost.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file_only(self, mock_basic, tmp_path):
        log_file = tmp_path / "mcp.log"
        setup_logging(mode="mcp", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert len(handlers) == 1
            assert isinstance(handlers[0], logging.FileHandler)
            assert handlers[0].baseFilename == str(log_file)
        finally:
            _close(handlers)

    @patch("crosspost.logger.logging.basicConfig")
    def test_mcp_mode_log_file_env(self, mock_basic, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "env.log"))
        setup_logging(mode="mcp")

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert handlers[0].baseFilename == str(tmp_path / "env.log")
        finally:
            _close(handlers)

    @patch("crosspost.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert len(handlers) == 2
            assert isinstance(handlers[1], logging.FileHandler)
        finally:
            _close(handlers)

    @patch("crosspost.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("crosspost.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)

    @patch("crosspost.logger.logging.basicConfig")
    def test_third_party_silenced(self, _mock_basic):
        logging.getLogger("urllib3").setLevel(logging.NOTSET)
        setup_logging(mode="cli")
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestResolveLevel:
    def test_mode_defaults(self):
        assert resolve_level("mcp", False) == logging.WARNING
        assert resolve_level("cli", False) == logging.INFO

    def test_config_level_used(self):
        assert resolve_level("cli", False, "error") == logging.ERROR

    def test_env_beats_config(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        assert resolve_level("cli", False, "ERROR") == logging.DEBUG

    def test_unknown_name_falls_back_to_info(self):
        assert resolve_level("cli", False, "chatty") == logging.INFO

    def test_default_mcp_log_file(self):
        assert DEFAULT_MCP_LOG_FILE.endswith("crosspost.log")


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


def _record(msg="sync %s done", args=("A1",), **extra):
    record = logging.LogRecord(
        name="crosspost.sync.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_output(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "crosspost.sync.engine"
        assert entry["msg"] == "sync A1 done"
        assert "ts" in entry
        assert "sync_key" not in entry

    def test_sync_key_included(self):
        entry = json.loads(JsonFormatter().format(_record(sync_key="blog:A1")))
        assert entry["sync_key"] == "blog:A1"

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc"]

    def test_single_line_output(self):
        output = JsonFormatter().format(_record(msg="line1\nline2", args=()))
        assert "\n" not in output
        assert json.loads(output)["msg"] == "line1\nline2"
