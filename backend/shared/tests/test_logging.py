import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.dal.models import SessionStatus
from shared.logging import _render_enum_values, resolve_json_mode, resolve_log_level, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "bingo"
        log_path = setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        file_handler = root.handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename).parent == log_dir
        assert log_path is not None
        assert log_path.suffix == ".log"

    def test_log_file_named_after_start_time(self, tmp_path):
        fixed_time = datetime(2026, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "bingo")

        assert log_path is not None
        assert log_path.name == "2026-03-15_10-30-45.log"

    def test_no_file_under_pytest(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            assert setup_logging(log_dir=tmp_path / "bingo") is None
        assert not (tmp_path / "bingo").exists()

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_writes_to_nested_dir(self, tmp_path):
        log_dir = tmp_path / "nested" / "dir"
        log_path = setup_logging(log_dir=str(log_dir))

        structlog.get_logger("test.nested").info("session loaded")

        assert log_path is not None
        assert "session loaded" in log_path.read_text()

    def test_repeated_calls_replace_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_custom_log_level(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    def test_uvicorn_access_log_quieted(self):
        setup_logging()
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_json_mode(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path / "bingo")

        structlog.contextvars.bind_contextvars(code="ABCD23")
        structlog.get_logger("test.json").info("status changed", status=SessionStatus.PLAYING)
        structlog.contextvars.clear_contextvars()

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "status changed"
        assert parsed["code"] == "ABCD23"
        assert parsed["status"] == "playing"

    def test_console_mode(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "console")
        log_path = setup_logging(log_dir=tmp_path / "bingo")

        structlog.get_logger("test.console").info("game created")

        assert log_path is not None
        assert "game created" in log_path.read_text()


class TestEnvironment:
    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert resolve_log_level() == logging.WARNING

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "bogus")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_json_mode_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        assert resolve_json_mode() is True
        monkeypatch.delenv("LOG_FORMAT")
        assert resolve_json_mode() is False

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()


class TestRenderEnumValues:
    def test_replaces_enum_with_value(self):
        result = _render_enum_values(None, "", {"status": SessionStatus.FINISHED, "msg": "hello"})
        assert result == {"status": "finished", "msg": "hello"}

    def test_leaves_other_values(self):
        assert _render_enum_values(None, "", {"count": 42}) == {"count": 42}
