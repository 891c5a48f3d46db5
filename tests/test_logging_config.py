"""Tests for setup_logging."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Iterator

import pytest

from extkit.logging_config import LEVEL_ENV, setup_logging


@pytest.fixture(autouse=True)
def _restore_root() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    named = logging.getLogger("extkit.extensions.dispatcher")
    named_level = named.level
    yield
    for h in root.handlers[:]:
        root.removeHandler(h)
        if h not in handlers:
            h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    named.setLevel(named_level)


def _settings(**cfg) -> dict:
    return {"logging": cfg}


class TestHandlers:
    """Which handlers land on the root logger."""

    def test_rotating_file_under_project_root(self, tmp_path: Path) -> None:
        setup_logging(tmp_path, _settings(file="logs/app.log", max_bytes=2048, backup_count=2))
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        handler = handlers[0]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert Path(handler.baseFilename) == tmp_path / "logs" / "app.log"
        assert handler.maxBytes == 2048
        assert handler.backupCount == 2
        assert (tmp_path / "logs").is_dir()

    def test_empty_file_means_no_file_handler(self, tmp_path: Path) -> None:
        setup_logging(tmp_path, _settings(file="", log_to_console=False))
        assert logging.getLogger().handlers == []

    def test_console_goes_to_stderr(self, tmp_path: Path) -> None:
        setup_logging(tmp_path, _settings(file="", log_to_console=True))
        (handler,) = logging.getLogger().handlers
        assert type(handler) is logging.StreamHandler
        assert handler.stream is sys.stderr

    def test_records_carry_thread_name(self, tmp_path: Path) -> None:
        setup_logging(tmp_path, _settings(file="", log_to_console=True))
        (handler,) = logging.getLogger().handlers
        record = logging.LogRecord("extkit.test", logging.INFO, __file__, 1, "hello", None, None)
        line = handler.format(record)
        assert record.threadName in line
        assert "extkit.test: hello" in line


class TestLevels:
    """Root level, environment override and per-logger levels."""

    def test_level_from_settings(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(LEVEL_ENV, raising=False)
        assert setup_logging(tmp_path, _settings(file="", level="warning")) == logging.WARNING
        assert logging.getLogger().level == logging.WARNING

    def test_unknown_level_falls_back_to_info(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv(LEVEL_ENV, raising=False)
        assert setup_logging(tmp_path, _settings(file="", level="chatty")) == logging.INFO

    def test_environment_overrides_settings(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(LEVEL_ENV, "debug")
        assert setup_logging(tmp_path, _settings(file="", level="ERROR")) == logging.DEBUG

    def test_named_logger_levels(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(LEVEL_ENV, raising=False)
        setup_logging(
            tmp_path,
            _settings(file="", level="WARNING", loggers={"extkit.extensions.dispatcher": "DEBUG"}),
        )
        assert logging.getLogger("extkit.extensions.dispatcher").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING
