"""Logging for the orchestrator process.

Triggers and cache flushes run on timer threads, so records carry the thread name.
Console output goes to stderr; stdout is reserved for the runner's report.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

LEVEL_ENV = "EXTKIT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(name: Any, default: int = logging.INFO) -> int:
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else default


def _rotating_file(project_root: Path, cfg: dict[str, Any]) -> logging.Handler | None:
    log_file = cfg.get("file")
    if not log_file:
        return None
    log_path = project_root / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=int(cfg.get("max_bytes", 10 * 1024 * 1024)),
        backupCount=int(cfg.get("backup_count", 3)),
        encoding="utf-8",
    )


def setup_logging(project_root: Path, settings: dict[str, Any]) -> int:
    """Configure the root logger from the ``logging`` settings section.

    Handlers: a rotating file (omitted when ``file`` is empty) and, with
    ``log_to_console``, stderr. ``EXTKIT_LOG_LEVEL`` overrides ``level``;
    ``loggers`` maps logger names to their own levels, e.g.
    ``extkit.extensions.dispatcher: DEBUG``. Returns the effective root level.
    """
    cfg = settings.get("logging", {})
    level = _level(os.environ.get(LEVEL_ENV) or cfg.get("level", "INFO"))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    handlers: list[logging.Handler] = []
    file_handler = _rotating_file(project_root, cfg)
    if file_handler is not None:
        handlers.append(file_handler)
    if cfg.get("log_to_console", False):
        handlers.append(logging.StreamHandler(sys.stderr))
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)

    for name, logger_level in (cfg.get("loggers") or {}).items():
        logging.getLogger(name).setLevel(_level(logger_level))
    return level
