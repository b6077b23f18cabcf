# -*- coding: utf-8 -*-
from __future__ import annotations
import logging, logging.handlers
import sys
from pathlib import Path

LOG_FILENAME = "refurb_hub.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _has_handler(logger: logging.Logger, path: Path) -> bool:
    return any(getattr(h, "baseFilename", "") == str(path) for h in logger.handlers)


def setup_logging(settings) -> Path:
    """
    Send pipeline and sync logs to DATA_ROOT/logs/refurb_hub.log (rotating)
    and, when LOG_TO_CONSOLE is set, to stderr as well.
    """
    log_dir = Path(settings.DATA_ROOT).expanduser() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = (log_dir / LOG_FILENAME).resolve()
    level = logging.getLevelName(str(settings.LOG_LEVEL).upper())
    if not isinstance(level, int):
        level = logging.INFO

    fmt = logging.Formatter(LOG_FORMAT)
    handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8", delay=True)
    handler.setFormatter(fmt)
    handler.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    if not _has_handler(root, log_path):
        root.addHandler(handler)
        if settings.LOG_TO_CONSOLE:
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(fmt)
            root.addHandler(console)

    # uvicorn keeps its own handlers; route them to the same file
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.setLevel(level)
        if not _has_handler(lg, log_path):
            lg.addHandler(handler)

    return log_path
