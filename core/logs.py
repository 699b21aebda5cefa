from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def ensure_logger(name: str, path: str | Path, level: int = logging.INFO) -> logging.Logger:
    """Return ``name`` with a rotating file handler attached exactly once."""

    logger = logging.getLogger(name)
    if not logger.handlers:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def read_log_tail(path: str | Path, lines: int = 100) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            content = fh.readlines()
    except FileNotFoundError:
        return "Sync log has not been created yet."
    content = [line.rstrip("\n") for line in content[-lines:]]
    return "\n".join(content)


__all__ = ["LOG_FORMAT", "ensure_logger", "read_log_tail"]
