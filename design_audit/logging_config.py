"""Unified logging configuration for the design audit service."""
from __future__ import annotations

import logging
import os
from pathlib import Path

# Log directory: configurable via LOG_DIR env var for Docker
LOG_DIR = Path(os.getenv("LOG_DIR", str(Path(__file__).parent.parent / "logs")))

# Prevent duplicate handlers
_configured_loggers: set[str] = set()


def setup_logger(name: str, filename: str) -> logging.Logger:
    """Setup a logger with file and console handlers.

    Args:
        name: Logger name (e.g., 'api', 'runner')
        filename: Log file name (e.g., 'api.log')

    Returns:
        Configured logger instance
    """
    if name in _configured_loggers:
        return logging.getLogger(name)

    LOG_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    fh = logging.FileHandler(LOG_DIR / filename, encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"
    ))

    sh = logging.StreamHandler()
    sh.setLevel(logging.INFO)
    sh.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] %(message)s"
    ))

    logger.addHandler(fh)
    logger.addHandler(sh)

    _configured_loggers.add(name)
    return logger


def get_runner_logger() -> logging.Logger:
    """Logger for background analysis runs."""
    return setup_logger("design_audit.runner", "runner.log")


def get_api_logger() -> logging.Logger:
    """Logger for API requests."""
    return setup_logger("design_audit.api", "api.log")
