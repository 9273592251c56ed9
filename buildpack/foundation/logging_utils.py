"""Logging helpers for build runs."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def configure_stdio_utf8() -> None:
    """Force stdout/stderr to UTF-8 so non-ASCII command output never crashes the build."""
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if callable(reconfigure):
            reconfigure(encoding="utf-8", errors="replace")


def setup_build_logger(
    log_dir: str | None, build_id: str, *, level: str = "INFO"
) -> tuple[logging.Logger, str | None]:
    """
    Configure the logger for one build.
    Logs go to stderr at `level` and, when `log_dir` is set, to a UTF-8 file at DEBUG.
    """

    logger_name = f"buildpack.{build_id}"
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    log_file: str | None = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{build_id}_build.log")
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    logger.propagate = False

    logger.info("Build logging initialized for build %s", build_id)
    if log_file:
        logger.debug("Build log file: %s", log_file)

    return logger, log_file
