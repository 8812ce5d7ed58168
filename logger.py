"""Logging setup for the chatbot proxy: one named logger, rotating file, colored levels."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import colorlog

LOGGER_NAME = "chatbot_proxy"
DEFAULT_LOG_PATH = "chatbot-proxy.log"

LOG_FILE_MAX_BYTES = 1_048_576
LOG_FILE_BACKUPS = 3

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
COLOR_FORMAT = "%(log_color)s%(asctime)s %(levelname)-8s%(reset)s %(name)s - %(message)s"
LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def setup_logging(
    log_path: str | None = None,
    level: str = "INFO",
    color: bool = True,
) -> logging.Logger:
    """
    Configure the `chatbot_proxy` logger from the loaded settings.

    `level` is a logging level name; "DISABLE" silences all logging. Records go to a
    rotating file at `log_path`, or to stderr when that file cannot be opened.
    """
    level_name = (level or "INFO").strip().upper()
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = False

    if level_name == "DISABLE":
        logging.disable(logging.CRITICAL)
        logger.addHandler(logging.NullHandler())
        return logger

    logging.disable(logging.NOTSET)
    level_no = logging.getLevelName(level_name)
    logger.setLevel(level_no if isinstance(level_no, int) else logging.INFO)

    path = log_path or DEFAULT_LOG_PATH
    try:
        handler: logging.Handler = RotatingFileHandler(
            path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
        open_err = None
    except OSError as e:
        handler = logging.StreamHandler()
        open_err = e

    handler.setFormatter(_formatter(color))
    logger.addHandler(handler)
    if open_err is not None:
        logger.warning("Cannot open log file %r (%s); logging to stderr", path, open_err)
    return logger


def _formatter(color: bool) -> logging.Formatter:
    if color:
        return colorlog.ColoredFormatter(COLOR_FORMAT, log_colors=LEVEL_COLORS, reset=True)
    return logging.Formatter(PLAIN_FORMAT)


def mask_secret(s: str, keep_start: int = 6, keep_end: int = 4) -> str:
    """Mask a secret, keeping only its first and last characters."""
    s = (s or "").strip()
    if not s:
        return ""
    if len(s) <= keep_start + keep_end:
        return "*" * len(s)
    return f"{s[:keep_start]}...{s[-keep_end:]}"
