"""Logger setup: console or JSON output to stderr or a file."""

from __future__ import annotations

import json
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime

ROOT_LOGGER_NAME = "mosdns"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "dpanic": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}

_lock = threading.Lock()


@dataclass
class LogConfig:
    """Logger configuration.

    level is one of debug, info, warn, error, dpanic, panic, fatal (empty
    means info). file is the output file; stderr when empty. production
    switches to JSON output; omit_time leaves out the timestamp.
    """

    level: str = ""
    file: str = ""
    production: bool = False
    omit_time: bool = False


def parse_level(text: str) -> int:
    """Return the logging level for a level name; raise ValueError if unknown."""
    key = text.lower()
    if key == "":
        return logging.INFO
    try:
        return _LEVELS[key]
    except KeyError:
        raise ValueError(f"invalid log level: unrecognized level: {text!r}") from None


def _iso_time(created: float) -> str:
    moment = datetime.fromtimestamp(created).astimezone()
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}" + moment.strftime("%z")


def _short_name(name: str) -> str:
    if name == ROOT_LOGGER_NAME:
        return ""
    prefix = ROOT_LOGGER_NAME + "."
    return name[len(prefix):] if name.startswith(prefix) else name


class _Formatter(logging.Formatter):
    def __init__(self, production: bool, omit_time: bool) -> None:
        super().__init__()
        self._production = production
        self._omit_time = omit_time

    def format(self, record: logging.LogRecord) -> str:
        level = _LEVEL_NAMES.get(record.levelno, record.levelname.lower())
        name = _short_name(record.name)
        message = record.getMessage()
        extra = getattr(record, "fields", None)
        error = self.formatException(record.exc_info) if record.exc_info else ""

        if self._production:
            out: dict[str, object] = {"level": level}
            if not self._omit_time:
                out["time"] = _iso_time(record.created)
            if name:
                out["logger"] = name
            out["msg"] = message
            if isinstance(extra, dict):
                out.update(extra)
            if error:
                out["error"] = error
            return json.dumps(out, default=str)

        parts = []
        if not self._omit_time:
            parts.append(_iso_time(record.created))
        parts.append(level)
        if name:
            parts.append(name)
        parts.append(message)
        if isinstance(extra, dict) and extra:
            parts.append(json.dumps(extra, default=str))
        line = "\t".join(parts)
        return f"{line}\n{error}" if error else line


def _install(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    with _lock:
        for old in list(logger.handlers):
            if getattr(old, "_mosdns_owned", False):
                logger.removeHandler(old)
                old.close()
        handler._mosdns_owned = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False


def new_logger(config: LogConfig) -> logging.Logger:
    """Configure and return the package logger as config describes.

    Raises ValueError for an unknown level and OSError when the log file
    cannot be opened.
    """
    level = parse_level(config.level)
    if config.file:
        try:
            handler: logging.Handler = logging.FileHandler(config.file, mode="a", encoding="utf-8")
        except OSError as exc:
            raise OSError(f"open log file: {exc}") from exc
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_Formatter(config.production, config.omit_time))
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    _install(logger, handler, level)
    return logger


def get_logger() -> logging.Logger:
    """Return the package logger, set up for console output if it is not yet."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not any(getattr(h, "_mosdns_owned", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_Formatter(production=False, omit_time=False))
        _install(logger, handler, logging.INFO)
    return logger


def set_level(level: int | str) -> None:
    """Set the level of the package logger, by number or by name."""
    value = parse_level(level) if isinstance(level, str) else level
    get_logger().setLevel(value)