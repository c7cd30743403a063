from __future__ import annotations

import json
import logging
import os
from pathlib import Path

STRUCTURED_ENV = "NAMEBACK_STRUCTURED_LOGS"
LOG_FILE_ENV = "NAMEBACK_LOG_FILE"
LOG_LEVEL_ENV = "NAMEBACK_LOG_LEVEL"

PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message and exception text if any."""

    def format(self, record: logging.LogRecord) -> str:
        try:
            text = record.getMessage()
        except (TypeError, ValueError) as exc:
            text = f"<unformattable message {record.msg!r}: {exc!s}>"
        entry: dict[str, str] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
        }
        if record.name != "root":
            entry["logger"] = record.name
        entry["message"] = text
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def parse_level(value: str | int | None, default: int = logging.INFO) -> int:
    """'debug' / 'INFO' / 10 -> logging level; unknown values give default."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    return _LEVELS.get(value.strip().upper(), default)


def structured_logs_enabled() -> bool:
    return os.environ.get(STRUCTURED_ENV, "").strip().lower() in ("1", "true", "yes")


def _install(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def setup_logging(*, log_file: str | Path | None = None, level: int = logging.INFO) -> None:
    """
    Console handler on stderr plus an optional file handler. Handlers already
    installed on the root logger are kept, so repeated calls do not duplicate
    output.
    """
    root = logging.getLogger()
    root.setLevel(level)
    formatter = StructuredLogFormatter() if structured_logs_enabled() else logging.Formatter(PLAIN_FORMAT)

    handlers = root.handlers
    if not any(type(h) is logging.StreamHandler for h in handlers):
        _install(root, logging.StreamHandler(), level, formatter)

    if not log_file or any(isinstance(h, logging.FileHandler) for h in handlers):
        return
    path = Path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        root.warning("Cannot write log file %s: %s", path, exc)
        return
    _install(root, file_handler, level, formatter)
