"""Logging configuration for the FHttp client."""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024

# Attributes present on every LogRecord; anything else came in through ``extra``.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


class FieldsFormatter(logging.Formatter):
    """Formatter that renders structured ``extra`` fields.

    A ``service`` field is moved in front of the message as ``[service]``;
    every other extra field is appended as ``key=value``.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}

        service = fields.pop("service", None)
        if service:
            message = record.getMessage()
            line = line.replace(message, f"[{service}] {message}", 1)

        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return line


class LevelFilter(logging.Filter):
    """Only lets records with a level in ``levels`` through."""

    def __init__(self, *levels: int):
        super().__init__()
        self._levels = set(levels)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno in self._levels


def setup_logging(level: int | str = logging.INFO, log_dir: str | Path | None = "logs") -> None:
    """
    Configure logging for the client.

    Records go to stdout at every level. When ``log_dir`` is given, warnings
    and errors are also written to ``<hour>-error.log`` and info records to
    ``<hour>-info.log``, both rotated at 10 MB.

    Args:
        level: Logging level (default: INFO)
        log_dir: Directory for the log files, or None to log to stdout only
    """
    formatter = FieldsFormatter(FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    now = datetime.now().strftime("%Y-%m-%d-%H")

    error_handler = RotatingFileHandler(directory / f"{now}-error.log", maxBytes=MAX_LOG_BYTES, encoding="utf-8")
    error_handler.setLevel(logging.WARNING)
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)

    info_handler = RotatingFileHandler(
        directory / f"{now}-info.log", maxBytes=MAX_LOG_BYTES, backupCount=3, encoding="utf-8"
    )
    info_handler.addFilter(LevelFilter(logging.INFO))
    info_handler.setFormatter(formatter)
    root_logger.addHandler(info_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
