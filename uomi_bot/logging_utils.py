"""
Logging Module
==============
Console and file logging for the bot:
- Rich console output for the operator
- Rotating JSON log file for machine parsing
- Redaction of private keys and proxy credentials before anything is emitted
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .utils import redact


ROOT_LOGGER_NAME = "uomi_bot"

# Shared console so log lines and tables don't interleave badly
console = Console()


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'source': {
                'file': record.filename,
                'line': record.lineno,
                'function': record.funcName
            }
        }

        fields = getattr(record, 'fields', None)
        if fields:
            log_data['fields'] = fields

        if record.exc_info:
            log_data['exception'] = redact(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str)


class SecureLogger:
    """
    Logger wrapper that sanitizes sensitive data from log messages.

    Structured fields can be attached with ``fields={...}``; they end up in the
    JSON log file and are ignored by the console handler.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg, *args, fields: Optional[dict] = None, **kwargs):
        if not self._logger.isEnabledFor(level):
            return
        if args:
            msg = str(msg) % args
        extra = kwargs.pop('extra', None) or {}
        if fields:
            extra = dict(extra, fields={k: redact(str(v)) for k, v in fields.items()})
        self._logger.log(level, redact(str(msg)), extra=extra, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        kwargs.setdefault('exc_info', True)
        self._log(logging.ERROR, msg, *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        self._log(logging.CRITICAL, msg, *args, **kwargs)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "./logs/uomi_bot.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5
) -> SecureLogger:
    """
    Setup logging with rich console output and a rotating JSON log file.

    Safe to call more than once; existing handlers are replaced.
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(level)
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return SecureLogger(logger)


def get_logger(name: str = ROOT_LOGGER_NAME) -> SecureLogger:
    """Get a redacting logger under the bot's logger namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return SecureLogger(logging.getLogger(name))
