import logging
import sys
import json
from typing import Any, Dict, Optional
from functools import lru_cache

from src.infra.config.settings import settings

# Attributes every LogRecord carries; anything else arrived through `extra`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `extra` fields are lifted to the top level"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
        }

        # Pre-serialized JSON messages are merged instead of nested
        message = record.getMessage()
        parsed = None
        if message.startswith("{"):
            try:
                parsed = json.loads(message)
            except json.JSONDecodeError:
                parsed = None
        if isinstance(parsed, dict):
            entry.update(parsed)
        else:
            entry["message"] = message

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in entry:
                entry[key] = value

        return json.dumps(entry, default=str)


def _stdout_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    return handler


class Logger:
    """Structured logger; context goes in `extra`, never into the message text"""

    def __init__(self, name: str = settings.APP_NAME):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
        self.logger.propagate = True

        # Named loggers are cached, so guard against stacking handlers
        if not self.logger.handlers:
            self.logger.addHandler(_stdout_handler())

    def _log(
        self,
        level: int,
        message: Any,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        if isinstance(message, dict):
            message = json.dumps(message, default=str)
        self.logger.log(level, message, extra=extra or {}, exc_info=exc_info)

    def debug(self, message: Any, extra: Dict[str, Any] = None) -> None:
        self._log(logging.DEBUG, message, extra)

    def info(self, message: Any, extra: Dict[str, Any] = None) -> None:
        self._log(logging.INFO, message, extra)

    def warning(self, message: Any, extra: Dict[str, Any] = None) -> None:
        self._log(logging.WARNING, message, extra)

    def error(self, message: Any, extra: Dict[str, Any] = None, exc_info: bool = False) -> None:
        self._log(logging.ERROR, message, extra, exc_info)


# Application-wide logger
logger = Logger()


@lru_cache()
def get_logger(name: str = None) -> Logger:
    """Module logger, or the application logger when no name is given"""
    return Logger(name) if name else logger
