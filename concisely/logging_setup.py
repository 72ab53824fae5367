# concisely/logging_setup.py
import logging
from logging.config import dictConfig
from logging import LogRecord
from pathlib import Path
from typing import Any, Dict
import contextvars
import os

# Correlation id: one per HTTP request (middleware) or per scheduled run (workflow)
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")

LOG_DIR = Path(os.getenv("LOG_DIR", Path(__file__).resolve().parents[1] / "logs"))
LOG_FILE = LOG_DIR / "concisely.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# attributes every LogRecord has; anything else arrived through ``extra=``
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id"}


class RequestIdFilter(logging.Filter):
    def filter(self, record: LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class EventFormatter(logging.Formatter):
    """Standard line plus the ``extra`` fields as key=value pairs."""

    def format(self, record: LogRecord) -> str:
        line = super().format(record)
        fields = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if not fields:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
        head, sep, tail = line.partition("\n")
        return f"{head} | {pairs}{sep}{tail}"


# logger name -> (level, handler set); None follows the configured level
_LOGGERS = {
    "concisely": (None, "app"),
    "apscheduler": ("INFO", "app"),
    "uvicorn.error": ("INFO", "server"),
    "uvicorn.access": ("INFO", "server"),
    "httpx": ("WARNING", "app"),
}


def logging_config(level: str = LOG_LEVEL, log_file: Path = LOG_FILE) -> Dict[str, Any]:
    handler_sets = {"app": ["console", "file"], "server": ["server_console", "file"]}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": RequestIdFilter}},
        "formatters": {
            "event": {
                "()": EventFormatter,
                "fmt": "%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s | %(message)s",
            },
            "server": {"format": "%(asctime)s | %(levelname)s | %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "event", "filters": ["request_id"]},
            "file": {
                "class": "logging.handlers.TimedRotatingFileHandler",
                "formatter": "event",
                "filters": ["request_id"],
                "filename": str(log_file),
                "when": "midnight",
                "backupCount": 14,
                "encoding": "utf-8",
            },
            "server_console": {"class": "logging.StreamHandler", "formatter": "server"},
        },
        "loggers": {
            name: {"handlers": handler_sets[kind], "level": lvl or level, "propagate": False}
            for name, (lvl, kind) in _LOGGERS.items()
        },
        "root": {"handlers": ["console", "file"], "level": level},
    }


def setup_logging() -> Path:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    dictConfig(logging_config())
    logging.getLogger("concisely").info(f"Logging to: {LOG_FILE}")
    return LOG_FILE


def get_logger(name: str = "concisely") -> logging.Logger:
    return logging.getLogger(name)
