import atexit
import copy
import datetime as dt
import json
import logging
import logging.config
import os
from pathlib import Path
from typing_extensions import override

LOG_LEVEL_ENV = "TURBOHANDSHAKE_LOG_LEVEL"

# attributes every LogRecord carries; anything else came in through `extra=`
LOG_RECORD_BUILTIN_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JSONLogFormatter(logging.Formatter):
    """One JSON object per record; `fmt_keys` maps output key -> record attribute."""

    def __init__(self, *, fmt_keys: dict[str, str] | None = None):
        super().__init__()
        self.fmt_keys = fmt_keys if fmt_keys is not None else {}

    @override
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self._prepare_log_dict(record), default=str)

    def _prepare_log_dict(self, record: logging.LogRecord) -> dict:
        always_fields = {
            "message": record.getMessage(),
            "timestamp": dt.datetime.fromtimestamp(
                record.created, tz=dt.timezone.utc
            ).isoformat(),
        }
        if record.exc_info is not None:
            always_fields["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info is not None:
            always_fields["stack_info"] = self.formatStack(record.stack_info)

        entry = {}
        for key, attr in self.fmt_keys.items():
            value = always_fields.pop(attr, None)
            entry[key] = value if value is not None else getattr(record, attr, None)
        entry.update(always_fields)

        # peer=..., info_hash=... and friends passed with extra={}
        for key, value in record.__dict__.items():
            if key not in LOG_RECORD_BUILTIN_ATTRS:
                entry[key] = value
        return entry


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[%(levelname)s|%(module)s|L%(lineno)d] %(asctime)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S%z",
        },
        "json": {
            "()": JSONLogFormatter,
            "fmt_keys": {
                "level": "levelname",
                "message": "message",
                "timestamp": "timestamp",
                "logger": "name",
                "module": "module",
                "function": "funcName",
                "line": "lineno",
                "task": "taskName",
            },
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "WARNING",
            "formatter": "simple",
            "stream": "ext://sys.stdout",
        },
        "file_json": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "json",
            "filename": "handshake.log.jsonl",
            "maxBytes": 5_000_000,
            "backupCount": 5,
        },
        "queue_handler": {
            "class": "logging.handlers.QueueHandler",
            "handlers": ["console", "file_json"],
            "respect_handler_level": True,
        },
    },
    "loggers": {"root": {"level": "DEBUG", "handlers": ["queue_handler"]}},
}


def build_logging_config(log_path: Path, level: str | None = None) -> dict:
    config = copy.deepcopy(LOGGING_CONFIG)
    config["handlers"]["file_json"]["filename"] = str(log_path)
    level = level or os.environ.get(LOG_LEVEL_ENV)
    if level:
        config["handlers"]["console"]["level"] = level.upper()
    return config


def config_logging(
    file_name: str, log_dir: Path = Path("data") / "logs", level: str | None = None
):
    """Install the process logging setup. Only the entry point calls this."""
    log_path = Path(log_dir) / file_name
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_path, level))
    queue_handler = logging.getHandlerByName("queue_handler")
    if queue_handler is not None:
        queue_handler.listener.start()
        atexit.register(queue_handler.listener.stop)
