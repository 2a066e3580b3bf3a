"""JSON log formatting and the process-wide logging setup."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

AUDIT_LOGGER_NAME = "docsearch.ingest.audit"
AUDIT_FILE_NAME = "audit.log"

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _extra_fields(record: logging.LogRecord) -> Iterator[tuple[str, Any]]:
    for name, value in vars(record).items():
        if name not in _STANDARD_ATTRS and not name.startswith("_"):
            yield name, value


class MinimalJSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Dict messages (the structured events from :mod:`docsearch.telemetry` and
    the audit records) are merged into the top level instead of being
    stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = dict(ts=_utc_timestamp(record.created), level=record.levelname, logger=record.name)
        if isinstance(record.msg, dict):
            line.update(record.msg)
        else:
            text = record.getMessage()
            if text:
                line["message"] = text
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        line.update(_extra_fields(record))
        return json.dumps(line, ensure_ascii=False, default=str)


def build_logging_config(log_dir: str | Path, level: str = "INFO") -> dict[str, Any]:
    """Return the ``dictConfig`` mapping: JSON to stderr, audit records to a file."""

    audit_file = Path(log_dir) / AUDIT_FILE_NAME
    json_formatter = {"()": MinimalJSONFormatter}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": json_formatter},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "json"},
            "audit_file": {
                "class": "logging.FileHandler",
                "formatter": "json",
                "filename": str(audit_file),
                "encoding": "utf-8",
            },
        },
        "root": {"level": level.upper(), "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {"level": "INFO", "handlers": ["audit_file"], "propagate": False},
        },
    }


def configure_logging(log_dir: str | Path = "logs", *, level: str = "INFO") -> None:
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_dir, level))


__all__ = [
    "AUDIT_FILE_NAME",
    "AUDIT_LOGGER_NAME",
    "MinimalJSONFormatter",
    "build_logging_config",
    "configure_logging",
]
