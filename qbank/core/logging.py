"""Logging setup for batch runs: one readable line per event, extras as JSON."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from typing import Any

LOGGER_NAME = "qbank"

# LogRecord attributes that are never treated as extras.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class RunContextFilter(logging.Filter):
    """Stamp run-scoped fields (run id, environment) onto every record.

    Fields passed explicitly through ``extra=`` win over the run defaults.
    """

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self.fields = dict(fields or {})

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.fields.items():
            if key not in record.__dict__:
                setattr(record, key, value)
        return True


class JSONExtrasFormatter(logging.Formatter):
    """``ts | LEVEL | logger | message {extras}``.

    Run-scoped fields are listed first, then per-event extras in the order
    they were passed.
    """

    def __init__(self, *args: Any, run_keys: tuple[str, ...] = (), **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.run_keys = run_keys

    def extras(self, record: logging.LogRecord) -> dict[str, Any]:
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        ordered = {key: fields.pop(key) for key in self.run_keys if key in fields}
        ordered.update(fields)
        return ordered

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        line = (
            f"{self.formatTime(record, self.datefmt)} | {record.levelname:<8} | "
            f"{record.name} | {record.message}"
        )

        extras = self.extras(record)
        if extras:
            line = f"{line} {json.dumps(extras, default=str, ensure_ascii=False)}"

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{record.exc_text}"
        return line


def setup_logging(
    level: int = logging.INFO,
    *,
    run_fields: Mapping[str, Any] | None = None,
) -> logging.Logger:
    """Configure the ``qbank`` logger for one run.

    Calling again replaces the handler, so a new run never inherits the
    previous run's context fields.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    fields = dict(run_fields or {})
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RunContextFilter(fields))
    handler.setFormatter(
        JSONExtrasFormatter(datefmt="%Y-%m-%d %H:%M:%S", run_keys=tuple(fields))
    )

    logger.addHandler(handler)
    logger.propagate = False
    return logger
