"""Logging setup for the Juris AI backend.

Records are written as one JSON object per line (colored text on the
console when DEBUG is on). Services attach structured fields with
``logger.info("...", extra={"context": {...}})``; fields bound with
:func:`log_context` are merged into every record emitted inside the block
by the task that bound them.

Provider keys, bearer tokens and passwords are redacted both in the
message text and in context values whose key looks sensitive.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, ClassVar

from juris.core.config import settings

REDACTED = "[REDACTED]"

_bound_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "juris_log_context", default=None
)


class SensitiveDataFilter(logging.Filter):
    """Redact credentials before a record reaches a handler.

    The record is never dropped. ``api_key=nvapi-123`` becomes
    ``api_key: [REDACTED]`` and ``Bearer eyJ...`` becomes
    ``Bearer [REDACTED]``.
    """

    KEYS: ClassVar[tuple[str, ...]] = (
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "credential",
    )

    _bearer: ClassVar[re.Pattern[str]] = re.compile(
        r"bearer\s+[A-Za-z0-9\-_\.=]+", re.IGNORECASE
    )
    _sensitive_key: ClassVar[re.Pattern[str]] = re.compile(
        r"(^|[_\-])(" + "|".join(KEYS) + r")($|[_\-])", re.IGNORECASE
    )
    _assignment: ClassVar[re.Pattern[str]] = re.compile(
        r"(?P<key>" + "|".join(KEYS) + r")[:=]\s*[\"']?[^\s\"',]+",
        re.IGNORECASE,
    )

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.redact(str(record.msg))
        if record.args:
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        context = getattr(record, "context", None)
        if isinstance(context, Mapping):
            record.context = self.redact_mapping(context)
        return True

    @classmethod
    def redact(cls, text: str) -> str:
        text = cls._bearer.sub(f"Bearer {REDACTED}", text)
        return cls._assignment.sub(lambda m: f"{m.group('key')}: {REDACTED}", text)

    @classmethod
    def redact_mapping(cls, values: Mapping[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if cls._sensitive_key.search(str(key)):
                cleaned[key] = REDACTED
            elif isinstance(value, Mapping):
                cleaned[key] = cls.redact_mapping(value)
            elif isinstance(value, str):
                cleaned[key] = cls.redact(value)
            else:
                cleaned[key] = value
        return cleaned


class ContextFilter(logging.Filter):
    """Merge fields bound by :func:`log_context` into ``record.context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        bound = _bound_context.get()
        if bound:
            own = getattr(record, "context", None) or {}
            record.context = {**bound, **own}
        return True


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind structured fields to every record logged inside the block.

    Example:
        >>> with log_context(conversation_id=str(conversation.id)):
        ...     logger.info("Turn started")
    """
    token = _bound_context.set({**(_bound_context.get() or {}), **fields})
    try:
        yield
    finally:
        _bound_context.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Example line::

        {"timestamp": "2026-10-19T13:04:11.203Z", "level": "INFO",
         "logger": "juris.services.agents.executor",
         "message": "Agent execution completed", "service": "JurisAI",
         "version": "0.1.0",
         "context": {"agent": "legal-research", "tokens_used": 812}}
    """

    def __init__(self, service_name: str = "JurisAI", service_version: str = "0.1.0") -> None:
        super().__init__()
        self.service_name = service_name
        self.service_version = service_version

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "version": self.service_version,
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }
        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Readable colored lines for local development."""

    PALETTE: ClassVar[dict[int, str]] = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(self) -> None:
        super().__init__(fmt=settings.LOG_FORMAT, datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line += " " + json.dumps(context, default=str, ensure_ascii=False)
        color = self.PALETTE.get(record.levelno)
        return f"{color}{line}\033[0m" if color else line


def _resolve_log_path(log_file: str | None) -> Path:
    path = Path(log_file) if log_file else Path("logs") / "app.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _attach(
    logger: logging.Logger,
    handler: logging.Handler,
    formatter: logging.Formatter,
    level: int,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    if settings.LOG_SENSITIVE_FILTER:
        handler.addFilter(SensitiveDataFilter())
    logger.addHandler(handler)


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    service_name: str = "JurisAI",
    enable_json: bool | None = None,
    enable_console: bool = True,
) -> logging.Logger:
    """Configure the root logger and return it.

    A rotating file handler (10MB, 5 backups) always receives DEBUG and
    above; the console handler follows ``log_level``. Unset arguments fall
    back to LOG_LEVEL, LOG_FILE and LOG_JSON_FORMAT.
    """
    level_name = (log_level or settings.LOG_LEVEL).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    use_json = settings.LOG_JSON_FORMAT if enable_json is None else enable_json
    path = _resolve_log_path(log_file or settings.LOG_FILE)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, RotatingFileHandler):
            handler.close()

    file_formatter = (
        JSONFormatter(service_name=service_name)
        if use_json
        else logging.Formatter(settings.LOG_FORMAT)
    )
    _attach(
        root,
        RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"),
        file_formatter,
        logging.DEBUG,
    )

    if enable_console:
        console_formatter = (
            ConsoleFormatter() if settings.DEBUG else JSONFormatter(service_name=service_name)
        )
        _attach(root, logging.StreamHandler(sys.stdout), console_formatter, level)

    root.info(
        "Logging initialized",
        extra={"context": {"level": level_name, "file": str(path), "service": service_name}},
    )
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = [
    "ConsoleFormatter",
    "ContextFilter",
    "JSONFormatter",
    "SensitiveDataFilter",
    "get_logger",
    "log_context",
    "setup_logging",
]
