"""Logging configuration and custom formatters for reelsync.

Provides a human-readable formatter that renders ``extra`` fields and
exception attributes inline, a JSON alternative, and a context id filter
that stamps every record emitted during one webhook delivery or one sweep
with the same correlation id.
"""

from collections.abc import Mapping
from contextvars import ContextVar
import json
import logging
from logging.config import dictConfig
import sys
import time
from typing import Any, Literal
import uuid

_original_log_record_factory = logging.getLogRecordFactory()


def custom_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    """Create a log record carrying the attributes of any attached exception chain.

    Public attributes of each exception in the ``__cause__``/``__context__``
    chain (e.g. ``record_id`` on a StoreError) are collected into
    ``exc_custom_attrs``, and the chain's messages into ``semantic_trace``.

    Args:
        *args: Arguments passed to the original log record factory.
        **kwargs: Keyword arguments passed to the original log record factory.

    Returns:
        The enriched LogRecord.
    """
    record = _original_log_record_factory(*args, **kwargs)

    if record.exc_info and record.exc_info[1]:
        collected_attrs: dict[str, Any] = {}
        chain_messages: list[str] = []

        current_exc: BaseException | None = record.exc_info[1]
        while current_exc:
            for name, val in vars(current_exc).items():
                if not name.startswith("_") and name not in collected_attrs:
                    collected_attrs[name] = val
            chain_messages.append(str(current_exc))
            current_exc = current_exc.__cause__ or current_exc.__context__

        if collected_attrs:
            record.exc_custom_attrs = collected_attrs
        if chain_messages:
            record.semantic_trace = chain_messages

    return record


_context_id_var: ContextVar[str | None] = ContextVar("context_id", default=None)


def set_context_id(context_id: str) -> None:
    """Set the correlation id for the current async context.

    Args:
        context_id: The identifier to attach to subsequent log records.
    """
    _context_id_var.set(context_id)


def new_context_id(prefix: str) -> str:
    """Build and set a fresh correlation id of the form ``<prefix>-<ts>-<rand>``.

    Args:
        prefix: Short label for the unit of work (e.g. "sweep", "webhook").

    Returns:
        The context id that was set.
    """
    context_id = f"{prefix}-{int(time.time())}-{uuid.uuid4().hex[:6]}"
    set_context_id(context_id)
    return context_id


class ContextIdFilter(logging.Filter):
    """Inject the current context id into each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context_id = _context_id_var.get()
        if context_id is not None:
            record.context_id = context_id
        return True


_should_include_stacktrace: bool = False

_STANDARD_RECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
        "context_id",
        "exc_custom_attrs",
        "semantic_trace",
    }
)


class HumanReadableExtrasFormatter(logging.Formatter):
    """Render log records as one line with ``key:value`` extras appended.

    The line reads ``<time> <LEVEL> [<logger>] CtxID:<id> k:v ... - <message>``.
    When stack traces are disabled, an exception is summarised by its
    chain of messages instead of a traceback.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: Literal["%", "{", "$"] = "%",
        validate: bool = True,
        *,
        defaults: Mapping[str, Any] | None = None,
    ):
        super().__init__(fmt, datefmt, style, validate, defaults=defaults)

    @staticmethod
    def _format_value(value: Any) -> str:
        if isinstance(value, dict | list | tuple):
            return json.dumps(value, sort_keys=True, separators=(", ", ":"), default=str)
        return str(value)

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with its extras and exception summary.

        Args:
            record: The log record to format.

        Returns:
            The formatted log line (plus trace lines when an exception is attached).
        """
        prefix_parts = [
            self.formatTime(record, self.datefmt),
            record.levelname,
            f"[{record.name}]",
        ]
        ctx_id = getattr(record, "context_id", None)
        if ctx_id is not None:
            prefix_parts.append(f"CtxID:{ctx_id}")

        extras: dict[str, Any] = {}
        exc_custom_attrs = getattr(record, "exc_custom_attrs", None)
        if isinstance(exc_custom_attrs, dict):
            extras.update(exc_custom_attrs)  # type: ignore
        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                extras[key] = value

        extra_pairs: list[str] = []
        for key, value in extras.items():
            try:
                extra_pairs.append(f"{key}:{self._format_value(value)}")
            except TypeError:
                extra_pairs.append(f"{key}=[Unserializable Value: {type(value)}]")

        parts = [" ".join(prefix_parts)]
        if extra_pairs:
            parts.append(" ".join(extra_pairs))
        message = record.getMessage()
        parts.append(f"- {message}" if message else "-")
        line = " ".join(parts)

        if record.exc_info:
            if _should_include_stacktrace:
                if not record.exc_text:
                    record.exc_text = self.formatException(record.exc_info)
                if record.exc_text:
                    line += "\n" + record.exc_text
            else:
                trace: list[str] | None = getattr(record, "semantic_trace", None)
                if trace:
                    line += f"\nError: {trace[0]}"
                    for msg in trace[1:]:
                        line += f"\n  Caused by: {msg}"

        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)

        return line


LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "context_id_filter": {
            "()": ContextIdFilter,
        },
    },
    "formatters": {
        "human_readable_formatter": {
            "()": HumanReadableExtrasFormatter,
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "json_formatter": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(context_id)s %(message)s",
        },
    },
    "handlers": {
        "console_handler": {
            "class": "logging.StreamHandler",
            "formatter": "human_readable_formatter",
            "stream": "ext://sys.stdout",
            "filters": ["context_id_filter"],
        },
    },
    "loggers": {
        "reelsync": {
            "handlers": ["console_handler"],
            "level": "INFO",
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console_handler"],
        "level": "WARNING",
    },
}


def setup_logging(
    log_format_type: Literal["human", "json"],
    app_log_level_name: str,
    include_stacktrace: bool,
) -> None:
    """Configure logging for the application.

    Args:
        log_format_type: Format for logs ('human' or 'json').
        app_log_level_name: Logging level name for the ``reelsync`` logger.
        include_stacktrace: Whether to include full stack traces in error logs.
    """
    global _should_include_stacktrace
    _should_include_stacktrace = include_stacktrace

    logging.setLogRecordFactory(custom_record_factory)

    level_name = app_log_level_name.upper()
    if not isinstance(getattr(logging, level_name, None), int):
        print(
            f"Warning: Invalid LOG_LEVEL '{app_log_level_name}'. Defaulting to INFO.",
            file=sys.stderr,
        )
        level_name = "INFO"
    LOGGING_CONFIG["loggers"]["reelsync"]["level"] = level_name

    match log_format_type.lower():
        case "json":
            LOGGING_CONFIG["handlers"]["console_handler"]["formatter"] = (
                "json_formatter"
            )
        case _:
            LOGGING_CONFIG["handlers"]["console_handler"]["formatter"] = (
                "human_readable_formatter"
            )

    dictConfig(LOGGING_CONFIG)
