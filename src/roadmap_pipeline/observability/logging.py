"""
Structured logging for the roadmap pipeline with run ID support.
"""

import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for run ID propagation
run_id_ctx: ContextVar[str | None] = ContextVar("run_id", default=None)

_loggers: dict[str, "StructuredLogger"] = {}

# Attributes every LogRecord carries; anything else came in as a structured field
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "getMessage",
    }
)


class StructuredFormatter(logging.Formatter):
    """Single-line key=value formatter with run ID and timing fields."""

    def format(self, record: logging.LogRecord) -> str:
        run_id = getattr(record, "run_id", None) or run_id_ctx.get() or "-"
        mod = record.name.split(".")[-1]

        duration = getattr(record, "ms", None)
        ms_part = f" ms={duration:.1f}" if duration is not None else ""

        timestamp = datetime.now(UTC).isoformat()
        extra_fields = "".join(
            f" {key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in {"run_id", "ms"}
        )

        line = (
            f"t={timestamp} level={record.levelname} run={run_id} mod={mod}"
            f'{ms_part} msg="{record.getMessage()}"{extra_fields}'
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger:
    """Logger wrapper that takes structured fields as keyword arguments."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, exc_info: bool = False, **kwargs):
        extra = {k: v for k, v in kwargs.items() if k not in _RECORD_ATTRS}
        extra.setdefault("run_id", run_id_ctx.get())
        self.logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)

    def exception(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)

    def timed(self, msg: str, duration_ms: float, **kwargs):
        """Log with timing information."""
        kwargs["ms"] = duration_ms
        self.info(msg, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def setup_logging(level: str = "INFO", stream=None) -> None:
    """Install the structured formatter on the root logger."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)
