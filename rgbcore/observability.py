"""
rgbcore observability

Structured logging for the codec, type system and consignment checker.
Every record carries the layer it came from and, for timed operations, the
operation name and its duration.

Loggers are named ``rgbcore.<layer>.<name>``. Output format and level come
from ``rgbcore.config`` (RGBCORE_LOG_FORMAT / RGBCORE_LOG_LEVEL).
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from rgbcore.config import get_config


class Layer(Enum):
    """rgbcore layers for categorization."""
    TYPESYS = "typesys"
    SYMBOLIC = "symbolic"
    SCHEMA = "schema"
    GRAPH = "graph"
    STATE = "state"
    STASH = "stash"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs one JSON object per record."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )
            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))
            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Single-line human readable format with the context appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.2f} ms)"
        return line


def _make_handler(log_format: str) -> logging.Handler:
    if log_format == "text":
        handler = logging.StreamHandler()
        handler.setFormatter(TextFormatter())
        return handler
    return StructuredHandler()


class RgbLogger:
    """
    Structured logger for rgbcore components.

    Keyword arguments passed to the log methods are collected into the
    record's ``context``. Without an explicit ``level`` the configured
    ``observability.log_level`` is read again on every call, so loggers
    created at import time follow later configuration changes.
    """

    def __init__(self, name: str, layer: Layer, level: Optional[str] = None):
        obs = get_config().observability
        self.name = name
        self.layer = layer
        self._level = level
        self._logger = logging.getLogger(f"rgbcore.{layer.value}.{name}")
        self._sync_level()

        if not any(getattr(h, "_rgbcore", False) for h in self._logger.handlers):
            handler = _make_handler(obs.log_format.get())
            handler._rgbcore = True  # type: ignore[attr-defined]
            self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _sync_level(self) -> None:
        level = getattr(logging, (self._level or get_config().observability.log_level.get()).upper())
        if self._logger.level != level:
            self._logger.setLevel(level)

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._sync_level()
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.INFO if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=round(duration_ms, 3),
            **context,
        )


def get_logger(name: str, layer: Layer) -> RgbLogger:
    """Get a logger for an rgbcore component."""
    return RgbLogger(name, layer)


T = TypeVar("T")


@contextmanager
def timed(logger: RgbLogger, operation_name: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time a block and log it as an operation.

    The yielded dict may be filled with extra context while the block runs.
    """
    extra: Dict[str, Any] = dict(context)
    start = time.monotonic()
    success = True
    try:
        yield extra
    except Exception:
        success = False
        raise
    finally:
        duration_ms = (time.monotonic() - start) * 1000
        logger.operation(operation_name, duration_ms, success, **extra)


def timed_operation(
    logger: RgbLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with timed(logger, operation_name):
                return func(*args, **kwargs)
        return wrapper
    return decorator
