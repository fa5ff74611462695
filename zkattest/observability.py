"""
zkattest Observability

Structured logging for the attestation protocol. Modules log through
`logging.getLogger(__name__)`; this module provides the JSON handler, the
correlation id that ties one presentation exchange together, and a decorator
that records operation timings.

Witnesses, private keys and signatures are never logged. Log records carry
input names, credential kinds, digests and verification key hashes.
"""

from __future__ import annotations

import contextvars
import functools
import json
import logging
import sys
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from zkattest.config import get_config

ROOT_LOGGER = "zkattest"

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


@dataclass
class LogEvent:
    """One structured log line."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_json(self) -> str:
        data = {k: v for k, v in asdict(self).items() if v not in (None, "", {})}
        return json.dumps(data, default=str, sort_keys=True)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

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
                correlation_id=correlation_id_var.get(),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def configure_logging(stream: Any = None) -> logging.Logger:
    """Install the configured handler on the `zkattest` logger.

    Idempotent: an existing handler installed by a previous call is replaced.
    """
    obs = get_config().observability
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, obs.log_level.get().upper()))

    for h in list(logger.handlers):
        if getattr(h, "_zkattest", False):
            logger.removeHandler(h)

    handler: logging.Handler
    if obs.log_format.get() == "json":
        handler = StructuredHandler(stream)
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler._zkattest = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


T = TypeVar("T")


def timed_operation(
    logger: logging.Logger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            get_correlation_id()
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.log(
                    logging.INFO if success else logging.WARNING,
                    "Operation %s %s",
                    operation_name,
                    "completed" if success else "failed",
                    extra={"operation": operation_name, "duration_ms": duration_ms, "context": {}},
                )
        return wrapper
    return decorator
