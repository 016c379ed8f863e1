from __future__ import annotations

from contextlib import suppress
from typing import Any, Optional
from uuid import uuid4

import structlog
from flask import g

REQUEST_ID_HEADER = "X-Request-ID"


def current_correlation_id() -> Optional[str]:
    """Return the active correlation id if bound."""
    with suppress(RuntimeError):
        cid = getattr(g, "correlation_id", None)
        if cid:
            return cid
    return structlog.contextvars.get_contextvars().get("correlation_id")


def ensure_correlation_id(value: Optional[str] = None) -> str:
    """Guarantee that a correlation id is bound and returned."""
    correlation_id = (value or "").strip()[:128] or current_correlation_id() or uuid4().hex
    with suppress(RuntimeError):
        g.correlation_id = correlation_id
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    return correlation_id


def bind_resolution_context(topic: Optional[str], source: Optional[str], **extra: Any) -> None:
    """Bind the topic being resolved into the logging context."""
    structlog.contextvars.bind_contextvars(topic=topic, source=source, **extra)


def clear_correlation_context() -> None:
    """Reset correlation and related context vars for the current scope."""
    structlog.contextvars.clear_contextvars()
    with suppress(RuntimeError):
        g.pop("correlation_id", None)
