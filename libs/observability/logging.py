# libs/observability/logging.py
from __future__ import annotations

import logging
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars
from uuid import uuid4

_CONFIGURED = False
SERVICE_NAME = "farm-jobs"


def _level_to_int(level: str | int) -> int:
    """Accept 'INFO' / 'info' / 20 / logging.INFO and return an int level."""
    if isinstance(level, int):
        return level
    try:
        return getattr(logging, str(level).upper())
    except Exception:
        return logging.INFO


def _add_service(_logger, _method, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(level: str | int = "INFO") -> None:
    """
    Configure stdlib logging + structlog in a consistent, idempotent way.
    Called from create_app() and from the scheduler CLIs before anything logs.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    lvl = _level_to_int(level)

    # stdlib logging: simple baseline formatter/handler
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)-7s %(name)s - %(message)s",
    )

    # structlog pipeline; request-scoped keys (request_id, route) come from contextvars
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def bind_request(request_id: str | None = None, **kv) -> str:
    """Start a fresh per-request logging context; returns the request id used."""
    clear_contextvars()
    rid = request_id or uuid4().hex[:16]
    bind_contextvars(request_id=rid, **kv)
    return rid


def clear_request() -> None:
    clear_contextvars()
