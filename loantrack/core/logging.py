"""
Structured logging for the tracker.

Every log line is a structlog event. Request handlers and poll
sessions bind their identifiers into contextvars so that lines emitted
deep inside the retry policy or the status client still carry the
request id or transaction reference they belong to.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any, Dict, Optional

import structlog
from fastapi import Request

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")

UNLOGGED_PATHS = frozenset({"/healthz"})


def _add_log_level(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def _resolve_level(env: str, level: Optional[str]) -> int:
    if level:
        resolved = logging.getLevelName(level.upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO if env == "production" else logging.DEBUG


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Route stdlib and structlog output to stdout.

    Production renders JSON lines; other environments render colored
    console output.
    """
    log_level = _resolve_level(env, level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if env == "production"
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            _add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_session_context(reference: str) -> None:
    """Tag every following log line of the current task with a reference.

    Poll sessions call this at the top of their task. asyncio gives each
    task its own copy of the context, so the request id inherited from
    the opening request is dropped here without touching the request.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(reference=reference)


async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Bind a request id for the duration of a request and log its latency."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    path = request.url.path
    structlog.contextvars.bind_contextvars(request_id=request_id, path=path)

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["x-request-id"] = request_id
        return response
    finally:
        if path not in UNLOGGED_PATHS:
            structlog.get_logger("request").info(
                "request.completed",
                method=request.method,
                status=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
        structlog.contextvars.clear_contextvars()
