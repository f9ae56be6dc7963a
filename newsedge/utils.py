"""Shared utilities: JSON log lines, transport retry, UTC date helpers."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import re
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_COMPONENT_RE = re.compile(r"^\[([\w:-]+)\]\s*")

_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")


# ── logging ───────────────────────────────────────────────────────────

class _JSONFormatter(logging.Formatter):
    """One JSON object per line; a leading ``[component]`` tag becomes its own field."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        component = None
        match = _COMPONENT_RE.match(msg)
        if match:
            component, msg = match.group(1), msg[match.end():]
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": component,
            "msg": msg,
        }
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Route every logger through a single stderr JSON handler."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ── retry ─────────────────────────────────────────────────────────────

def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Retry an async callable on *exceptions*, doubling the delay each time.

    Other exceptions propagate at once; the last matching one is re-raised
    when attempts run out::

        @retry(max_attempts=2, base_delay=0.5, exceptions=(httpx.TransportError,))
        async def _get(self, url, params): ...
    """

    def decorator(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        log = logging.getLogger(fn.__module__)

        @functools.wraps(fn)
        async def wrapped(*args: Any, **kwargs: Any) -> Any:
            delay = base_delay
            attempt = 1
            while True:
                try:
                    return await fn(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= max_attempts:
                        raise
                    log.warning("[retry] %s attempt %d/%d failed (%s); sleeping %.1fs",
                                fn.__qualname__, attempt, max_attempts, exc, delay)
                    await asyncio.sleep(delay)
                    delay *= 2
                    attempt += 1

        return wrapped

    return decorator


# ── UTC dates ─────────────────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into a timezone-aware datetime.

    Accepts the trailing ``Z`` that JavaScript-style producers emit.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utc_date_str(value: str | datetime) -> str:
    """UTC calendar date (``YYYY-MM-DD``) of an ISO timestamp or datetime."""
    dt = parse_iso(value) if isinstance(value, str) else value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).date().isoformat()


def epoch_ms(value: str | datetime) -> int:
    dt = parse_iso(value) if isinstance(value, str) else value
    return int(dt.timestamp() * 1000)


def is_valid_date_str(value: str | None) -> bool:
    """True for a real calendar date in ``YYYY-MM-DD`` form."""
    if not value or not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def yesterday_utc() -> str:
    return (utc_now() - timedelta(days=1)).date().isoformat()


def date_minus_days(date_str: str, days: int) -> str:
    return (date.fromisoformat(date_str) - timedelta(days=days)).isoformat()
