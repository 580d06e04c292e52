"""Publish/subscribe channel for session lifecycle signals.

Two signals cross component boundaries:
- EXPIRATION_UPDATED: the backend moved the session deadline (ISO-8601 payload)
- SESSION_EXPIRED: the backend reported the session as gone (no payload)
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class Signal(str, Enum):
    EXPIRATION_UPDATED = "bo:session-expiration-updated"
    SESSION_EXPIRED = "bo:session-expired"


Handler = Callable[..., None]
Unsubscribe = Callable[[], None]


ISO_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}(?::\d{2})?)"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}(?::?\d{2})?)?$"
)

_DATETIME = TypeAdapter(datetime)


def parse_expiration(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Fractions of any length are accepted and cut to microseconds; a missing
    offset means UTC.
    """
    if not isinstance(value, str):
        return None
    match = ISO_TIMESTAMP_RE.match(value.strip())
    if match is None:
        return None

    text = match.group("base").replace(" ", "T").replace("t", "T")
    if len(text) == 16:
        text += ":00"
    fraction = match.group("fraction")
    if fraction:
        text += "." + fraction[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset and offset not in ("Z", "z"):
        digits = offset[1:].replace(":", "")
        text += f"{offset[0]}{digits[:2]}:{digits[2:] or '00'}"
    elif offset:
        text += "+00:00"

    try:
        parsed = _DATETIME.validate_python(text)
    except ValidationError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_expiration_date(value: Any) -> Optional[str]:
    """Canonical UTC form (``2026-10-19T10:00:00.000Z``) or None."""
    parsed = parse_expiration(value)
    if parsed is None:
        return None
    return parsed.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SignalBus:
    """Synchronous, in-process signal delivery."""

    def __init__(self):
        self._handlers: dict[Signal, list[Handler]] = {signal: [] for signal in Signal}

    def subscribe(self, signal: Signal, handler: Handler) -> Unsubscribe:
        """Register a handler; returns a callable that removes it."""
        self._handlers[signal].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[signal]:
                self._handlers[signal].remove(handler)

        return unsubscribe

    def subscriber_count(self, signal: Signal) -> int:
        return len(self._handlers[signal])

    def publish(self, signal: Signal, payload: Optional[str] = None) -> None:
        # Snapshot so handlers may unsubscribe while being called
        for handler in list(self._handlers[signal]):
            try:
                if signal is Signal.EXPIRATION_UPDATED:
                    handler(payload)
                else:
                    handler()
            except Exception:
                logger.exception(f"Handler error for {signal.value}")


def emit_session_expiration_update(bus: SignalBus, value: Any) -> bool:
    """Publish a new deadline; invalid timestamps are dropped."""
    normalized = normalize_expiration_date(value)
    if normalized is None:
        return False
    bus.publish(Signal.EXPIRATION_UPDATED, normalized)
    return True


def emit_session_expired(bus: SignalBus) -> None:
    bus.publish(Signal.SESSION_EXPIRED)
