"""Session model, lifecycle signals and the session expiry guard."""

from .models import Session, SessionUser, Restaurant, SessionStore
from .signals import (
    Signal,
    SignalBus,
    normalize_expiration_date,
    emit_session_expiration_update,
    emit_session_expired,
)
from .states import GuardState, GuardTransition
from .guard import SessionExpiryGuard, GuardTransitionError, Navigator, Location, login_redirect_url

__all__ = [
    "Session",
    "SessionUser",
    "Restaurant",
    "SessionStore",
    "Signal",
    "SignalBus",
    "normalize_expiration_date",
    "emit_session_expiration_update",
    "emit_session_expired",
    "GuardState",
    "GuardTransition",
    "SessionExpiryGuard",
    "GuardTransitionError",
    "Navigator",
    "Location",
    "login_redirect_url",
]
