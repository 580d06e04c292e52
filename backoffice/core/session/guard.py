"""Session expiry guard.

Invalidates the local session when its moving deadline passes or when the
backend reports it as expired. Runs on a single asyncio event loop:
- deadline timers use ``loop.call_later`` and are cancelled before any re-arm
- the server logout call is a fire-and-forget task that never delays the
  local invalidation or the redirect
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

from backoffice.core.config import Settings

from .models import Session, SessionStore
from .signals import Signal, SignalBus, normalize_expiration_date, parse_expiration
from .states import (
    CLOSING_STATES,
    GuardState,
    GuardTransition,
    can_transition,
    get_target_state,
)

logger = logging.getLogger(__name__)

DEFAULT_GRACE_MS = 150


class GuardTransitionError(Exception):
    """Raised when the guard is driven into a transition it does not allow."""

    def __init__(self, message: str, from_state: GuardState, transition: GuardTransition):
        super().__init__(message)
        self.from_state = from_state
        self.transition = transition


class Navigator(ABC):
    """Where the current tab is and how to send it elsewhere."""

    @property
    @abstractmethod
    def path(self) -> str:
        ...

    @property
    @abstractmethod
    def query(self) -> str:
        """Query string including the leading ``?``, or empty."""

    @abstractmethod
    def assign(self, url: str) -> None:
        ...


class Location(Navigator):
    """In-memory navigator that records every assignment."""

    def __init__(self, path: str = "/", query: str = ""):
        self._path = path
        self._query = query
        self.history: list[str] = []

    @property
    def path(self) -> str:
        return self._path

    @property
    def query(self) -> str:
        return self._query

    def assign(self, url: str) -> None:
        self.history.append(url)
        path, sep, query = url.partition("?")
        self._path = path
        self._query = sep + query


def login_redirect_url(path: str, query: str = "", login_path: str = "/login") -> str:
    """Login URL carrying the page to return to."""
    next_value = quote(path + query, safe="-_.!~*'()")
    return f"{login_path}?reason=session-expired&next={next_value}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionExpiryGuard:
    """
    Client-side guard for a session with a moving expiration.

    Reacts to two signals on the bus:
    - EXPIRATION_UPDATED re-arms the deadline timer (last write wins)
    - SESSION_EXPIRED invalidates immediately

    Invalidation happens at most once per guard.
    """

    def __init__(
        self,
        store: SessionStore,
        bus: SignalBus,
        navigator: Navigator,
        *,
        logout: Optional[Callable[[], Awaitable[Any]]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], datetime] = utc_now,
        grace_ms: int = DEFAULT_GRACE_MS,
        login_path: str = "/login",
    ):
        """
        Args:
            store: Tab-scoped session container
            bus: Signal channel to listen on
            navigator: Current location and redirect target
            logout: Coroutine function for the best-effort server logout
            loop: Event loop for timers and the logout task; the running loop by default
            clock: Returns the current aware UTC time
            grace_ms: Delay added after the deadline before invalidating
            login_path: Path of the login page
        """
        self.store = store
        self.bus = bus
        self.navigator = navigator
        self.grace_ms = grace_ms
        self.login_path = login_path
        self._logout = logout
        self._loop = loop
        self._clock = clock
        self._state = GuardState.ACTIVE
        self._timer: Optional[asyncio.TimerHandle] = None
        self._logout_in_progress = False
        self._pending: set = set()
        self._unsubscribers: list[Callable[[], None]] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: SessionStore,
        bus: SignalBus,
        navigator: Navigator,
        **kwargs: Any,
    ) -> "SessionExpiryGuard":
        """Build a guard using the configured grace period and login path."""
        return cls(
            store,
            bus,
            navigator,
            grace_ms=settings.session_expiry_grace_ms,
            login_path=settings.login_path,
            **kwargs,
        )

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def deadline(self) -> Optional[str]:
        return self.store.expiration

    @property
    def is_armed(self) -> bool:
        return self._timer is not None

    def start(self) -> "SessionExpiryGuard":
        """Subscribe to the bus and arm any deadline already in the store."""
        if not self._unsubscribers:
            self._unsubscribers = [
                self.bus.subscribe(Signal.EXPIRATION_UPDATED, self._on_expiration_updated),
                self.bus.subscribe(Signal.SESSION_EXPIRED, self._on_session_expired),
            ]
        if self.store.session is not None and self.store.expiration and self._state is GuardState.ACTIVE:
            self._arm(GuardTransition.HYDRATE, self.store.expiration)
        return self

    def close(self) -> None:
        """Cancel the timer and stop listening."""
        self._cancel_timer()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def hydrate(self, session: Session, expiration: Any = None) -> GuardState:
        """
        Install the server-provided session and its first deadline.

        Raises:
            GuardTransitionError: If the guard already left the ACTIVE state
        """
        if self._state is not GuardState.ACTIVE:
            raise GuardTransitionError(
                f"Cannot hydrate from state {self._state.value}",
                self._state,
                GuardTransition.HYDRATE,
            )
        normalized = normalize_expiration_date(expiration)
        self.store.set(session, normalized)
        if normalized is not None:
            self._arm(GuardTransition.HYDRATE, normalized)
        return self._state

    def expire(self) -> None:
        """Invalidate the session now. Repeated calls are no-ops."""
        if self._logout_in_progress or not can_transition(self._state, GuardTransition.EXPIRED_SIGNAL):
            return
        self._invalidate(GuardTransition.EXPIRED_SIGNAL)

    def _on_expiration_updated(self, value: Any) -> None:
        normalized = normalize_expiration_date(value)
        if normalized is None:
            logger.debug(f"Ignoring invalid expiration {value!r}")
            return
        if self._state in CLOSING_STATES or self.store.session is None:
            return
        self.store.expiration = normalized
        self._arm(GuardTransition.EXTEND, normalized)

    def _on_session_expired(self) -> None:
        self.expire()

    def _on_deadline(self) -> None:
        self._timer = None
        if self._logout_in_progress or not can_transition(self._state, GuardTransition.DEADLINE_REACHED):
            return
        logger.info(f"Session deadline {self.store.expiration} reached")
        self._invalidate(GuardTransition.DEADLINE_REACHED)

    def _arm(self, transition: GuardTransition, expiration: str) -> None:
        self._cancel_timer()
        deadline = parse_expiration(expiration)
        if deadline is None:
            return
        self._move(transition)
        remaining = (deadline - self._clock()).total_seconds()
        if remaining <= 0:
            self._invalidate(GuardTransition.DEADLINE_REACHED)
            return
        delay = remaining + self.grace_ms / 1000
        self._timer = self._get_loop().call_later(delay, self._on_deadline)
        logger.debug(f"Session deadline armed for {expiration} (in {delay:.3f}s)")

    def _invalidate(self, transition: GuardTransition) -> None:
        self._logout_in_progress = True
        self._cancel_timer()
        self._move(transition)

        self.store.clear()
        if self._logout is not None:
            task = self._get_loop().create_task(self._best_effort_logout())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        if self.navigator.path != self.login_path:
            self.navigator.assign(
                login_redirect_url(self.navigator.path, self.navigator.query, self.login_path)
            )
        self._move(GuardTransition.INVALIDATED)
        logger.info("Session invalidated locally")

    async def _best_effort_logout(self) -> None:
        try:
            await self._logout()
        except Exception as e:
            logger.warning(f"Server logout failed, ignoring: {e}")

    def _move(self, transition: GuardTransition) -> None:
        target = get_target_state(self._state, transition)
        if target is None:
            raise GuardTransitionError(
                f"Cannot perform {transition.value} from state {self._state.value}",
                self._state,
                transition,
            )
        self._state = target

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop
