"""Tests for the session expiry guard."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from backoffice.core.config import Settings
from backoffice.core.session.guard import (
    GuardTransitionError,
    Location,
    SessionExpiryGuard,
    login_redirect_url,
)
from backoffice.core.session.models import SessionStore
from backoffice.core.session.signals import (
    Signal,
    SignalBus,
    emit_session_expiration_update,
    emit_session_expired,
)
from backoffice.core.session.states import GuardState


def iso(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LogoutRecorder:
    def __init__(self, error=None):
        self.calls = 0
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error


@pytest.fixture
def bus():
    return SignalBus()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def location():
    return Location("/app/reservas", "?date=2026-10-19")


@pytest.fixture
def logout():
    return LogoutRecorder()


@pytest.fixture
def guard(store, bus, location, logout, fake_loop, clock):
    guard = SessionExpiryGuard(store, bus, location, logout=logout, loop=fake_loop, clock=clock)
    guard.start()
    yield guard
    guard.close()


EXPIRED_URL = "/login?reason=session-expired&next=%2Fapp%2Freservas%3Fdate%3D2026-10-19"


class TestLoginRedirect:

    def test_carries_path_and_query(self):
        assert login_redirect_url("/app/reservas", "?date=2026-10-19") == EXPIRED_URL

    def test_plain_path(self):
        assert login_redirect_url("/app/fichaje") == "/login?reason=session-expired&next=%2Fapp%2Ffichaje"


class TestHydration:
    """Test arming the first deadline."""

    def test_hydrate_arms_deadline(self, guard, store, fake_loop, clock, session_factory):
        deadline = clock.now + timedelta(seconds=60)
        state = guard.hydrate(session_factory(), iso(deadline))

        assert state == GuardState.SCHEDULED
        assert store.expiration == iso(deadline)
        assert len(fake_loop.pending_timers) == 1
        assert fake_loop.pending_timers[0].when == deadline + timedelta(milliseconds=150)

    def test_hydrate_without_deadline_stays_active(self, guard, fake_loop, session_factory):
        assert guard.hydrate(session_factory(), None) == GuardState.ACTIVE
        assert fake_loop.pending_timers == []

    def test_hydrate_twice_raises(self, guard, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))
        with pytest.raises(GuardTransitionError):
            guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=90)))

    def test_past_deadline_expires_immediately(self, guard, store, location, logout, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now - timedelta(seconds=1)))

        assert guard.state == GuardState.LOGGED_OUT
        assert store.session is None
        assert location.history == [EXPIRED_URL]
        fake_loop.run_tasks()
        assert logout.calls == 1

    def test_start_arms_deadline_already_in_store(self, bus, location, fake_loop, clock, session_factory):
        store = SessionStore(session_factory(), iso(clock.now + timedelta(seconds=30)))
        guard = SessionExpiryGuard(store, bus, location, loop=fake_loop, clock=clock).start()
        assert guard.state == GuardState.SCHEDULED
        assert guard.is_armed
        guard.close()


class TestDeadline:
    """Test invalidation at the deadline."""

    def test_fires_only_after_grace(self, guard, store, location, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))

        fake_loop.advance(60.1)
        assert guard.state == GuardState.SCHEDULED
        assert store.session is not None

        fake_loop.advance(0.1)
        assert guard.state == GuardState.LOGGED_OUT
        assert store.session is None
        assert store.expiration is None
        assert location.history == [EXPIRED_URL]

    def test_server_logout_is_requested(self, guard, logout, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=5)))
        fake_loop.advance(10)
        fake_loop.run_tasks()
        assert logout.calls == 1

    def test_logout_failure_is_ignored(self, store, bus, location, fake_loop, clock, session_factory):
        failing = LogoutRecorder(error=httpx.ConnectError("backend down"))
        guard = SessionExpiryGuard(store, bus, location, logout=failing, loop=fake_loop, clock=clock).start()
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=5)))
        fake_loop.advance(10)

        fake_loop.run_tasks()
        assert failing.calls == 1
        assert guard.state == GuardState.LOGGED_OUT
        assert location.history == [EXPIRED_URL]

    def test_no_redirect_when_already_on_login(self, store, bus, fake_loop, clock, session_factory):
        location = Location("/login", "")
        guard = SessionExpiryGuard(store, bus, location, loop=fake_loop, clock=clock).start()
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=5)))
        fake_loop.advance(10)
        assert guard.state == GuardState.LOGGED_OUT
        assert location.history == []

    def test_custom_grace(self, store, bus, location, fake_loop, clock, session_factory):
        guard = SessionExpiryGuard(store, bus, location, loop=fake_loop, clock=clock, grace_ms=2000).start()
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=5)))
        fake_loop.advance(6)
        assert guard.state == GuardState.SCHEDULED
        fake_loop.advance(1.5)
        assert guard.state == GuardState.LOGGED_OUT


class TestFromSettings:
    """Test building the guard from application settings."""

    def test_configured_grace_delays_invalidation(self, store, bus, location, fake_loop, clock, session_factory):
        settings = Settings(_env_file=None, session_expiry_grace_ms=500)
        guard = SessionExpiryGuard.from_settings(settings, store, bus, location, loop=fake_loop, clock=clock).start()
        assert guard.grace_ms == 500

        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=5)))
        fake_loop.advance(5.3)
        assert guard.state == GuardState.SCHEDULED

        fake_loop.advance(0.3)
        assert guard.state == GuardState.LOGGED_OUT
        guard.close()

    def test_configured_login_path(self, store, bus, fake_loop, clock, session_factory):
        settings = Settings(_env_file=None, login_path="/entrar")
        location = Location("/entrar", "")
        guard = SessionExpiryGuard.from_settings(settings, store, bus, location, loop=fake_loop, clock=clock).start()
        guard.hydrate(session_factory(), None)
        guard.expire()
        assert guard.state == GuardState.LOGGED_OUT
        assert location.history == []
        guard.close()


class TestExtension:
    """Test the moving deadline."""

    def test_extension_moves_deadline(self, guard, bus, store, location, fake_loop, clock, session_factory):
        """Armed at T, extended to T' before T: invalidation at T', never at T."""
        start = clock.now
        guard.hydrate(session_factory(), iso(start + timedelta(seconds=60)))

        fake_loop.advance(30)
        emit_session_expiration_update(bus, iso(start + timedelta(seconds=120)))
        assert store.expiration == iso(start + timedelta(seconds=120))
        assert len(fake_loop.pending_timers) == 1

        fake_loop.advance(40)  # past T
        assert guard.state == GuardState.SCHEDULED
        assert location.history == []

        fake_loop.advance(51)  # past T'
        assert guard.state == GuardState.LOGGED_OUT
        assert location.history == [EXPIRED_URL]

    def test_last_write_wins(self, guard, bus, fake_loop, clock, session_factory):
        start = clock.now
        guard.hydrate(session_factory(), iso(start + timedelta(seconds=60)))
        emit_session_expiration_update(bus, iso(start + timedelta(seconds=300)))
        emit_session_expiration_update(bus, iso(start + timedelta(seconds=20)))

        fake_loop.advance(21)
        assert guard.state == GuardState.LOGGED_OUT

    def test_extension_is_not_additive(self, guard, bus, fake_loop, clock, session_factory):
        start = clock.now
        guard.hydrate(session_factory(), iso(start + timedelta(seconds=60)))
        emit_session_expiration_update(bus, iso(start + timedelta(seconds=60)))
        fake_loop.advance(61)
        assert guard.state == GuardState.LOGGED_OUT

    def test_extension_arms_active_session(self, guard, bus, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), None)
        emit_session_expiration_update(bus, iso(clock.now + timedelta(seconds=60)))
        assert guard.state == GuardState.SCHEDULED
        assert len(fake_loop.pending_timers) == 1

    def test_short_fraction_extension_rearms(self, guard, bus, store, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))
        emit_session_expiration_update(bus, "2026-10-19T10:02:00.5Z")
        assert store.expiration == "2026-10-19T10:02:00.500Z"

        fake_loop.advance(100)
        assert guard.state == GuardState.SCHEDULED
        fake_loop.advance(21)
        assert guard.state == GuardState.LOGGED_OUT

    def test_invalid_extension_is_ignored(self, guard, bus, store, fake_loop, clock, session_factory):
        deadline = iso(clock.now + timedelta(seconds=60))
        guard.hydrate(session_factory(), deadline)
        bus.publish(Signal.EXPIRATION_UPDATED, "not a date")
        assert store.expiration == deadline
        assert len(fake_loop.pending_timers) == 1

    def test_extension_without_session_is_ignored(self, guard, bus, store, fake_loop, clock):
        emit_session_expiration_update(bus, iso(clock.now + timedelta(seconds=60)))
        assert guard.state == GuardState.ACTIVE
        assert store.expiration is None
        assert fake_loop.pending_timers == []

    def test_extension_after_logout_is_ignored(self, guard, bus, store, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))
        emit_session_expired(bus)
        emit_session_expiration_update(bus, iso(clock.now + timedelta(seconds=600)))
        assert guard.state == GuardState.LOGGED_OUT
        assert store.expiration is None
        assert fake_loop.pending_timers == []


class TestExpiredSignal:
    """Test immediate invalidation."""

    def test_duplicate_signals_logout_once(self, guard, bus, location, logout, fake_loop, clock, session_factory):
        """Two expired signals in a row: exactly one redirect and one logout."""
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))

        emit_session_expired(bus)
        emit_session_expired(bus)

        assert location.history == [EXPIRED_URL]
        assert len(fake_loop.tasks) == 1
        fake_loop.run_tasks()
        assert logout.calls == 1

    def test_signal_cancels_timer(self, guard, bus, location, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))
        emit_session_expired(bus)
        assert fake_loop.pending_timers == []

        fake_loop.advance(120)
        assert location.history == [EXPIRED_URL]

    def test_signal_without_deadline(self, guard, bus, store, location, session_factory):
        guard.hydrate(session_factory(), None)
        emit_session_expired(bus)
        assert guard.state == GuardState.LOGGED_OUT
        assert store.session is None
        assert location.history == [EXPIRED_URL]

    def test_expire_after_deadline_is_noop(self, guard, location, fake_loop, clock, session_factory):
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=1)))
        fake_loop.advance(2)
        guard.expire()
        assert location.history == [EXPIRED_URL]


class TestClose:

    def test_close_cancels_and_unsubscribes(self, store, bus, location, fake_loop, clock, session_factory):
        guard = SessionExpiryGuard(store, bus, location, loop=fake_loop, clock=clock).start()
        guard.hydrate(session_factory(), iso(clock.now + timedelta(seconds=60)))

        guard.close()
        assert fake_loop.pending_timers == []
        assert bus.subscriber_count(Signal.SESSION_EXPIRED) == 0
        assert bus.subscriber_count(Signal.EXPIRATION_UPDATED) == 0

        emit_session_expired(bus)
        assert location.history == []


class TestEventLoopIntegration:
    """Test the guard on a real asyncio loop."""

    def test_deadline_on_running_loop(self, session_factory):
        logout = LogoutRecorder()
        location = Location("/app/fichaje", "")

        async def scenario():
            store = SessionStore()
            bus = SignalBus()
            guard = SessionExpiryGuard(store, bus, location, logout=logout, grace_ms=0).start()
            deadline = datetime.now(timezone.utc) + timedelta(milliseconds=50)
            guard.hydrate(session_factory(), iso(deadline))
            await asyncio.sleep(0.3)
            guard.close()
            return guard.state

        state = asyncio.run(scenario())
        assert state == GuardState.LOGGED_OUT
        assert logout.calls == 1
        assert location.history == ["/login?reason=session-expired&next=%2Fapp%2Ffichaje"]
