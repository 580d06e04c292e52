"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from backoffice.core.session.models import Session


START = datetime(2026, 10, 19, 10, 0, 0, tzinfo=timezone.utc)


def build_session(
    role="admin",
    section_access=None,
    role_importance=None,
    must_change_password=False,
) -> Session:
    return Session.model_validate({
        "user": {
            "id": 7,
            "email": "staff@example.com",
            "name": "Staff Member",
            "role": role,
            "roleImportance": role_importance,
            "sectionAccess": section_access,
            "mustChangePassword": must_change_password,
        },
        "restaurants": [
            {"id": 1, "slug": "condesa", "name": "Condesa"},
            {"id": 2, "slug": "centro", "name": "Centro"},
        ],
        "activeRestaurantId": 1,
    })


class FakeClock:
    """Wall clock the test moves by hand."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeTimer:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeTask:
    def __init__(self, coro):
        self.coro = coro
        self.callbacks = []

    def add_done_callback(self, callback):
        self.callbacks.append(callback)


class FakeLoop:
    """Just enough of an event loop for timer and task scheduling."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[FakeTimer] = []
        self.tasks: list[FakeTask] = []

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.clock.now + timedelta(seconds=delay), callback, args)
        self.timers.append(timer)
        return timer

    def create_task(self, coro):
        task = FakeTask(coro)
        self.tasks.append(task)
        return task

    @property
    def pending_timers(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.clock.now + timedelta(seconds=seconds)
        while True:
            due = [t for t in self.pending_timers if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.clock.now = timer.when
            timer.fired = True
            timer.callback(*timer.args)
        self.clock.now = target

    def run_tasks(self) -> None:
        tasks, self.tasks = self.tasks, []
        for task in tasks:
            asyncio.run(task.coro)
            for callback in task.callbacks:
                callback(task)

    def discard_tasks(self) -> None:
        for task in self.tasks:
            task.coro.close()
        self.tasks = []


@pytest.fixture
def session_factory():
    return build_session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_loop(clock):
    loop = FakeLoop(clock)
    yield loop
    loop.discard_tasks()
