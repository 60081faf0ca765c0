"""Shared fixtures: simulated clock and timer, fake notifier, stores."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from taskboard.notifier import Notifier, PermissionState
from taskboard.store import (
    CategoryStore,
    ContactStore,
    MemoryBackend,
    ReminderStore,
    StoreUnavailable,
    TaskStore,
)

T0 = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


class SimClock:
    """Settable clock; call it to read the current time."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class _ManualRepeating:
    def __init__(self, seconds, callback, next_at):
        self.seconds = seconds
        self.callback = callback
        self.next_at = next_at
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class _Spawned:
    def __init__(self, coro):
        self.coro = coro
        self.done = False
        self.cancelled = False

    def cancel(self):
        if not self.done and not self.cancelled:
            self.cancelled = True
            self.coro.close()


class ManualTimer:
    """
    Timer service driven by hand. advance() moves the simulated clock and
    fires every repeating callback that falls due on the way.
    """

    def __init__(self, clock: SimClock):
        self.clock = clock
        self.elapsed = 0.0
        self.repeating = []
        self.spawned = []

    def every(self, seconds, callback):
        timer = _ManualRepeating(seconds, callback, self.elapsed + seconds)
        self.repeating.append(timer)
        return timer

    def spawn(self, coro):
        handle = _Spawned(coro)
        self.spawned.append(handle)
        return handle

    @property
    def active(self):
        return [t for t in self.repeating if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.elapsed + seconds
        while True:
            due = [t for t in self.active if t.next_at <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_at)
            self.clock.advance(timer.next_at - self.elapsed)
            self.elapsed = timer.next_at
            timer.next_at += timer.seconds
            timer.callback()
        self.clock.advance(target - self.elapsed)
        self.elapsed = target

    def run_spawned(self) -> None:
        """Run pending background coroutines to completion."""
        for handle in self.spawned:
            if not handle.done and not handle.cancelled:
                handle.done = True
                asyncio.run(handle.coro)

    def close(self) -> None:
        for handle in self.spawned:
            handle.cancel()


class FakeNotifier(Notifier):
    def __init__(
        self,
        available: bool = True,
        permission: PermissionState = PermissionState.GRANTED,
        answer: PermissionState = PermissionState.GRANTED,
    ):
        self.available = available
        self.permission = permission
        self.answer = answer
        self.permission_requests = 0
        self.sent = []
        self.fail_with = None
        self.on_notify = None

    def is_available(self):
        return self.available

    def permission_state(self):
        return self.permission

    async def request_permission(self):
        self.permission_requests += 1
        self.permission = self.answer
        return self.permission

    def notify(self, title, body):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((title, body))
        if self.on_notify is not None:
            self.on_notify(title, body)


class FlakyBackend(MemoryBackend):
    """MemoryBackend whose loads/saves can be switched to fail."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_loads = False
        self.fail_saves = False

    def load(self, key):
        if self.fail_loads:
            raise IOError("backend offline")
        return super().load(key)

    def save(self, key, rows):
        if self.fail_saves:
            raise IOError("backend offline")
        super().save(key, rows)


class UnlistableReminderStore(ReminderStore):
    """Reminder store whose listing fails while `offline` is set."""

    offline = False

    def list_reminders(self):
        if self.offline:
            raise StoreUnavailable("reminders offline")
        return super().list_reminders()


@pytest.fixture
def clock():
    return SimClock()


@pytest.fixture
def timer(clock):
    t = ManualTimer(clock)
    yield t
    t.close()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def backend():
    return FlakyBackend()


@pytest.fixture
def tasks(backend):
    return TaskStore(backend)


@pytest.fixture
def reminders(backend):
    return ReminderStore(backend)


@pytest.fixture
def categories(backend):
    return CategoryStore(backend)


@pytest.fixture
def contacts(backend):
    return ContactStore(backend)
