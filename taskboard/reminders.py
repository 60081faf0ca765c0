"""
Reminder scheduler.

Per reminder:
  PENDING (sent=False) → DELIVERED (sent=True), terminal.

Lifecycle:
  start()  - request notification permission if undetermined (until answered, without
             waiting for the answer), run one scan pass, then arm a timer
             that scans every interval.
  stop()   - cancel the timer and any unanswered permission request.
             Idempotent.

A scan pass works on a snapshot of the reminder store taken when the pass
begins. Reminders added during a pass are picked up by the next one.
Delivery is marked whether or not a notification could be shown: the due
fact is what gets acknowledged.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from .notifier import Notifier, PermissionState
from .resolve import FALLBACK_TASK_TITLE
from .schema import Reminder, utc_now
from .store import ReminderStore, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 60_000


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Timer service
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class _Repeating:
    """Repeating call_later chain on one event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, seconds: float, callback: Callable[[], None]):
        self._loop = loop
        self._seconds = seconds
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(seconds, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        # Re-arm first so a failing callback can't stop the timer
        self._handle = self._loop.call_later(self._seconds, self._fire)
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback failed")

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class EventLoopTimer:
    """
    Timer service on an asyncio event loop.

    every(seconds, callback) -> handle with cancel()
    spawn(coroutine)         -> handle with cancel()

    The loop defaults to the one running when the first call is made.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def every(self, seconds: float, callback: Callable[[], None]) -> _Repeating:
        return _Repeating(self.loop, seconds, callback)

    def spawn(self, coro: Awaitable) -> asyncio.Task:
        return self.loop.create_task(coro)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Scheduler
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class ScanReport:
    """Outcome of one scan pass."""
    checked: int = 0
    delivered: int = 0
    notified: int = 0
    skipped_notifications: int = 0
    aborted: bool = False
    reentrant: bool = False


class ReminderScheduler:
    """
    Interval-driven reminder notifier.

    `tasks` is a read-only lookup with get_task(task_id) used only to
    resolve display titles.
    """

    def __init__(
        self,
        reminders: ReminderStore,
        tasks,
        notifier: Notifier,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        clock: Callable[[], datetime] = utc_now,
        timer=None,
        fallback_title: str = FALLBACK_TASK_TITLE,
        notification_title: str = "Task Reminder",
    ):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.reminders = reminders
        self.tasks = tasks
        self.notifier = notifier
        self.interval_ms = interval_ms
        self.clock = clock
        self.timer = timer or EventLoopTimer()
        self.fallback_title = fallback_title
        self.notification_title = notification_title

        self._timer_handle = None
        self._permission_handle = None
        self._permission_requested = False
        self._scanning = False

    @property
    def running(self) -> bool:
        return self._timer_handle is not None

    # ── Lifecycle ─────────────────────────────

    def start(self) -> None:
        if self.running:
            logger.debug("Reminder scheduler already running")
            return
        self._request_permission_once()
        self.scan_once()
        self._timer_handle = self.timer.every(self.interval_ms / 1000, self._on_tick)
        logger.info(f"Reminder scheduler started (every {self.interval_ms / 1000:g}s)")

    def stop(self) -> None:
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None
            logger.info("Reminder scheduler stopped")
        if self._permission_handle is not None:
            # Never answered: ask again on the next start
            self._permission_handle.cancel()
            self._permission_handle = None
            self._permission_requested = False

    def _on_tick(self) -> None:
        if not self.running:
            return
        self.scan_once()

    # ── Permission ────────────────────────────

    def _request_permission_once(self) -> None:
        if self._permission_requested or not self.notifier.is_available():
            return
        if self.notifier.permission_state() != PermissionState.UNDETERMINED:
            return
        self._permission_requested = True
        self._permission_handle = self.timer.spawn(self._await_permission())

    async def _await_permission(self) -> None:
        try:
            state = await self.notifier.request_permission()
        except Exception as e:
            logger.warning(f"Notification permission request failed: {e}")
            return
        finally:
            self._permission_handle = None
        logger.info(f"Notification permission: {state.value}")

    def _can_notify(self) -> bool:
        return (
            self.notifier.is_available()
            and self.notifier.permission_state() == PermissionState.GRANTED
        )

    # ── Scan pass ─────────────────────────────

    def scan_once(self) -> ScanReport:
        """Deliver every due reminder in the current snapshot."""
        report = ScanReport()
        if self._scanning:
            logger.warning("Reminder scan still in progress, skipping tick")
            report.reentrant = True
            return report

        self._scanning = True
        try:
            self._scan(report)
        finally:
            self._scanning = False
        if report.delivered:
            logger.info(
                f"Reminder scan: {report.delivered} delivered, "
                f"{report.notified} notified, {report.skipped_notifications} silent"
            )
        return report

    def _scan(self, report: ScanReport) -> None:
        try:
            snapshot = self.reminders.list_reminders()
        except StoreUnavailable as e:
            logger.warning(f"Reminder scan aborted, store unavailable: {e}")
            report.aborted = True
            return

        now = self.clock()
        for reminder in snapshot:
            report.checked += 1
            if not reminder.is_due(now):
                continue
            try:
                self._deliver(reminder, report)
            except StoreUnavailable as e:
                logger.warning(f"Reminder scan aborted at {reminder.id}, retrying next tick: {e}")
                report.aborted = True
                return

    def _deliver(self, reminder: Reminder, report: ScanReport) -> None:
        current = self.reminders.get_reminder(reminder.id)
        if current is None or current.sent:
            logger.debug(f"Reminder {reminder.id} dismissed or deleted during the pass, skipping")
            return
        title = self._resolve_title(reminder.task_id)

        if self._can_notify():
            try:
                self.notifier.notify(self.notification_title, title)
                report.notified += 1
            except Exception as e:
                logger.error(f"Notifier failed for reminder {reminder.id}: {e}")
                report.skipped_notifications += 1
        else:
            logger.debug(f"Notification for {reminder.id} skipped: permission not granted")
            report.skipped_notifications += 1

        self.reminders.mark_reminder_sent(reminder.id)
        report.delivered += 1

    def _resolve_title(self, task_id: str) -> str:
        task = self.tasks.get_task(task_id)
        if task is None:
            logger.info(f"Reminder task {task_id} not found, using '{self.fallback_title}'")
            return self.fallback_title
        return task.title

    # ── Manual actions ────────────────────────

    def dismiss(self, reminder_id: str) -> bool:
        """Mark a reminder delivered without notifying."""
        return self.reminders.mark_reminder_sent(reminder_id)
