# ------------------------------------------------------------------------
# File: reminders.py
# Location: salesdesk/core/reminders.py
# Description:
#     Recurring poll for calendar events entering a reminder window.
#     Selection excludes events whose sent marker is already set, so a
#     poll can run any number of times (including after a restart) and a
#     given reminder goes out at most once per event, barring a crash
#     between dispatch and marking. The marker is written after the send
#     is dispatched, in a separate conditional write.
# ------------------------------------------------------------------------

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from salesdesk.db.models import CalendarEvent, Client, EventStatus, User
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.reminders", "salesdesk.log")


@dataclass(frozen=True)
class ReminderPolicy:
    name: str
    marker_field: str
    template: str
    target_offset: timedelta
    grace: timedelta
    interval: timedelta
    lead_time: str

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        centre = now + self.target_offset
        return centre - self.grace, centre + self.grace


@dataclass
class ReminderRun:
    policy: str
    selected: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def default_policies(settings) -> list[ReminderPolicy]:
    return [
        ReminderPolicy(
            name="24h",
            marker_field="reminder_24h_sent_at",
            template="event_reminder",
            target_offset=timedelta(hours=24),
            grace=timedelta(minutes=settings.reminder_24h_grace_minutes),
            interval=timedelta(minutes=settings.reminder_24h_interval_minutes),
            lead_time="tomorrow",
        ),
        ReminderPolicy(
            name="1h",
            marker_field="reminder_1h_sent_at",
            template="event_reminder",
            target_offset=timedelta(minutes=62.5),
            grace=timedelta(minutes=settings.reminder_1h_grace_minutes),
            interval=timedelta(minutes=settings.reminder_1h_interval_minutes),
            lead_time="in about an hour",
        ),
    ]


class ReminderScheduler:
    def __init__(self, gateway, notifier, policies, clock=None, extra_jobs=None):
        self.gateway = gateway
        self.notifier = notifier
        self.policies = {policy.name: policy for policy in policies}
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        # name -> (interval, callable) for non-reminder periodic work such as the expiry sweep
        self.extra_jobs: dict[str, tuple[timedelta, Callable[[], object]]] = dict(extra_jobs or {})
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def due_events(self, policy: ReminderPolicy, now: datetime) -> list:
        start, end = policy.window(now)
        marker = getattr(CalendarEvent, policy.marker_field)
        return self.gateway.select(
            CalendarEvent,
            CalendarEvent.status == EventStatus.Scheduled,
            CalendarEvent.scheduled_date >= start,
            CalendarEvent.scheduled_date <= end,
            marker.is_(None),
            order_by=CalendarEvent.scheduled_date,
        )

    def run_once(self, policy_name: str, now: Optional[datetime] = None) -> ReminderRun:
        policy = self.policies[policy_name]
        now = now or self.clock()
        start, end = policy.window(now)
        logger.info("Checking for %s reminders. Window: %s to %s", policy.name, start.isoformat(), end.isoformat())

        events = self.due_events(policy, now)
        run = ReminderRun(policy=policy.name, selected=len(events))

        for event in events:
            try:
                if self._remind(policy, event, now):
                    run.sent += 1
                else:
                    run.skipped += 1
            except Exception:
                run.failed += 1
                logger.exception("Failed to process %s reminder for event %s", policy.name, event.id)

        logger.info(
            "%s reminders: %d selected, %d sent, %d skipped, %d failed",
            policy.name, run.selected, run.sent, run.skipped, run.failed,
        )
        return run

    def _remind(self, policy: ReminderPolicy, event, now: datetime) -> bool:
        user = self.gateway.read(User, event.user_id)
        if user is None or not user.email:
            logger.warning("No email for user %s, skipping event %s", event.user_id, event.id)
            return False
        client = self.gateway.read(Client, event.client_id) if event.client_id else None

        self.notifier.dispatch(self.notifier.email_effect(
            user.email, policy.template,
            title=event.title,
            scheduled_date=event.scheduled_date.isoformat(),
            lead_time=policy.lead_time,
            user_name=user.full_name or user.email,
            company_name=client.company_name if client else "",
        ))

        rows = self.gateway.conditional_update(
            CalendarEvent, event.id, {policy.marker_field: now}, {policy.marker_field: None},
        )
        if rows == 0:
            logger.info("Event %s was already marked for %s reminder", event.id, policy.name)
        return True

    # -- timers ------------------------------------------------------------

    def start(self, jobs=None) -> None:
        """Start one timer thread per job. ``jobs`` limits which jobs run; default is all."""
        self._stop.clear()
        for policy in self.policies.values():
            if jobs is not None and policy.name not in jobs:
                continue
            self._spawn(policy.name, policy.interval, lambda name=policy.name: self.run_once(name))
        for name, (interval, job) in self.extra_jobs.items():
            if jobs is not None and name not in jobs:
                continue
            self._spawn(name, interval, job)
        logger.info("Scheduler started with jobs: %s", ", ".join(t.name for t in self._threads))

    def _spawn(self, name, interval, job):
        thread = threading.Thread(
            target=self._loop, args=(name, interval, job), name=f"salesdesk-{name}", daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _loop(self, name, interval, job):
        while not self._stop.is_set():
            try:
                job()
            except Exception:
                logger.exception("Scheduled job %s failed", name)
            self._stop.wait(interval.total_seconds())

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Scheduler stopped")
