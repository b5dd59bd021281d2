"""
Session Service: temporal state computed once per session start.

Writes flat keys the condition evaluator can branch on:

  session.visitCount          daily visits, reset to 1 on a new calendar day
  session.totalVisitCount     all visits, never reset
  session.timeOfDay           1 morning, 2 afternoon, 3 evening, 4 night
  session.lastVisitDate / firstVisitDate / daysSinceFirstVisit / isWeekend
  task.currentDate            today, or the next active day for start timing "next_active"
  task.currentStatus          pending on a new day, overdue once past the deadline
  task.previous*              yesterday's still-pending task, failed after today's deadline
  task.isActiveDay            today's ISO weekday is in task.activeDays (empty = every day)
  task.isPastDeadline         now is past the deadline on the task date

Every value is a pure function of stored state and the injected clock, so
running initialize() twice at the same instant only moves the visit counters.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Optional

import structlog

from config.settings import SessionConfig
from database.store_base import BaseDataStore
from templates.formatters import parse_list
from utils.conditions import to_number

logger = structlog.get_logger()


class StorageKeys:
    SESSION_VISIT_COUNT = "session.visitCount"
    SESSION_TOTAL_VISIT_COUNT = "session.totalVisitCount"
    SESSION_TIME_OF_DAY = "session.timeOfDay"
    SESSION_LAST_VISIT_DATE = "session.lastVisitDate"
    SESSION_FIRST_VISIT_DATE = "session.firstVisitDate"
    SESSION_DAYS_SINCE_FIRST_VISIT = "session.daysSinceFirstVisit"
    SESSION_IS_WEEKEND = "session.isWeekend"

    USER_NAME = "user.name"
    USER_TASK = "user.task"

    TASK_ACTIVE_DAYS = "task.activeDays"
    TASK_DEADLINE_TIME = "task.deadlineTime"
    TASK_START_TIMING = "task.startTiming"
    TASK_CURRENT_DATE = "task.currentDate"
    TASK_CURRENT_STATUS = "task.currentStatus"
    TASK_PREVIOUS_DATE = "task.previousDate"
    TASK_PREVIOUS_STATUS = "task.previousStatus"
    TASK_PREVIOUS_TASK = "task.previousTask"
    TASK_IS_ACTIVE_DAY = "task.isActiveDay"
    TASK_IS_PAST_DEADLINE = "task.isPastDeadline"
    TASK_LAST_AUTO_UPDATE = "task.lastAutoUpdate"
    TASK_AUTO_UPDATE_REASON = "task.autoUpdateReason"


class TaskStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    FAILED = "failed"


class StartTiming:
    TODAY = "today"
    NEXT_ACTIVE = "next_active"


DATE_FORMAT = "%Y-%m-%d"


# ──────────────────────────────────────────────────────────────
#  Pure helpers
# ──────────────────────────────────────────────────────────────

def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def time_of_day(hour: int, config: SessionConfig) -> int:
    if config.morning_start_hour <= hour < config.afternoon_start_hour:
        return 1
    if config.afternoon_start_hour <= hour < config.evening_start_hour:
        return 2
    if config.evening_start_hour <= hour < config.night_start_hour:
        return 3
    return 4


def _parse_clock(value: str) -> Optional[time]:
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        return None


def deadline_time(value: Any, config: SessionConfig) -> time:
    """A stored deadline option (1-4) or "HH:MM" string, as a clock time."""
    fallback = _parse_clock(config.default_deadline) or time(23, 0)
    if value is None:
        return fallback
    if isinstance(value, str) and ":" in value:
        return _parse_clock(value) or fallback
    option = to_number(value)
    if option is not None and int(option) in config.deadline_windows:
        return _parse_clock(config.deadline_windows[int(option)]) or fallback
    return fallback


def parse_active_days(value: Any) -> list[int]:
    """ISO weekdays (1 = Monday … 7 = Sunday) from a list, JSON array or "1,2,3" string."""
    if value is None:
        return []
    items = parse_list(value)
    if items is None:
        items = [value]
    days = []
    for item in items:
        number = to_number(item)
        if number is not None and 1 <= int(number) <= 7:
            days.append(int(number))
    return days


def is_active_day(day: date, active_days: list[int]) -> bool:
    return not active_days or day.isoweekday() in active_days


def next_active_date(today: date, active_days: list[int]) -> date:
    """First day after ``today`` that is active; tomorrow when none are configured."""
    if not active_days:
        return today + timedelta(days=1)
    for offset in range(1, 8):
        candidate = today + timedelta(days=offset)
        if candidate.isoweekday() in active_days:
            return candidate
    return today + timedelta(days=1)


# ──────────────────────────────────────────────────────────────
#  Session Service
# ──────────────────────────────────────────────────────────────

class SessionService:
    """Derives day-rollover counters and task booleans at session start."""

    def __init__(
        self,
        store: BaseDataStore,
        config: SessionConfig = None,
        now: Callable[[], datetime] = None,
    ):
        self.store = store
        self.config = config or SessionConfig()
        self._now = now or datetime.now

    async def initialize(self) -> dict[str, Any]:
        """Run every session-start update; returns the values written."""
        now = self._now()
        today = format_date(now.date())
        written: dict[str, Any] = {}

        async def put(key: str, value: Any):
            await self.store.set(key, value)
            written[key] = value

        last_visit = await self.store.get(StorageKeys.SESSION_LAST_VISIT_DATE)
        is_new_day = last_visit != today

        # Visit counters
        if is_new_day:
            await put(StorageKeys.SESSION_VISIT_COUNT, 1)
        else:
            current = to_number(await self.store.get(StorageKeys.SESSION_VISIT_COUNT)) or 0
            await put(StorageKeys.SESSION_VISIT_COUNT, int(current) + 1)
        total = to_number(await self.store.get(StorageKeys.SESSION_TOTAL_VISIT_COUNT)) or 0
        await put(StorageKeys.SESSION_TOTAL_VISIT_COUNT, int(total) + 1)

        await put(StorageKeys.SESSION_TIME_OF_DAY, time_of_day(now.hour, self.config))

        # Dates
        if is_new_day:
            await put(StorageKeys.SESSION_LAST_VISIT_DATE, today)
        first_visit = parse_date(await self.store.get(StorageKeys.SESSION_FIRST_VISIT_DATE))
        if first_visit is None:
            first_visit = now.date()
            await put(StorageKeys.SESSION_FIRST_VISIT_DATE, today)
        await put(StorageKeys.SESSION_DAYS_SINCE_FIRST_VISIT, max((now.date() - first_visit).days, 0))
        await put(StorageKeys.SESSION_IS_WEEKEND, now.isoweekday() >= 6)

        await self._update_task(now, today, put)

        logger.info("session_initialized",
                    new_day=is_new_day,
                    visit_count=written.get(StorageKeys.SESSION_VISIT_COUNT),
                    time_of_day=written.get(StorageKeys.SESSION_TIME_OF_DAY),
                    is_active_day=written.get(StorageKeys.TASK_IS_ACTIVE_DAY),
                    is_past_deadline=written.get(StorageKeys.TASK_IS_PAST_DEADLINE))
        return written

    async def _update_task(self, now: datetime, today: str, put):
        last_task_date = await self.store.get(StorageKeys.TASK_CURRENT_DATE)
        is_new_task_day = last_task_date != today
        deadline = deadline_time(await self.store.get(StorageKeys.TASK_DEADLINE_TIME), self.config)
        active_days = parse_active_days(await self.store.get(StorageKeys.TASK_ACTIVE_DAYS))
        user_task = await self.store.get(StorageKeys.USER_TASK)

        if is_new_task_day and last_task_date is not None:
            await self._archive_previous_day(last_task_date, user_task, put)
        await self._expire_previous_day(now, deadline, put)

        # Task date honours the start timing preference only when the day rolls over
        start_timing = await self.store.get(StorageKeys.TASK_START_TIMING)
        if is_new_task_day and start_timing == StartTiming.NEXT_ACTIVE:
            task_date = format_date(next_active_date(now.date(), active_days))
        else:
            task_date = today
        await put(StorageKeys.TASK_CURRENT_DATE, task_date)

        if is_new_task_day or await self.store.get(StorageKeys.TASK_CURRENT_STATUS) is None:
            await put(StorageKeys.TASK_CURRENT_STATUS, TaskStatus.PENDING)

        await put(StorageKeys.TASK_IS_ACTIVE_DAY, is_active_day(now.date(), active_days))
        past_deadline = self.is_past_deadline(now, deadline, parse_date(task_date))
        await put(StorageKeys.TASK_IS_PAST_DEADLINE, past_deadline)

        status = await self.store.get(StorageKeys.TASK_CURRENT_STATUS)
        if past_deadline and status == TaskStatus.PENDING and user_task is not None:
            await put(StorageKeys.TASK_CURRENT_STATUS, TaskStatus.OVERDUE)
            await self._record_auto_update(now, "current_day", TaskStatus.PENDING, TaskStatus.OVERDUE,
                                           "deadline_passed", put)

    @staticmethod
    def is_past_deadline(now: datetime, deadline: time, task_date: Optional[date] = None) -> bool:
        return now > datetime.combine(task_date or now.date(), deadline)

    async def _archive_previous_day(self, last_task_date: str, user_task: Any, put):
        status = await self.store.get(StorageKeys.TASK_CURRENT_STATUS)
        if user_task is not None and status == TaskStatus.PENDING:
            await put(StorageKeys.TASK_PREVIOUS_DATE, last_task_date)
            await put(StorageKeys.TASK_PREVIOUS_STATUS, TaskStatus.PENDING)
            await put(StorageKeys.TASK_PREVIOUS_TASK, user_task)
            logger.info("task_day_archived", previous_date=last_task_date)

    async def _expire_previous_day(self, now: datetime, deadline: time, put):
        """Yesterday's pending task gets until today's deadline before it fails."""
        if await self.store.get(StorageKeys.TASK_PREVIOUS_STATUS) != TaskStatus.PENDING:
            return
        if self.is_past_deadline(now, deadline):
            await put(StorageKeys.TASK_PREVIOUS_STATUS, TaskStatus.FAILED)
            await self._record_auto_update(now, "previous_day", TaskStatus.PENDING, TaskStatus.FAILED,
                                           "grace_period_expired", put)

    async def _record_auto_update(self, now: datetime, scope: str, old: str, new: str, reason: str, put):
        await put(StorageKeys.TASK_LAST_AUTO_UPDATE, now.strftime("%Y-%m-%d %H:%M"))
        await put(StorageKeys.TASK_AUTO_UPDATE_REASON, f"{scope}: {old} → {new} ({reason})")
        logger.info("task_status_auto_updated", scope=scope, old=old, new=new, reason=reason)

    async def recalculate_active_day(self) -> bool:
        """Recompute task.isActiveDay, e.g. after the user edits their active days."""
        active_days = parse_active_days(await self.store.get(StorageKeys.TASK_ACTIVE_DAYS))
        value = is_active_day(self._now().date(), active_days)
        await self.store.set(StorageKeys.TASK_IS_ACTIVE_DAY, value)
        return value
