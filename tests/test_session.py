"""Tests for session-start state: visit counters, time of day and task booleans."""
from datetime import date, datetime, time

import pytest

from conftest import fixed_now
from config.settings import SessionConfig
from context.session import (
    SessionService, StorageKeys, TaskStatus, deadline_time, is_active_day,
    next_active_date, parse_active_days, time_of_day,
)


@pytest.fixture
def config():
    return SessionConfig()


def service(store, **now_kwargs) -> SessionService:
    return SessionService(store, SessionConfig(), now=fixed_now(**now_kwargs))


class TestHelpers:
    @pytest.mark.parametrize("hour,expected", [(5, 1), (11, 1), (12, 2), (16, 2), (17, 3), (20, 3), (21, 4), (2, 4)])
    def test_time_of_day(self, config, hour, expected):
        assert time_of_day(hour, config) == expected

    def test_deadline_time(self, config):
        assert deadline_time(1, config) == time(10, 0)
        assert deadline_time("3", config) == time(18, 0)
        assert deadline_time("07:30", config) == time(7, 30)
        assert deadline_time(None, config) == time(23, 0)
        assert deadline_time(9, config) == time(23, 0)

    def test_parse_active_days(self):
        assert parse_active_days([1, 3, 5]) == [1, 3, 5]
        assert parse_active_days("[6, 7]") == [6, 7]
        assert parse_active_days("1,2") == [1, 2]
        assert parse_active_days("4") == [4]
        assert parse_active_days([0, 8, "x", 2]) == [2]
        assert parse_active_days(None) == []

    def test_is_active_day(self):
        wednesday = date(2025, 3, 12)
        assert is_active_day(wednesday, [1, 3, 5])
        assert not is_active_day(wednesday, [6, 7])
        assert is_active_day(wednesday, [])

    def test_next_active_date(self):
        wednesday = date(2025, 3, 12)
        assert next_active_date(wednesday, [1]) == date(2025, 3, 17)
        assert next_active_date(wednesday, [3]) == date(2025, 3, 19)
        assert next_active_date(wednesday, []) == date(2025, 3, 13)


class TestVisitCounters:
    @pytest.mark.asyncio
    async def test_first_visit(self, store):
        written = await service(store).initialize()
        assert written[StorageKeys.SESSION_VISIT_COUNT] == 1
        assert written[StorageKeys.SESSION_TOTAL_VISIT_COUNT] == 1
        assert await store.get(StorageKeys.SESSION_LAST_VISIT_DATE) == "2025-03-12"
        assert await store.get(StorageKeys.SESSION_FIRST_VISIT_DATE) == "2025-03-12"
        assert await store.get(StorageKeys.SESSION_DAYS_SINCE_FIRST_VISIT) == 0

    @pytest.mark.asyncio
    async def test_new_day_resets_daily_count(self, store):
        await store.set_many({
            StorageKeys.SESSION_LAST_VISIT_DATE: "2025-03-11",
            StorageKeys.SESSION_VISIT_COUNT: 5,
            StorageKeys.SESSION_TOTAL_VISIT_COUNT: 12,
            StorageKeys.SESSION_FIRST_VISIT_DATE: "2025-03-01",
        })
        await service(store).initialize()
        assert await store.get(StorageKeys.SESSION_VISIT_COUNT) == 1
        assert await store.get(StorageKeys.SESSION_TOTAL_VISIT_COUNT) == 13
        assert await store.get(StorageKeys.SESSION_LAST_VISIT_DATE) == "2025-03-12"
        assert await store.get(StorageKeys.SESSION_DAYS_SINCE_FIRST_VISIT) == 11

    @pytest.mark.asyncio
    async def test_same_day_increments(self, store):
        await service(store, hour=9).initialize()
        await service(store, hour=15).initialize()
        assert await store.get(StorageKeys.SESSION_VISIT_COUNT) == 2
        assert await store.get(StorageKeys.SESSION_TOTAL_VISIT_COUNT) == 2
        assert await store.get(StorageKeys.SESSION_TIME_OF_DAY) == 2

    @pytest.mark.asyncio
    async def test_weekend_flag(self, store):
        await service(store, day=15).initialize()
        assert await store.get(StorageKeys.SESSION_IS_WEEKEND) is True
        await service(store, day=17).initialize()
        assert await store.get(StorageKeys.SESSION_IS_WEEKEND) is False


class TestTaskState:
    @pytest.mark.asyncio
    async def test_active_day_from_stored_days(self, store):
        await store.set(StorageKeys.TASK_ACTIVE_DAYS, [1, 3, 5])
        await service(store).initialize()
        assert await store.get(StorageKeys.TASK_IS_ACTIVE_DAY) is True

        await store.set(StorageKeys.TASK_ACTIVE_DAYS, "6,7")
        await service(store).initialize()
        assert await store.get(StorageKeys.TASK_IS_ACTIVE_DAY) is False

    @pytest.mark.asyncio
    async def test_past_deadline(self, store):
        await store.set(StorageKeys.TASK_DEADLINE_TIME, 1)
        await service(store, hour=9, minute=59).initialize()
        assert await store.get(StorageKeys.TASK_IS_PAST_DEADLINE) is False
        await service(store, hour=10, minute=1).initialize()
        assert await store.get(StorageKeys.TASK_IS_PAST_DEADLINE) is True

    @pytest.mark.asyncio
    async def test_new_day_sets_pending(self, store):
        await service(store).initialize()
        assert await store.get(StorageKeys.TASK_CURRENT_STATUS) == TaskStatus.PENDING
        assert await store.get(StorageKeys.TASK_CURRENT_DATE) == "2025-03-12"

    @pytest.mark.asyncio
    async def test_completed_status_kept_within_day(self, store):
        await service(store).initialize()
        await store.set(StorageKeys.TASK_CURRENT_STATUS, TaskStatus.COMPLETED)
        await service(store, hour=23, minute=30).initialize()
        assert await store.get(StorageKeys.TASK_CURRENT_STATUS) == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_pending_task_becomes_overdue(self, store):
        await store.set_many({StorageKeys.USER_TASK: "walk", StorageKeys.TASK_DEADLINE_TIME: 2})
        await service(store, hour=15).initialize()
        assert await store.get(StorageKeys.TASK_CURRENT_STATUS) == TaskStatus.OVERDUE
        assert "deadline_passed" in await store.get(StorageKeys.TASK_AUTO_UPDATE_REASON)

    @pytest.mark.asyncio
    async def test_no_overdue_without_task(self, store):
        await store.set(StorageKeys.TASK_DEADLINE_TIME, 2)
        await service(store, hour=15).initialize()
        assert await store.get(StorageKeys.TASK_CURRENT_STATUS) == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_previous_day_archived_then_failed(self, store):
        await store.set_many({
            StorageKeys.USER_TASK: "walk",
            StorageKeys.TASK_DEADLINE_TIME: 1,
            StorageKeys.TASK_CURRENT_DATE: "2025-03-11",
            StorageKeys.TASK_CURRENT_STATUS: TaskStatus.PENDING,
        })
        await service(store, hour=8).initialize()
        assert await store.get(StorageKeys.TASK_PREVIOUS_DATE) == "2025-03-11"
        assert await store.get(StorageKeys.TASK_PREVIOUS_STATUS) == TaskStatus.PENDING
        assert await store.get(StorageKeys.TASK_PREVIOUS_TASK) == "walk"
        assert await store.get(StorageKeys.TASK_CURRENT_STATUS) == TaskStatus.PENDING

        await service(store, hour=11).initialize()
        assert await store.get(StorageKeys.TASK_PREVIOUS_STATUS) == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_previous_day_fails_after_todays_deadline(self, store):
        await store.set_many({
            StorageKeys.USER_TASK: "walk",
            StorageKeys.TASK_DEADLINE_TIME: 1,
            StorageKeys.TASK_CURRENT_DATE: "2025-03-11",
            StorageKeys.TASK_CURRENT_STATUS: TaskStatus.PENDING,
        })
        await service(store, hour=11).initialize()
        assert await store.get(StorageKeys.TASK_PREVIOUS_STATUS) == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_completed_previous_day_not_archived(self, store):
        await store.set_many({
            StorageKeys.USER_TASK: "walk",
            StorageKeys.TASK_CURRENT_DATE: "2025-03-11",
            StorageKeys.TASK_CURRENT_STATUS: TaskStatus.COMPLETED,
        })
        await service(store).initialize()
        assert await store.get(StorageKeys.TASK_PREVIOUS_DATE) is None

    @pytest.mark.asyncio
    async def test_next_active_start_timing(self, store):
        await store.set_many({
            StorageKeys.TASK_ACTIVE_DAYS: [1],
            StorageKeys.TASK_START_TIMING: "next_active",
        })
        await service(store).initialize()
        assert await store.get(StorageKeys.TASK_CURRENT_DATE) == "2025-03-17"

    @pytest.mark.asyncio
    async def test_recalculate_active_day(self, store):
        session = service(store)
        await store.set(StorageKeys.TASK_ACTIVE_DAYS, [6])
        assert await session.recalculate_active_day() is False
        await store.set(StorageKeys.TASK_ACTIVE_DAYS, [3])
        assert await session.recalculate_active_day() is True
        assert await store.get(StorageKeys.TASK_IS_ACTIVE_DAY) is True

    def test_is_past_deadline(self):
        now = datetime(2025, 3, 12, 14, 30)
        assert SessionService.is_past_deadline(now, time(14, 0))
        assert not SessionService.is_past_deadline(now, time(18, 0))
        assert not SessionService.is_past_deadline(now, time(10, 0), date(2025, 3, 13))
