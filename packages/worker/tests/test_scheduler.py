"""Tests for periodic maintenance tasks.

Tests cover:
- run_periodic honours run_immediately and stop
- Task failures do not end the loop
- Stalled-job recovery window
- maintenance_tasks wiring
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chaptertrack_common import Settings
from chaptertrack_worker.scheduler import (
    STALLED_AFTER,
    PeriodicTask,
    maintenance_tasks,
    recover_stalled_jobs,
    run_periodic,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


class TestRunPeriodic:
    """Tests for run_periodic()."""

    async def test_stop_before_first_interval(self):
        func = AsyncMock()
        stop = asyncio.Event()
        stop.set()

        await run_periodic(PeriodicTask("t", 60, func), stop)

        func.assert_not_called()

    async def test_runs_immediately(self):
        stop = asyncio.Event()

        async def func():
            stop.set()

        wrapped = AsyncMock(side_effect=func)
        await run_periodic(PeriodicTask("t", 60, wrapped, run_immediately=True), stop)

        wrapped.assert_awaited_once()

    async def test_failures_continue(self):
        stop = asyncio.Event()
        calls = []

        async def func():
            calls.append(1)
            if len(calls) >= 3:
                stop.set()
            raise RuntimeError("boom")

        await asyncio.wait_for(run_periodic(PeriodicTask("t", 0.001, func), stop), timeout=2)

        assert len(calls) == 3


class TestRecoverStalledJobs:
    """Tests for recover_stalled_jobs()."""

    async def test_window(self):
        with patch("chaptertrack_worker.scheduler.QueueStore") as store:
            store.recover_stalled = AsyncMock(return_value=2)

            recovered = await recover_stalled_jobs(NOW)

        assert recovered == 2
        store.recover_stalled.assert_awaited_once_with(NOW - STALLED_AFTER)
        assert STALLED_AFTER == timedelta(minutes=10)


class TestMaintenanceTasks:
    """Tests for maintenance_tasks()."""

    def test_task_names_and_intervals(self):
        settings = Settings(demotion_interval_seconds=100, healing_interval_seconds=200)
        engine = MagicMock()

        tasks = {t.name: t for t in maintenance_tasks(settings, engine)}

        assert set(tasks) == {"tier_demotion", "metadata_healing", "stalled_jobs", "queue_cleanup"}
        assert tasks["tier_demotion"].interval_seconds == 100
        assert tasks["metadata_healing"].interval_seconds == 200
        assert tasks["tier_demotion"].func is engine.run_tier_demotion_check

    async def test_healing_uses_settings(self):
        settings = Settings()
        tasks = {t.name: t for t in maintenance_tasks(settings, MagicMock())}

        with patch("chaptertrack_worker.scheduler.run_metadata_healing", new=AsyncMock(return_value=3)) as heal:
            assert await tasks["metadata_healing"].func() == 3

        heal.assert_awaited_once_with(settings)
