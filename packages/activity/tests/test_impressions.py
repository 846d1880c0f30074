"""Tests for ImpressionBuffer.

Tests cover:
- Counts aggregate per series into one batch
- Each affected series refreshed once
- Failed writes merge counts back
- Event batch and activity stamp commit together
- Empty flush is a no-op
- run() flushes on stop
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from chaptertrack_activity.impressions import ImpressionBuffer
from chaptertrack_common import StorageError
from chaptertrack_contracts import ActivityEventType

pytestmark = pytest.mark.unit

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def stores():
    conn = AsyncMock()

    async def _run(operation, **kwargs):
        return await operation(conn)

    with (
        patch("chaptertrack_activity.impressions.ActivityStore") as activity_store,
        patch("chaptertrack_activity.impressions.SeriesStore") as series_store,
        patch("chaptertrack_activity.impressions.run_serializable", new_callable=AsyncMock) as run,
    ):
        run.side_effect = _run
        activity_store.insert_batch = AsyncMock(return_value=0)
        series_store.touch_activity = AsyncMock()
        yield MagicMock(activity=activity_store, series=series_store, run=run, conn=conn)


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.refresh_activity_score = AsyncMock(return_value=10.0)
    return engine


class TestFlush:
    """Tests for ImpressionBuffer.flush()."""

    async def test_aggregates_per_series(self, stores, engine):
        a, b = uuid4(), uuid4()
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)
        buffer.enqueue([a, b, a])
        buffer.enqueue([a])

        flushed = await buffer.flush()

        assert flushed == 2
        events = stores.activity.insert_batch.call_args[0][0]
        by_series = {e.series_id: e for e in events}
        assert by_series[a].weight == 15
        assert by_series[b].weight == 5
        assert all(e.event_type is ActivityEventType.SEARCH_IMPRESSION for e in events)
        assert all(e.occurred_at == NOW for e in events)
        assert buffer.pending == 0

    async def test_each_series_refreshed_once(self, stores, engine):
        a, b = uuid4(), uuid4()
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)
        buffer.enqueue([a, a, a, b])

        await buffer.flush()

        refreshed = sorted(str(c.args[0]) for c in engine.refresh_activity_score.await_args_list)
        assert refreshed == sorted([str(a), str(b)])
        touched = stores.series.touch_activity.call_args[0][0]
        assert set(touched) == {a, b}

    async def test_failure_merges_counts_back(self, stores, engine):
        a = uuid4()
        stores.activity.insert_batch.side_effect = StorageError("down")
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)
        buffer.enqueue([a, a])

        with pytest.raises(StorageError):
            await buffer.flush()

        buffer.enqueue([a])
        assert buffer.pending == 3
        engine.refresh_activity_score.assert_not_called()

    async def test_batch_and_touch_share_transaction(self, stores, engine):
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)
        buffer.enqueue([uuid4(), uuid4()])

        await buffer.flush()

        stores.run.assert_awaited_once()
        assert stores.activity.insert_batch.call_args.kwargs["conn"] is stores.conn
        assert stores.series.touch_activity.call_args.kwargs["conn"] is stores.conn

    async def test_touch_failure_writes_each_impression_once(self, stores, engine):
        """A failed stamp rolls back the batch, so the retry is the only write."""
        committed = []

        async def _run(operation, **kwargs):
            staged = []
            conn = AsyncMock()
            stores.activity.insert_batch.side_effect = lambda events, conn: staged.extend(events)
            await operation(conn)
            committed.extend(staged)

        stores.run.side_effect = _run
        stores.series.touch_activity.side_effect = [StorageError("down"), None]
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)
        buffer.enqueue([uuid4(), uuid4()])

        with pytest.raises(StorageError):
            await buffer.flush()
        await buffer.flush()

        assert sum(e.weight for e in committed) == 10
        assert buffer.pending == 0

    async def test_refresh_failure_is_logged_not_raised(self, stores, engine):
        engine.refresh_activity_score.side_effect = StorageError("down")
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)
        buffer.enqueue([uuid4()])

        assert await buffer.flush() == 1

    async def test_empty_flush(self, stores, engine):
        buffer = ImpressionBuffer(engine, clock=lambda: NOW)

        assert await buffer.flush() == 0
        stores.activity.insert_batch.assert_not_called()


class TestRun:
    """Tests for ImpressionBuffer.run()."""

    async def test_flushes_when_stopped(self, stores, engine):
        buffer = ImpressionBuffer(engine, flush_interval=60, clock=lambda: NOW)
        buffer.enqueue([uuid4()])
        stop = asyncio.Event()
        stop.set()

        await buffer.run(stop)

        stores.activity.insert_batch.assert_awaited_once()
        assert buffer.pending == 0

    async def test_periodic_flush(self, stores, engine):
        buffer = ImpressionBuffer(engine, flush_interval=0.01, clock=lambda: NOW)
        buffer.enqueue([uuid4()])
        stop = asyncio.Event()

        task = asyncio.create_task(buffer.run(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await task

        stores.activity.insert_batch.assert_awaited_once()
