"""Tests for connection pool management.

Tests cover:
- DatabaseConfig built from settings
- Password redaction for logs
- Lazy single pool creation, StorageError on failure
- close is idempotent
- Health check never raises
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chaptertrack_common import Settings, StorageError
from chaptertrack_storage import connection
from chaptertrack_storage.connection import (
    DatabaseConfig,
    check_connection_health,
    close_connection_pool,
    get_connection_pool,
)

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def reset_pool():
    connection._pool = None
    yield
    connection._pool = None


class TestDatabaseConfig:
    """Tests for DatabaseConfig."""

    def test_from_settings(self):
        settings = Settings(
            database_url="postgresql://ct:pw@db:5433/catalog",
            database_pool_min_size=1,
            database_pool_max_size=4,
            database_command_timeout_seconds=5,
        )

        config = DatabaseConfig.from_settings(settings)

        assert config.dsn == "postgresql://ct:pw@db:5433/catalog"
        assert config.min_pool_size == 1
        assert config.max_pool_size == 4
        assert config.command_timeout == 5

    def test_redacted_dsn(self):
        config = DatabaseConfig(dsn="postgresql://ct:s3cret@db:5432/catalog")

        assert config.redacted_dsn == "postgresql://ct:***@db:5432/catalog"

    def test_redacted_dsn_without_password(self):
        config = DatabaseConfig(dsn="postgresql://db/catalog")

        assert config.redacted_dsn == "postgresql://db/catalog"


class TestPoolLifecycle:
    """Tests for get_connection_pool() / close_connection_pool()."""

    async def test_created_once(self):
        pool = MagicMock()
        with patch("chaptertrack_storage.connection.asyncpg.create_pool", new=AsyncMock(return_value=pool)) as create:
            first = await get_connection_pool(DatabaseConfig(dsn="postgresql://db/x"))
            second = await get_connection_pool()

        assert first is pool
        assert second is pool
        create.assert_awaited_once()
        assert create.call_args.kwargs["server_settings"]["timezone"] == "UTC"

    async def test_creation_failure(self):
        with patch(
            "chaptertrack_storage.connection.asyncpg.create_pool",
            new=AsyncMock(side_effect=OSError("connection refused")),
        ):
            with pytest.raises(StorageError, match="Failed to create connection pool"):
                await get_connection_pool(DatabaseConfig(dsn="postgresql://db/x"))

    async def test_close_idempotent(self):
        pool = MagicMock()
        pool.close = AsyncMock()
        connection._pool = pool

        await close_connection_pool()
        await close_connection_pool()

        pool.close.assert_awaited_once()
        assert connection._pool is None


class TestHealthCheck:
    """Tests for check_connection_health()."""

    async def test_healthy(self):
        pool = MagicMock()
        pool.fetchval = AsyncMock(return_value=1)
        connection._pool = pool

        assert await check_connection_health() is True

    async def test_unhealthy(self):
        pool = MagicMock()
        pool.fetchval = AsyncMock(side_effect=OSError("gone"))
        connection._pool = pool

        assert await check_connection_health() is False
