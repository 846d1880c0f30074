"""asyncpg pool shared by every store in the process.

The pool is created lazily on first use from :class:`DatabaseConfig`
(derived from ``Settings.database_url`` unless given) and closed explicitly
on shutdown.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import asyncpg
from chaptertrack_common import Settings, StorageError, get_logger, get_settings

logger = get_logger(__name__)

APPLICATION_NAME = "chaptertrack"


@dataclass(frozen=True)
class DatabaseConfig:
    """Pool parameters.

    Attributes:
        dsn: PostgreSQL URL, e.g. ``postgresql://user:pw@host:5432/chaptertrack``
        min_pool_size: Connections opened eagerly
        max_pool_size: Upper bound on concurrent connections
        command_timeout: Default per-query timeout in seconds
    """

    dsn: str
    min_pool_size: int = 2
    max_pool_size: int = 10
    command_timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DatabaseConfig":
        settings = settings or get_settings()
        return cls(
            dsn=settings.database_url,
            min_pool_size=settings.database_pool_min_size,
            max_pool_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout_seconds,
        )

    @property
    def redacted_dsn(self) -> str:
        """DSN with the password masked, for logs."""
        parts = urlsplit(self.dsn)
        if parts.password is None:
            return self.dsn
        netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
        return urlunsplit(parts._replace(netloc=netloc))


async def _init_connection(conn: asyncpg.Connection) -> None:
    # jsonb columns (job payloads) decode to dicts
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


_pool: Optional[asyncpg.Pool] = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(config: Optional[DatabaseConfig] = None) -> asyncpg.Pool:
    """Return the process pool, creating it on first call.

    ``config`` only matters for the call that creates the pool.

    Raises:
        StorageError: If the pool cannot be created
    """
    global _pool

    if _pool is not None:
        return _pool

    async with _pool_lock:
        if _pool is not None:
            return _pool

        config = config or DatabaseConfig.from_settings()
        logger.info(
            "connection_pool_opening",
            dsn=config.redacted_dsn,
            min_size=config.min_pool_size,
            max_size=config.max_pool_size,
        )

        try:
            _pool = await asyncpg.create_pool(
                dsn=config.dsn,
                min_size=config.min_pool_size,
                max_size=config.max_pool_size,
                command_timeout=config.command_timeout,
                server_settings={"application_name": APPLICATION_NAME, "timezone": "UTC"},
                init=_init_connection,
            )
        except Exception as e:
            logger.error("connection_pool_open_failed", dsn=config.redacted_dsn, error=str(e))
            raise StorageError(f"Failed to create connection pool: {e}") from e

        return _pool


async def close_connection_pool() -> None:
    """Close the process pool if open. Safe to call more than once."""
    global _pool

    pool, _pool = _pool, None
    if pool is None:
        return
    try:
        await pool.close()
        logger.info("connection_pool_closed")
    except Exception as e:
        logger.warning("connection_pool_close_failed", error=str(e))


async def check_connection_health() -> bool:
    """``SELECT 1`` round trip. Never raises."""
    try:
        pool = await get_connection_pool()
        return await pool.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
