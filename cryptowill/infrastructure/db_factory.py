"""
Database connection factory utilities for CryptoWill.

Provides centralized management of the async PostgreSQL pool backing the
Postgres record store. The PoolManager singleton hands out one pool per DSN
and drops a pool once its store closes it.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import threading
from typing import Dict, Optional

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cryptowill.config import Settings, get_settings
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


class PoolManager:
    """
    Thread-safe singleton for managing async connection pools.

    Pools are created closed and opened by their first user (`await pool.open()`),
    since opening requires a running event loop.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._pools: Dict[str, AsyncConnectionPool] = {}
            return cls._instance

    def get_async_pool(
        self, dsn: Optional[str] = None, min_size: int = 1, max_size: int = 10
    ) -> AsyncConnectionPool:
        """
        Get or create the asynchronous connection pool for a DSN.

        Parameters
        ----------
        dsn : str | None
            Connection string; defaults to the one built from settings.
        min_size : int
            Minimum number of idle connections to keep.
        max_size : int
            Maximum total connections in the pool.

        Returns
        -------
        AsyncConnectionPool
            The managed async pool instance.
        """
        conninfo = dsn or build_dsn()
        with self._lock:
            pool = self._pools.get(conninfo)
            if pool is None:
                pool = AsyncConnectionPool(
                    conninfo=conninfo, min_size=min_size, max_size=max_size, open=False
                )
                self._pools[conninfo] = pool
            return pool

    async def close_pool(self, dsn: Optional[str] = None) -> None:
        """Close and forget the pool for `dsn` so the next user gets a fresh one."""
        conninfo = dsn or build_dsn()
        with self._lock:
            pool = self._pools.pop(conninfo, None)
        if pool is not None:
            await pool.close()
            log.debug("[POOL CLOSED]", extra={"pool_max_size": pool.max_size})


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
    reraise=True,
)
async def get_async_connection(dsn: Optional[str] = None) -> AsyncConnection:
    """
    Acquire a dedicated asynchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off operations such as schema setup; prefer the pool otherwise.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return await AsyncConnection.connect(dsn or build_dsn())


def get_async_pool(
    dsn: Optional[str] = None, min_size: int = 1, max_size: int = 10
) -> AsyncConnectionPool:
    """Get or create an asynchronous connection pool via PoolManager."""
    return PoolManager().get_async_pool(dsn=dsn, min_size=min_size, max_size=max_size)


__all__ = [
    "PoolManager",
    "build_dsn",
    "get_async_connection",
    "get_async_pool",
]
