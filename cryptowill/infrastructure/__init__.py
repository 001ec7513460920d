"""
Infrastructure package for CryptoWill.

Centralizes database connectivity concerns (DSN, async pooling, retries).
Keep this layer focused on I/O and resource management, decoupled from the
lifecycle controller.
"""

from cryptowill.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    get_async_connection,
    get_async_pool,
)

__all__ = [
    "PoolManager",
    "build_dsn",
    "get_async_connection",
    "get_async_pool",
]
