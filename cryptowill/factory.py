"""
Wiring of the lifecycle controller from settings.

`open_controller` builds the store for the configured backend, the local
encryption binder and verification authority sharing one keyring, and a
session for the acting identity. The Postgres pool is opened and the schema
ensured on entry, and closed on exit.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional

from cryptowill.clients.abstract import RecordStoreClient
from cryptowill.clients.local_authority import (
    LocalEncryptionBinder,
    LocalKeyring,
    LocalVerificationAuthority,
)
from cryptowill.clients.memory import InMemoryRecordStore
from cryptowill.config import Settings, get_settings
from cryptowill.controller import LifecycleController
from cryptowill.session import Session
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)


def _memory_store(settings: Settings, keyring: LocalKeyring) -> InMemoryRecordStore:
    return InMemoryRecordStore(
        settings.store_context,
        input_verifier=keyring.verify_input,
        decryption_verifier=keyring.verify_decryption,
    )


def _postgres_store(settings: Settings, keyring: LocalKeyring) -> RecordStoreClient:
    from cryptowill.clients.postgres import PostgresRecordStore
    from cryptowill.infrastructure.db_factory import build_dsn

    return PostgresRecordStore(
        settings.store_context,
        dsn=build_dsn(settings),
        input_verifier=keyring.verify_input,
        decryption_verifier=keyring.verify_decryption,
    )


def _store_factories() -> Dict[str, Callable[[Settings, LocalKeyring], RecordStoreClient]]:
    """Registry of available store backends."""
    return {
        "memory": _memory_store,
        "postgres": _postgres_store,
    }


def available_backends() -> list[str]:
    return sorted(_store_factories())


@asynccontextmanager
async def open_controller(
    identity: Optional[str],
    settings: Optional[Settings] = None,
    store: Optional[RecordStoreClient] = None,
) -> AsyncIterator[LifecycleController]:
    """
    Yield a ready controller for `identity`.

    Pass `store` to reuse an already open store (the demo keeps one in-memory
    store across several controllers).
    """
    settings = settings or get_settings()
    keyring = LocalKeyring(settings.authority_secret)

    owned = store is None
    if store is None:
        factories = _store_factories()
        if settings.store_backend not in factories:
            raise ValueError(
                f"Unknown store backend '{settings.store_backend}'. "
                f"Available: {', '.join(available_backends())}"
            )
        store = factories[settings.store_backend](settings, keyring)

    opener = getattr(store, "open", None)
    if owned and opener is not None:
        await opener()
        await store.ensure_schema()  # type: ignore[attr-defined]
    try:
        controller = LifecycleController(
            store,
            LocalEncryptionBinder(keyring),
            LocalVerificationAuthority(keyring, store.get_ciphertext),
            Session(identity),
            settings=settings,
        )
        log.debug(
            "[CONTROLLER READY]",
            extra={"backend": settings.store_backend, "identity": identity},
        )
        yield controller
    finally:
        closer = getattr(store, "close", None)
        if owned and closer is not None:
            await closer()


__all__ = ["available_backends", "open_controller"]
