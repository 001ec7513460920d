"""
Pytest configuration for CryptoWill.

Provides fixtures for:
- Settings with test-specific overrides
- An in-memory store wired to the local keyring
- Controller construction with deterministic ids
- Postgres DSN/availability for integration tests
"""

from __future__ import annotations

import os
from typing import Iterator

import psycopg
import pytest

from cryptowill.clients.local_authority import (
    LocalEncryptionBinder,
    LocalKeyring,
    LocalVerificationAuthority,
)
from cryptowill.clients.memory import InMemoryRecordStore
from cryptowill.config import Settings
from cryptowill.controller import LifecycleController
from cryptowill.session import Session

from tests.fakes import ALICE, FIXED_NOW, STORE_CONTEXT, sequential_ids


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.
    """
    return Settings(
        store_backend="memory",
        store_context=STORE_CONTEXT,
        authority_secret="test-secret",
        refresh_concurrency=4,
        page_size=5,
        log_level="DEBUG",
    )


@pytest.fixture
def keyring(test_settings: Settings) -> LocalKeyring:
    return LocalKeyring(test_settings.authority_secret)


@pytest.fixture
def store(keyring: LocalKeyring) -> InMemoryRecordStore:
    return InMemoryRecordStore(
        STORE_CONTEXT,
        input_verifier=keyring.verify_input,
        decryption_verifier=keyring.verify_decryption,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def session() -> Session:
    return Session(ALICE)


@pytest.fixture
def make_controller(test_settings: Settings, keyring: LocalKeyring):
    """Factory building controllers over a given store/session with local collaborators."""

    def _make(
        store,
        session: Session,
        *,
        binder=None,
        verifier=None,
        id_prefix: str = "will-",
    ) -> LifecycleController:
        return LifecycleController(
            store,
            binder or LocalEncryptionBinder(keyring),
            verifier or LocalVerificationAuthority(keyring, store.get_ciphertext),
            session,
            id_factory=sequential_ids(id_prefix),
            settings=test_settings,
        )

    return _make


@pytest.fixture
def controller(make_controller, store: InMemoryRecordStore, session: Session) -> LifecycleController:
    return make_controller(store, session)


# ----------------------------------------------------------------------
# Postgres integration
# ----------------------------------------------------------------------


@pytest.fixture(scope="session")
def test_dsn() -> str:
    """
    Database connection string for integration tests.
    """
    return (
        f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', 'postgres')}"
        f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}"
        f"/{os.getenv('DB_NAME', 'cryptowill')}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except Exception:
        return False


@pytest.fixture
def clean_wills_table(test_dsn: str, db_connection_available: bool) -> Iterator[str]:
    """
    Ensure the schema exists and empty the wills table around each test.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")
    from cryptowill.clients.postgres import SCHEMA_SQL

    with psycopg.connect(test_dsn) as conn:
        conn.execute(SCHEMA_SQL)
        conn.execute("TRUNCATE TABLE public.wills;")
    yield test_dsn
    with psycopg.connect(test_dsn) as conn:
        conn.execute("TRUNCATE TABLE public.wills;")
