"""
PostgreSQL-backed record store.

Same contract as `InMemoryRecordStore`, persisted in a `wills` table through
psycopg's async connection pool:

- submission is a single INSERT, so a failed submission leaves no row behind;
- `created_at` is taken from the database clock;
- finalization locks the row (`SELECT ... FOR UPDATE`) and only flips rows
  that are not yet finalized, so concurrent finalizers see `AlreadyFinalized`.

Read-only queries are retried on transient connection errors with tenacity;
writes never are, the controller reconciles ambiguous write failures itself.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cryptowill.clients.abstract import AbstractRecordStore
from cryptowill.clients.memory import DecryptionVerifier, InputVerifier
from cryptowill.codec import decode_clear_values, derive_handle
from cryptowill.domain.errors import AlreadyFinalized, NetworkError, RecordNotFound, StoreRejected
from cryptowill.domain.models import Record
from cryptowill.infrastructure.db_factory import (
    PoolManager,
    get_async_connection,
    get_async_pool,
)
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS public.wills (
    id               TEXT PRIMARY KEY,
    title            TEXT NOT NULL CHECK (title <> ''),
    beneficiary      TEXT NOT NULL CHECK (beneficiary <> ''),
    creator          TEXT NOT NULL,
    created_at       BIGINT NOT NULL,
    ciphertext       BYTEA NOT NULL,
    input_proof      BYTEA NOT NULL,
    handle           TEXT NOT NULL UNIQUE,
    public_aux_value BIGINT NOT NULL DEFAULT 0 CHECK (public_aux_value >= 0),
    is_finalized     BOOLEAN NOT NULL DEFAULT FALSE,
    revealed_amount  NUMERIC(20, 0),
    CHECK ((is_finalized AND revealed_amount IS NOT NULL)
        OR (NOT is_finalized AND revealed_amount IS NULL))
);
"""

_RECORD_COLUMNS = (
    "id, title, beneficiary, creator, created_at, handle, "
    "public_aux_value, is_finalized, revealed_amount"
)

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    retry=retry_if_exception_type(NetworkError),
    reraise=True,
)


@asynccontextmanager
async def _translate_errors() -> AsyncIterator[None]:
    """Map psycopg failures onto the store error taxonomy."""
    try:
        yield
    except pg_errors.UniqueViolation as exc:
        raise StoreRejected(f"duplicate record: {exc.diag.message_detail or exc}") from exc
    except (pg_errors.IntegrityError, pg_errors.DataError) as exc:
        raise StoreRejected(str(exc)) from exc
    except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
        raise NetworkError(str(exc)) from exc


def _to_record(row: dict) -> Record:
    revealed = row["revealed_amount"]
    return Record(
        id=row["id"],
        title=row["title"],
        beneficiary=row["beneficiary"],
        creator=row["creator"],
        created_at=int(row["created_at"]),
        encrypted_amount_handle=row["handle"],
        public_aux_value=int(row["public_aux_value"]),
        is_finalized=bool(row["is_finalized"]),
        revealed_amount=int(revealed) if revealed is not None else None,
    )


class PostgresRecordStore(AbstractRecordStore):
    """
    Record store persisted in PostgreSQL.

    Use as an async context manager (or call `open()` / `close()`) so the
    pool is opened inside the running event loop.
    """

    def __init__(
        self,
        context: str,
        *,
        dsn: Optional[str] = None,
        input_verifier: Optional[InputVerifier] = None,
        decryption_verifier: Optional[DecryptionVerifier] = None,
        pool_min_size: int = 1,
        pool_max_size: int = 10,
    ) -> None:
        self.context = context
        self._dsn = dsn
        self._input_verifier = input_verifier
        self._decryption_verifier = decryption_verifier
        self._pool_min_size = pool_min_size
        self._pool_max_size = pool_max_size
        self._pool: Optional[AsyncConnectionPool] = None

    async def open(self) -> None:
        self._pool = get_async_pool(
            dsn=self._dsn, min_size=self._pool_min_size, max_size=self._pool_max_size
        )
        await self._pool.open()

    async def close(self) -> None:
        self._pool = None
        await PoolManager().close_pool(self._dsn)

    def _connection(self):
        if self._pool is None:
            raise RuntimeError("store is not open; use `async with` or call open() first")
        return self._pool.connection()

    async def __aenter__(self) -> "PostgresRecordStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def ensure_schema(self) -> None:
        """Create the `wills` table if it does not exist yet."""
        async with _translate_errors():
            conn = await get_async_connection(self._dsn)
            try:
                await conn.execute(SCHEMA_SQL)
                await conn.commit()
            finally:
                await conn.close()
        log.info("[SCHEMA READY] wills")

    @_read_retry
    async def list_record_ids(self) -> List[str]:
        async with _translate_errors(), self._connection() as conn:
            cur = await conn.execute("SELECT id FROM public.wills ORDER BY created_at, id;")
            return [row[0] for row in await cur.fetchall()]

    @_read_retry
    async def get_record(self, record_id: str) -> Record:
        async with _translate_errors(), self._connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"SELECT {_RECORD_COLUMNS} FROM public.wills WHERE id = %s;", (record_id,)
                )
                row = await cur.fetchone()
        if row is None:
            raise RecordNotFound(f"record {record_id} does not exist")
        return _to_record(row)

    @_read_retry
    async def get_encrypted_handle(self, record_id: str) -> str:
        async with _translate_errors(), self._connection() as conn:
            cur = await conn.execute("SELECT handle FROM public.wills WHERE id = %s;", (record_id,))
            row = await cur.fetchone()
        if row is None:
            raise RecordNotFound(f"record {record_id} does not exist")
        return row[0]

    @_read_retry
    async def get_ciphertext(self, handle: str) -> bytes:
        async with _translate_errors(), self._connection() as conn:
            cur = await conn.execute(
                "SELECT ciphertext FROM public.wills WHERE handle = %s;", (handle,)
            )
            row = await cur.fetchone()
        if row is None:
            raise RecordNotFound(f"no ciphertext for handle {handle}")
        return bytes(row[0])

    async def submit_record(
        self,
        record_id: str,
        title: str,
        beneficiary: str,
        ciphertext: bytes,
        proof: bytes,
        public_aux_value: int,
        *,
        creator: str,
    ) -> None:
        if self._input_verifier is not None and not self._input_verifier(
            self.context, creator, ciphertext, proof
        ):
            raise StoreRejected("input proof does not bind ciphertext to this store and creator")

        handle = derive_handle(self.context, record_id, ciphertext)
        async with _translate_errors(), self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO public.wills
                    (id, title, beneficiary, creator, created_at,
                     ciphertext, input_proof, handle, public_aux_value)
                VALUES (%s, %s, %s, %s, EXTRACT(EPOCH FROM now())::bigint, %s, %s, %s, %s);
                """,
                (
                    record_id,
                    title.strip(),
                    beneficiary.strip(),
                    creator,
                    ciphertext,
                    proof,
                    handle,
                    public_aux_value,
                ),
            )
        log.debug("[STORE SUBMIT]", extra={"record_id": record_id, "creator": creator})

    async def finalize_record(
        self, record_id: str, clear_values_encoded: bytes, decryption_proof: bytes
    ) -> None:
        async with _translate_errors(), self._connection() as conn:
            async with conn.transaction():
                cur = await conn.execute(
                    "SELECT handle, is_finalized FROM public.wills WHERE id = %s FOR UPDATE;",
                    (record_id,),
                )
                row = await cur.fetchone()
                if row is None:
                    raise StoreRejected(f"record {record_id} does not exist")
                handle, is_finalized = row
                if is_finalized:
                    raise AlreadyFinalized(f"record {record_id} already verified")
                if self._decryption_verifier is not None and not self._decryption_verifier(
                    self.context, [handle], clear_values_encoded, decryption_proof
                ):
                    raise StoreRejected("decryption proof rejected")
                try:
                    values = decode_clear_values(clear_values_encoded)
                except ValueError as exc:
                    raise StoreRejected(str(exc)) from exc
                if len(values) != 1:
                    raise StoreRejected(f"expected one clear value, got {len(values)}")

                await conn.execute(
                    """
                    UPDATE public.wills
                       SET is_finalized = TRUE, revealed_amount = %s
                     WHERE id = %s AND NOT is_finalized;
                    """,
                    (values[0], record_id),
                )
        log.debug("[STORE FINALIZE]", extra={"record_id": record_id})


__all__ = ["SCHEMA_SQL", "PostgresRecordStore"]
