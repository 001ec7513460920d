"""
In-memory record store.

Implements the full `RecordStoreClient` contract inside one asyncio loop:
submissions are atomic (validated first, then written without suspending),
`created_at` comes from the store clock, and finalization succeeds at most
once per record. Used by the CLI demo and by the test suite, and as the
reference behavior the Postgres store mirrors.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from cryptowill.clients.abstract import AbstractRecordStore
from cryptowill.codec import decode_clear_values, derive_handle
from cryptowill.domain.errors import AlreadyFinalized, RecordNotFound, StoreRejected
from cryptowill.domain.models import Record
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)

InputVerifier = Callable[[str, str, bytes, bytes], bool]
"""(context, requester, ciphertext, proof) -> valid"""

DecryptionVerifier = Callable[[str, Sequence[str], bytes, bytes], bool]
"""(context, handles, clear_values_encoded, proof) -> valid"""


@dataclass
class _StoredRecord:
    record: Record
    ciphertext: bytes


class InMemoryRecordStore(AbstractRecordStore):
    """
    Dictionary-backed store with ledger-like semantics.

    Parameters
    ----------
    context : str
        Store address used as the encryption target context.
    input_verifier : callable, optional
        Checks the binder's proof on submission; skipped when None.
    decryption_verifier : callable, optional
        Checks the authority's proof on finalization; skipped when None.
    clock : callable
        Source of `created_at` seconds.
    latency : float
        Seconds each call suspends, to make interleavings observable.
    """

    def __init__(
        self,
        context: str,
        *,
        input_verifier: Optional[InputVerifier] = None,
        decryption_verifier: Optional[DecryptionVerifier] = None,
        clock: Callable[[], float] = time.time,
        latency: float = 0.0,
    ) -> None:
        self.context = context
        self._input_verifier = input_verifier
        self._decryption_verifier = decryption_verifier
        self._clock = clock
        self._latency = latency
        self._rows: Dict[str, _StoredRecord] = {}
        self._by_handle: Dict[str, str] = {}
        self.finalize_successes = 0
        self.submit_calls = 0

    async def _suspend(self) -> None:
        await asyncio.sleep(self._latency)

    def _row(self, record_id: str) -> _StoredRecord:
        try:
            return self._rows[record_id]
        except KeyError:
            raise RecordNotFound(f"record {record_id} does not exist") from None

    async def list_record_ids(self) -> List[str]:
        await self._suspend()
        return list(self._rows)

    async def get_record(self, record_id: str) -> Record:
        await self._suspend()
        return self._row(record_id).record

    async def get_encrypted_handle(self, record_id: str) -> str:
        await self._suspend()
        return self._row(record_id).record.encrypted_amount_handle

    async def get_ciphertext(self, handle: str) -> bytes:
        await self._suspend()
        try:
            record_id = self._by_handle[handle]
        except KeyError:
            raise RecordNotFound(f"no ciphertext for handle {handle}") from None
        return self._rows[record_id].ciphertext

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
        self.submit_calls += 1
        await self._suspend()

        if record_id in self._rows:
            raise StoreRejected(f"record {record_id} already exists")
        if not title.strip() or not beneficiary.strip():
            raise StoreRejected("title and beneficiary must be non-empty")
        if public_aux_value < 0:
            raise StoreRejected("public_aux_value must be non-negative")
        if self._input_verifier is not None and not self._input_verifier(
            self.context, creator, ciphertext, proof
        ):
            raise StoreRejected("input proof does not bind ciphertext to this store and creator")

        handle = derive_handle(self.context, record_id, ciphertext)
        record = Record(
            id=record_id,
            title=title.strip(),
            beneficiary=beneficiary.strip(),
            creator=creator,
            created_at=int(self._clock()),
            encrypted_amount_handle=handle,
            public_aux_value=public_aux_value,
        )
        self._rows[record_id] = _StoredRecord(record=record, ciphertext=ciphertext)
        self._by_handle[handle] = record_id
        log.debug("[STORE SUBMIT]", extra={"record_id": record_id, "creator": creator})

    async def finalize_record(
        self, record_id: str, clear_values_encoded: bytes, decryption_proof: bytes
    ) -> None:
        await self._suspend()

        if record_id not in self._rows:
            raise StoreRejected(f"record {record_id} does not exist")
        row = self._rows[record_id]
        if row.record.is_finalized:
            raise AlreadyFinalized(f"record {record_id} already verified")

        handle = row.record.encrypted_amount_handle
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

        row.record = row.record.finalized(values[0])
        self.finalize_successes += 1
        log.debug("[STORE FINALIZE]", extra={"record_id": record_id})


__all__ = ["DecryptionVerifier", "InMemoryRecordStore", "InputVerifier"]
