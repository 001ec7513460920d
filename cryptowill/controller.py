"""
Lifecycle controller for encrypted will records.

Owns the in-memory snapshot of every record and drives the two transitions a
record goes through:

    create   : encrypt amount -> submit to store -> refresh
    execute  : ACTIVE -> VERIFYING -> FINALIZED (back to ACTIVE on failure)

Usage:
    from cryptowill.controller import LifecycleController

    controller = LifecycleController(store, binder, verifier, session)
    outcome = await controller.create_record("House", "0xBEEF", 5000, requester="0xA11CE")
    if outcome.ok:
        await controller.execute_record(outcome.record_id, requester="0xA11CE")

Every public coroutine returns exactly one `OperationOutcome`; collaborator
failures are classified, never raised. Per-record pending markers keep at most
one create/execute in flight per record id; operations on different ids run
independently. Refreshes are last-writer-wins by sequence number, and a
finalized record is never replaced by a non-finalized copy.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional, Set, TypeVar

from cryptowill.clients.abstract import (
    EncryptionBinder,
    RecordStoreClient,
    SessionProvider,
    VerificationProtocolClient,
)
from cryptowill.config import Settings, get_settings
from cryptowill.domain.errors import (
    AlreadyFinalized,
    AlreadyPending,
    ErrorKind,
    SessionLost,
    classify,
)
from cryptowill.domain.models import Record
from cryptowill.domain.outcomes import OperationKind, OperationOutcome, Resolution
from cryptowill.events import EventBus, OperationStarted
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Encrypted amounts are 64-bit unsigned integers.
MAX_AMOUNT = 2**64 - 1
MAX_PUBLIC_AUX_VALUE = 2**63 - 1

# Failures after which the store may or may not have applied the write.
_AMBIGUOUS = frozenset({ErrorKind.NETWORK_ERROR, ErrorKind.SESSION_LOST, ErrorKind.INTERNAL})


class RecordState(str, Enum):
    ACTIVE = "active"
    VERIFYING = "verifying"
    FINALIZED = "finalized"


def time_based_ids(prefix: str = "will-") -> Callable[[], str]:
    """Candidate ids of the form `<prefix><epoch milliseconds>`, strictly increasing."""
    last = 0

    def factory() -> str:
        nonlocal last
        last = max(int(time.time() * 1000), last + 1)
        return f"{prefix}{last}"

    return factory


def _validate_create(
    title: Any, beneficiary: Any, amount: Any, public_aux_value: Any
) -> Optional[str]:
    if not isinstance(title, str) or not title.strip():
        return "title must be non-empty text"
    if not isinstance(beneficiary, str) or not beneficiary.strip():
        return "beneficiary must be non-empty text"
    if isinstance(amount, bool) or not isinstance(amount, int):
        return "amount must be an integer"
    if not 0 <= amount <= MAX_AMOUNT:
        return f"amount must be between 0 and {MAX_AMOUNT}"
    if isinstance(public_aux_value, bool) or not isinstance(public_aux_value, int):
        return "public_aux_value must be an integer"
    if not 0 <= public_aux_value <= MAX_PUBLIC_AUX_VALUE:
        return "public_aux_value must be a non-negative 63-bit integer"
    return None


class LifecycleController:
    """
    Canonical projection of the store plus the create/execute state machine.

    Parameters
    ----------
    store : RecordStoreClient
        Durable ledger of records.
    binder : EncryptionBinder
        Produces ciphertext + proof for new records.
    verifier : VerificationProtocolClient
        Runs the verify-then-reveal exchange for executions.
    session : SessionProvider
        Connection status; losing it fails in-flight operations with SESSION_LOST.
    events : EventBus | None
        Receives OperationStarted / OperationSucceeded / OperationFailed.
    id_factory : callable | None
        Candidate id generator; defaults to time-based ids with the configured prefix.
    settings : Settings | None
        Defaults to `get_settings()`.
    """

    def __init__(
        self,
        store: RecordStoreClient,
        binder: EncryptionBinder,
        verifier: VerificationProtocolClient,
        session: SessionProvider,
        *,
        events: Optional[EventBus] = None,
        id_factory: Optional[Callable[[], str]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._binder = binder
        self._verifier = verifier
        self._session = session
        self.events = events or EventBus()
        self._id_factory = id_factory or time_based_ids(settings.record_id_prefix)
        self._refresh_concurrency = settings.refresh_concurrency

        self._snapshot: Dict[str, Record] = {}
        self._pending: Set[str] = set()
        self._verifying: Set[str] = set()
        self._local_reveals: Dict[str, int] = {}
        self._refresh_seq = 0
        self._applied_seq = 0
        self._refreshing = 0

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    def get_snapshot(self) -> Mapping[str, Record]:
        """Read-only copy of the current snapshot keyed by record id."""
        return MappingProxyType(dict(self._snapshot))

    def is_busy(self) -> bool:
        return self._refreshing > 0

    def is_pending(self, record_id: str) -> bool:
        return record_id in self._pending

    def local_reveal(self, record_id: str) -> Optional[int]:
        """Clear value obtained locally but not yet confirmed as finalized by the store."""
        return self._local_reveals.get(record_id)

    def transition_state(self, record_id: str) -> Optional[RecordState]:
        if record_id in self._verifying:
            return RecordState.VERIFYING
        record = self._snapshot.get(record_id)
        if record is None:
            return None
        return RecordState.FINALIZED if record.is_finalized else RecordState.ACTIVE

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _pending_marker(self, record_id: str) -> Iterator[None]:
        if record_id in self._pending:
            raise AlreadyPending(f"an operation on {record_id} is already in flight")
        self._pending.add(record_id)
        try:
            yield
        finally:
            self._pending.discard(record_id)

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, failing with SessionLost if the session drops first."""
        if not self._session.connected:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise SessionLost("session is not connected")

        task = asyncio.ensure_future(awaitable)
        lost = asyncio.ensure_future(self._session.wait_lost())
        try:
            await asyncio.wait({task, lost}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            lost.cancel()
            if not task.done():
                task.cancel()

        if task.done() and not task.cancelled():
            return task.result()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise SessionLost("session lost while waiting on an external call")

    def _check_session(
        self, kind: OperationKind, requester: Optional[str], record_id: Optional[str] = None
    ) -> Optional[OperationOutcome]:
        if not requester:
            return OperationOutcome.failure(
                kind, ErrorKind.UNAUTHENTICATED, "requester identity is required", record_id
            )
        if not self._session.connected:
            return OperationOutcome.failure(
                kind, ErrorKind.UNAUTHENTICATED, "no active session", record_id
            )
        if requester != self._session.identity:
            return OperationOutcome.failure(
                kind,
                ErrorKind.UNAUTHENTICATED,
                f"requester {requester} does not hold the active session",
                record_id,
            )
        return None

    def _finish(self, outcome: OperationOutcome) -> OperationOutcome:
        tag = f"[{outcome.kind.value.upper()} {'SUCCESS' if outcome.ok else 'FAILED'}]"
        extra = {"record_id": outcome.record_id, "operation": outcome.kind.value}
        if outcome.ok:
            log.info(f"{tag} {outcome.record_id or ''}".rstrip(), extra=extra)
        else:
            extra["error"] = outcome.error.value if outcome.error else None
            log.warning(f"{tag} {outcome.message}", extra=extra)
        self.events.emit_outcome(outcome)
        return outcome

    def _failure_from(
        self, kind: OperationKind, exc: BaseException, record_id: Optional[str]
    ) -> OperationOutcome:
        error = classify(exc)
        if error is ErrorKind.INTERNAL:
            log.error(
                f"[{kind.value.upper()} UNEXPECTED] {type(exc).__name__}",
                exc_info=exc,
                extra={"record_id": record_id},
            )
        return OperationOutcome.failure(kind, error, str(exc) or type(exc).__name__, record_id)

    def _patch(self, record: Record) -> None:
        current = self._snapshot.get(record.id)
        if current is not None and current.is_finalized and not record.is_finalized:
            return
        self._snapshot = {**self._snapshot, record.id: record}
        if record.is_finalized:
            self._local_reveals.pop(record.id, None)

    async def _reconcile(self) -> None:
        outcome = await self._refresh()
        if not outcome.ok:
            log.warning(
                "[RECONCILE FAILED]",
                extra={"error": outcome.error.value if outcome.error else None},
            )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh_snapshot(self) -> OperationOutcome:
        """Replace the snapshot with the store's current records."""
        self.events.emit(OperationStarted(OperationKind.REFRESH))
        return self._finish(await self._refresh())

    async def _refresh(self) -> OperationOutcome:
        kind = OperationKind.REFRESH
        self._refresh_seq += 1
        seq = self._refresh_seq

        if not self._session.connected:
            self._snapshot = {}
            self._local_reveals.clear()
            self._applied_seq = seq
            return OperationOutcome.failure(kind, ErrorKind.UNAUTHENTICATED, "no active session")

        self._refreshing += 1
        try:
            try:
                record_ids = list(await self._guard(self._store.list_record_ids()))
            except Exception as exc:  # noqa: BLE001 - classified into the outcome
                return self._failure_from(kind, exc, None)

            semaphore = asyncio.Semaphore(self._refresh_concurrency)

            async def fetch(record_id: str) -> Optional[Record]:
                async with semaphore:
                    try:
                        return await self._guard(self._store.get_record(record_id))
                    except SessionLost:
                        raise
                    except Exception as exc:  # noqa: BLE001 - record omitted from this refresh
                        log.warning(
                            f"[REFRESH OMIT] {record_id}",
                            extra={"record_id": record_id, "error": str(exc)},
                        )
                        return None

            results = await asyncio.gather(
                *(fetch(record_id) for record_id in record_ids), return_exceptions=True
            )
            for result in results:
                if isinstance(result, BaseException):
                    return self._failure_from(kind, result, None)

            fresh = {record.id: record for record in results if isinstance(record, Record)}
            omitted = len(record_ids) - len(fresh)

            if seq <= self._applied_seq:
                log.info("[REFRESH STALE] discarded out-of-order completion", extra={"seq": seq})
                return OperationOutcome.success(
                    kind, records=len(self._snapshot), omitted=omitted, stale=True
                )
            self._apply(fresh, seq)
            return OperationOutcome.success(kind, records=len(fresh), omitted=omitted, stale=False)
        finally:
            self._refreshing -= 1

    def _apply(self, fresh: Dict[str, Record], seq: int) -> None:
        merged: Dict[str, Record] = {}
        for record_id, record in fresh.items():
            current = self._snapshot.get(record_id)
            if current is not None and current.is_finalized and not record.is_finalized:
                log.warning(
                    f"[REFRESH KEEP FINALIZED] {record_id}", extra={"record_id": record_id}
                )
                record = current
            if record.is_finalized:
                self._local_reveals.pop(record_id, None)
            merged[record_id] = record
        self._snapshot = merged
        self._applied_seq = seq

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_record(
        self,
        title: str,
        beneficiary: str,
        amount: int,
        requester: Optional[str],
        public_aux_value: Optional[int] = None,
    ) -> OperationOutcome:
        """
        Encrypt `amount` for `requester`, submit the record and refresh.

        On success the payload carries the record exactly as the store reports
        it (`payload["record"]`).
        """
        kind = OperationKind.CREATE
        self.events.emit(OperationStarted(kind))

        rejected = self._check_session(kind, requester)
        if rejected is not None:
            return self._finish(rejected)
        aux = 0 if public_aux_value is None else public_aux_value
        problem = _validate_create(title, beneficiary, amount, aux)
        if problem is not None:
            return self._finish(OperationOutcome.failure(kind, ErrorKind.INVALID_INPUT, problem))

        record_id = self._id_factory()
        log.info(f"[CREATE START] {record_id}", extra={"record_id": record_id})
        try:
            with self._pending_marker(record_id):
                outcome = await self._create(record_id, title, beneficiary, amount, aux, requester)
        except AlreadyPending as exc:
            outcome = OperationOutcome.failure(kind, exc.kind, str(exc), record_id)
        return self._finish(outcome)

    async def _create(
        self,
        record_id: str,
        title: str,
        beneficiary: str,
        amount: int,
        public_aux_value: int,
        requester: str,
    ) -> OperationOutcome:
        kind = OperationKind.CREATE
        context = self._store.context

        try:
            encrypted = await self._guard(self._binder.encrypt(context, requester, amount))
        except SessionLost as exc:
            return OperationOutcome.failure(kind, exc.kind, str(exc), record_id)
        except Exception as exc:  # noqa: BLE001 - any binder failure aborts before submission
            log.warning(
                f"[CREATE ENCRYPTION FAILED] {record_id}",
                extra={"record_id": record_id, "error": str(exc)},
            )
            return OperationOutcome.failure(
                kind, ErrorKind.ENCRYPTION_FAILED, f"encryption failed: {exc}", record_id
            )

        try:
            await self._guard(
                self._store.submit_record(
                    record_id,
                    title,
                    beneficiary,
                    encrypted.ciphertext,
                    encrypted.proof,
                    public_aux_value,
                    creator=requester,
                )
            )
        except Exception as exc:  # noqa: BLE001 - classified into the outcome
            outcome = self._failure_from(kind, exc, record_id)
            if outcome.error in _AMBIGUOUS:
                await self._reconcile()
                landed = self._snapshot.get(record_id)
                if landed is not None:
                    log.warning(
                        f"[CREATE LANDED] {record_id}",
                        extra={"record_id": record_id, "error": outcome.error.value},
                    )
                    return OperationOutcome.success(kind, record_id, record=landed)
            return outcome

        log.info(f"[CREATE CONFIRMED] {record_id}", extra={"record_id": record_id})
        await self._reconcile()
        record = self._snapshot.get(record_id)
        if record is None:
            try:
                record = await self._guard(self._store.get_record(record_id))
                self._patch(record)
            except Exception as exc:  # noqa: BLE001 - submission already confirmed
                log.warning(
                    f"[CREATE READBACK FAILED] {record_id}",
                    extra={"record_id": record_id, "error": str(exc)},
                )
        return OperationOutcome.success(kind, record_id, record=record)

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    async def execute_record(self, record_id: str, requester: Optional[str]) -> OperationOutcome:
        """
        Verify and reveal the amount of `record_id`, committing it exactly once.

        Success payload: `revealed_amount` (the store's value), `resolution`
        and `record`.
        """
        kind = OperationKind.EXECUTE
        self.events.emit(OperationStarted(kind, record_id))

        rejected = self._check_session(kind, requester, record_id)
        if rejected is not None:
            return self._finish(rejected)
        if record_id not in self._snapshot:
            return self._finish(
                OperationOutcome.failure(
                    kind, ErrorKind.RECORD_NOT_FOUND, f"record {record_id} is not in the snapshot", record_id
                )
            )

        try:
            with self._pending_marker(record_id):
                outcome = await self._execute(record_id)
        except AlreadyPending as exc:
            outcome = OperationOutcome.failure(kind, exc.kind, str(exc), record_id)
        return self._finish(outcome)

    async def _execute(self, record_id: str) -> OperationOutcome:
        log.info(f"[EXECUTE START] {record_id}", extra={"record_id": record_id})
        try:
            current = await self._guard(self._store.get_record(record_id))
        except Exception as exc:  # noqa: BLE001 - classified into the outcome
            return await self._execute_failed(record_id, exc)
        if current.is_finalized:
            return await self._resolve_finalized(current, Resolution.ALREADY_FINALIZED)

        self._verifying.add(record_id)
        try:
            handle = await self._guard(self._store.get_encrypted_handle(record_id))

            async def finalize(clear_values_encoded: bytes, decryption_proof: bytes) -> None:
                await self._store.finalize_record(record_id, clear_values_encoded, decryption_proof)

            clear_values = await self._guard(
                self._verifier.verify([handle], self._store.context, finalize)
            )
        except AlreadyFinalized:
            log.info(f"[EXECUTE RACE] {record_id} finalized elsewhere", extra={"record_id": record_id})
            return await self._resolve_race(record_id)
        except Exception as exc:  # noqa: BLE001 - record stays ACTIVE
            return await self._execute_failed(record_id, exc)
        finally:
            self._verifying.discard(record_id)

        clear = clear_values.get(handle)
        if clear is not None:
            self._local_reveals[record_id] = int(clear)

        try:
            confirmed = await self._guard(self._store.get_record(record_id))
        except Exception as exc:  # noqa: BLE001 - finalize landed, confirmation read did not
            log.warning(
                f"[EXECUTE CONFIRMATION FAILED] {record_id}",
                extra={"record_id": record_id, "error": str(exc)},
            )
            await self._reconcile()
            reconciled = self._snapshot.get(record_id)
            if reconciled is not None and reconciled.is_finalized:
                return self._finalized_outcome(reconciled, Resolution.FINALIZED)
            return self._failure_from(OperationKind.EXECUTE, exc, record_id)

        if not confirmed.is_finalized:
            return OperationOutcome.failure(
                OperationKind.EXECUTE,
                ErrorKind.STORE_REJECTED,
                f"store did not confirm finalization of {record_id}",
                record_id,
            )
        if clear is not None and int(clear) != confirmed.revealed_amount:
            log.warning(
                f"[EXECUTE MISMATCH] {record_id} local reveal differs from store",
                extra={"record_id": record_id},
            )
        return await self._resolve_finalized(confirmed, Resolution.FINALIZED)

    async def _resolve_race(self, record_id: str) -> OperationOutcome:
        try:
            record = await self._guard(self._store.get_record(record_id))
        except Exception as exc:  # noqa: BLE001 - classified into the outcome
            return await self._execute_failed(record_id, exc)
        if not record.is_finalized:
            return OperationOutcome.failure(
                OperationKind.EXECUTE,
                ErrorKind.STORE_REJECTED,
                f"store reported {record_id} as finalized but it reads as active",
                record_id,
            )
        return await self._resolve_finalized(record, Resolution.RACE_RESOLVED)

    async def _resolve_finalized(self, record: Record, resolution: Resolution) -> OperationOutcome:
        self._patch(record)
        await self._reconcile()
        return self._finalized_outcome(self._snapshot.get(record.id, record), resolution)

    def _finalized_outcome(self, record: Record, resolution: Resolution) -> OperationOutcome:
        return OperationOutcome.success(
            OperationKind.EXECUTE,
            record.id,
            revealed_amount=record.revealed_amount,
            resolution=resolution,
            record=record,
        )

    async def _execute_failed(self, record_id: str, exc: BaseException) -> OperationOutcome:
        outcome = self._failure_from(OperationKind.EXECUTE, exc, record_id)
        if outcome.error in _AMBIGUOUS:
            await self._reconcile()
        return outcome


__all__ = ["LifecycleController", "MAX_AMOUNT", "RecordState", "time_based_ids"]
