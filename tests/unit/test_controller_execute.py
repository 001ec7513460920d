from __future__ import annotations

import asyncio

import pytest

from cryptowill.clients.local_authority import LocalVerificationAuthority
from cryptowill.codec import encode_clear_values
from cryptowill.controller import RecordState
from cryptowill.domain.errors import AuthorityRejected, ErrorKind, ProtocolTimeout
from cryptowill.domain.outcomes import Resolution
from cryptowill.session import Session
from tests.fakes import (
    ALICE,
    BOB,
    STORE_CONTEXT,
    CountingVerifier,
    HandleTimeoutStore,
    ScriptedVerifier,
    StalledVerifier,
    UnreadableAfterFinalizeStore,
    seed,
)

AMOUNT = 5000


@pytest.mark.asyncio
async def test_execute_reveals_amount_and_finalizes(controller, store, keyring) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", ALICE)

    assert outcome.ok
    assert outcome.payload["revealed_amount"] == AMOUNT
    assert outcome.payload["resolution"] is Resolution.FINALIZED
    record = controller.get_snapshot()["w1"]
    assert record.is_finalized
    assert record.revealed_amount == AMOUNT
    assert controller.transition_state("w1") is RecordState.FINALIZED
    assert controller.local_reveal("w1") is None
    assert store.finalize_successes == 1


@pytest.mark.asyncio
async def test_execute_on_finalized_record_does_not_call_verifier(
    make_controller, store, session, keyring
) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    await store.finalize_record("w1", *await _reveal(keyring, store, "w1", AMOUNT))
    verifier = ScriptedVerifier(AssertionError("verifier must not run"))
    controller = make_controller(store, session, verifier=verifier)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", ALICE)

    assert outcome.ok
    assert outcome.payload["resolution"] is Resolution.ALREADY_FINALIZED
    assert outcome.payload["revealed_amount"] == AMOUNT
    assert verifier.calls == 0


@pytest.mark.asyncio
async def test_concurrent_executions_finalize_exactly_once(make_controller, store, keyring) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    first = make_controller(store, Session(ALICE))
    second = make_controller(store, Session(BOB))
    await first.refresh_snapshot()
    await second.refresh_snapshot()

    results = await asyncio.gather(
        first.execute_record("w1", ALICE),
        second.execute_record("w1", BOB),
    )

    assert all(outcome.ok for outcome in results)
    assert {outcome.payload["revealed_amount"] for outcome in results} == {AMOUNT}
    assert store.finalize_successes == 1
    assert first.get_snapshot()["w1"].revealed_amount == AMOUNT
    assert second.get_snapshot()["w1"].revealed_amount == AMOUNT


@pytest.mark.asyncio
async def test_losing_finalize_resolves_as_race(make_controller, store, keyring) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    authority = LocalVerificationAuthority(keyring, store.get_ciphertext)

    class FinalizeElsewhereFirst:
        async def verify(self, handles, target_context, finalize_callback):
            await store.finalize_record("w1", *await _reveal(keyring, store, "w1", AMOUNT))
            return await authority.verify(handles, target_context, finalize_callback)

    controller = make_controller(store, Session(BOB), verifier=FinalizeElsewhereFirst())
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", BOB)

    assert outcome.ok
    assert outcome.payload["resolution"] is Resolution.RACE_RESOLVED
    assert outcome.payload["revealed_amount"] == AMOUNT
    assert store.finalize_successes == 1


@pytest.mark.asyncio
async def test_second_execute_on_same_record_is_already_pending(
    make_controller, store, session, keyring
) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    verifier = StalledVerifier()
    controller = make_controller(store, session, verifier=verifier)
    await controller.refresh_snapshot()

    first = asyncio.create_task(controller.execute_record("w1", ALICE))
    await verifier.started.wait()
    assert controller.is_pending("w1")
    assert controller.transition_state("w1") is RecordState.VERIFYING

    second = await controller.execute_record("w1", ALICE)
    assert second.error is ErrorKind.ALREADY_PENDING
    assert second.retryable

    verifier.release.set()
    await first
    assert not controller.is_pending("w1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [ProtocolTimeout("authority timed out"), AuthorityRejected("bad handle")],
)
async def test_verifier_failure_keeps_record_active(
    make_controller, store, session, keyring, exc
) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    controller = make_controller(store, session, verifier=ScriptedVerifier(exc))
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", ALICE)

    assert outcome.error is ErrorKind.VERIFICATION_FAILED
    assert outcome.retryable
    assert controller.transition_state("w1") is RecordState.ACTIVE
    assert not controller.get_snapshot()["w1"].is_finalized
    assert not controller.is_pending("w1")
    assert store.finalize_successes == 0


@pytest.mark.asyncio
async def test_retry_after_verification_failure_succeeds(
    make_controller, store, session, keyring
) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    verifier = ScriptedVerifier(ProtocolTimeout("authority timed out"))
    controller = make_controller(store, session, verifier=verifier)
    await controller.refresh_snapshot()

    failed = await controller.execute_record("w1", ALICE)
    assert failed.retryable

    controller._verifier = LocalVerificationAuthority(keyring, store.get_ciphertext)
    retried = await controller.execute_record("w1", ALICE)

    assert retried.ok
    assert retried.payload["revealed_amount"] == AMOUNT


@pytest.mark.asyncio
async def test_unknown_record_is_not_found(controller) -> None:
    outcome = await controller.execute_record("missing", ALICE)

    assert outcome.error is ErrorKind.RECORD_NOT_FOUND
    assert not controller.is_pending("missing")


@pytest.mark.asyncio
async def test_execute_without_requester_is_unauthenticated(controller, store, keyring) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", "")

    assert outcome.error is ErrorKind.UNAUTHENTICATED
    assert store.finalize_successes == 0


@pytest.mark.asyncio
async def test_finalize_callback_runs_once_per_execution(
    make_controller, store, session, keyring
) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    verifier = CountingVerifier(LocalVerificationAuthority(keyring, store.get_ciphertext))
    controller = make_controller(store, session, verifier=verifier)
    await controller.refresh_snapshot()

    await controller.execute_record("w1", ALICE)
    again = await controller.execute_record("w1", ALICE)

    assert verifier.finalize_calls == 1
    assert again.payload["resolution"] is Resolution.ALREADY_FINALIZED


@pytest.mark.asyncio
async def test_create_then_execute_round_trip(controller) -> None:
    created = await controller.create_record("House", "0xBEEF", AMOUNT, ALICE)

    executed = await controller.execute_record(created.record_id, ALICE)

    assert executed.ok
    assert executed.payload["record"].revealed_amount == AMOUNT


@pytest.mark.asyncio
async def test_execute_for_another_identity_is_unauthenticated(controller, store, keyring) -> None:
    await seed(store, keyring, "w1", AMOUNT)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", BOB)

    assert outcome.error is ErrorKind.UNAUTHENTICATED
    assert store.finalize_successes == 0
    assert not controller.is_pending("w1")


def _local_store(cls, keyring, **kwargs):
    return cls(
        STORE_CONTEXT,
        input_verifier=keyring.verify_input,
        decryption_verifier=keyring.verify_decryption,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_landed_finalize_with_failed_confirmation_read_succeeds(
    make_controller, keyring, session
) -> None:
    store = _local_store(UnreadableAfterFinalizeStore, keyring, read_failures=1)
    await seed(store, keyring, "w1", AMOUNT)
    controller = make_controller(store, session)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", ALICE)

    assert outcome.ok
    assert outcome.payload["resolution"] is Resolution.FINALIZED
    assert outcome.payload["revealed_amount"] == AMOUNT
    assert controller.get_snapshot()["w1"].is_finalized
    assert store.finalize_successes == 1
    assert store.list_calls == 2


@pytest.mark.asyncio
async def test_unconfirmed_finalize_fails_retryably_then_resolves(
    make_controller, keyring, session
) -> None:
    store = _local_store(UnreadableAfterFinalizeStore, keyring, read_failures=2)
    await seed(store, keyring, "w1", AMOUNT)
    controller = make_controller(store, session)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", ALICE)

    assert outcome.error is ErrorKind.NETWORK_ERROR
    assert outcome.retryable
    assert store.finalize_successes == 1
    assert not controller.is_pending("w1")

    await controller.refresh_snapshot()
    retried = await controller.execute_record("w1", ALICE)

    assert retried.ok
    assert retried.payload["resolution"] is Resolution.ALREADY_FINALIZED
    assert retried.payload["revealed_amount"] == AMOUNT
    assert store.finalize_successes == 1


@pytest.mark.asyncio
async def test_handle_lookup_timeout_reconciles_and_keeps_record_active(
    make_controller, keyring, session
) -> None:
    store = _local_store(HandleTimeoutStore, keyring)
    await seed(store, keyring, "w1", AMOUNT)
    verifier = ScriptedVerifier(AssertionError("verifier must not run"))
    controller = make_controller(store, session, verifier=verifier)
    await controller.refresh_snapshot()

    outcome = await controller.execute_record("w1", ALICE)

    assert outcome.error is ErrorKind.NETWORK_ERROR
    assert verifier.calls == 0
    assert store.list_calls == 2
    assert controller.transition_state("w1") is RecordState.ACTIVE
    assert not controller.get_snapshot()["w1"].is_finalized


async def _reveal(keyring, store, record_id: str, amount: int):
    handle = await store.get_encrypted_handle(record_id)
    encoded = encode_clear_values([amount])
    return encoded, keyring.decryption_proof(store.context, [handle], encoded)
