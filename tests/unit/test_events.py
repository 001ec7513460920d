from __future__ import annotations

import logging

from cryptowill.domain.errors import ErrorKind
from cryptowill.domain.outcomes import OperationKind, OperationOutcome
from cryptowill.events import EventBus, OperationFailed, OperationStarted, OperationSucceeded


def test_outcomes_fan_out_as_events() -> None:
    bus = EventBus()
    seen = []
    bus.subscribe(seen.append)

    bus.emit(OperationStarted(OperationKind.EXECUTE, "w1"))
    bus.emit_outcome(OperationOutcome.success(OperationKind.EXECUTE, "w1", revealed_amount=7))
    bus.emit_outcome(
        OperationOutcome.failure(OperationKind.CREATE, ErrorKind.USER_REJECTED, "declined")
    )

    assert seen[0] == OperationStarted(OperationKind.EXECUTE, "w1")
    assert seen[1] == OperationSucceeded(OperationKind.EXECUTE, "w1", {"revealed_amount": 7})
    assert isinstance(seen[2], OperationFailed)
    assert seen[2].error is ErrorKind.USER_REJECTED
    assert seen[2].message == "declined"


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    bus.emit(OperationStarted(OperationKind.REFRESH))

    assert seen == []


def test_failing_subscriber_does_not_stop_others(caplog) -> None:
    bus = EventBus()
    seen = []

    def broken(event) -> None:
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(seen.append)

    with caplog.at_level(logging.ERROR):
        bus.emit(OperationStarted(OperationKind.REFRESH))

    assert len(seen) == 1
    assert "[EVENT SUBSCRIBER FAILED]" in caplog.text


def test_outcome_retryability_follows_error_kind() -> None:
    network = OperationOutcome.failure(OperationKind.EXECUTE, ErrorKind.NETWORK_ERROR, "timeout")
    rejected = OperationOutcome.failure(OperationKind.CREATE, ErrorKind.USER_REJECTED, "no")

    assert network.retryable
    assert not rejected.retryable
    assert not OperationOutcome.success(OperationKind.REFRESH).retryable


def test_failed_outcome_without_error_kind_is_reported_as_internal() -> None:
    bus = EventBus()
    seen = []
    bus.subscribe(seen.append)

    bus.emit_outcome(OperationOutcome(kind=OperationKind.CREATE, ok=False, message="unknown"))

    assert seen == [OperationFailed(OperationKind.CREATE, ErrorKind.INTERNAL, None, "unknown")]
