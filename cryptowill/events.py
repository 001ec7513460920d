"""
Discrete events emitted by the lifecycle controller.

Presentation code (toasts, progress indicators) subscribes here; timing and
dismissal stay on the subscriber side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from cryptowill.domain.errors import ErrorKind
from cryptowill.domain.outcomes import OperationKind, OperationOutcome
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class OperationStarted:
    kind: OperationKind
    record_id: Optional[str] = None


@dataclass(frozen=True)
class OperationSucceeded:
    kind: OperationKind
    record_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OperationFailed:
    kind: OperationKind
    error: ErrorKind
    record_id: Optional[str] = None
    message: str = ""


Event = Union[OperationStarted, OperationSucceeded, OperationFailed]
Subscriber = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out of controller events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback`; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: Event) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:  # noqa: BLE001 - subscriber errors are logged only
                log.exception("[EVENT SUBSCRIBER FAILED]", extra={"event": type(event).__name__})

    def emit_outcome(self, outcome: OperationOutcome) -> None:
        if outcome.ok:
            self.emit(OperationSucceeded(outcome.kind, outcome.record_id, dict(outcome.payload)))
        else:
            error = outcome.error or ErrorKind.INTERNAL
            self.emit(OperationFailed(outcome.kind, error, outcome.record_id, outcome.message))


__all__ = [
    "Event",
    "EventBus",
    "OperationFailed",
    "OperationStarted",
    "OperationSucceeded",
    "Subscriber",
]
