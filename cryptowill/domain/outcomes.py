"""
Result-shaped operation outcomes returned by the lifecycle controller.

Presentation code renders status from these without inspecting exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from cryptowill.domain.errors import ErrorKind


class OperationKind(str, Enum):
    REFRESH = "refresh"
    CREATE = "create"
    EXECUTE = "execute"


class Resolution(str, Enum):
    """How a successful execution reached the finalized state."""

    FINALIZED = "finalized"
    ALREADY_FINALIZED = "already_finalized"
    RACE_RESOLVED = "race_resolved"


@dataclass(frozen=True)
class OperationOutcome:
    """
    Exactly one terminal outcome per controller operation.

    `ok` outcomes carry a payload; failed ones carry an `ErrorKind` and a
    human-readable message.
    """

    kind: OperationKind
    ok: bool
    record_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(
        cls, kind: OperationKind, record_id: Optional[str] = None, **payload: Any
    ) -> "OperationOutcome":
        return cls(kind=kind, ok=True, record_id=record_id, payload=payload)

    @classmethod
    def failure(
        cls,
        kind: OperationKind,
        error: ErrorKind,
        message: str,
        record_id: Optional[str] = None,
    ) -> "OperationOutcome":
        return cls(kind=kind, ok=False, record_id=record_id, error=error, message=message)

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable


__all__ = ["OperationKind", "OperationOutcome", "Resolution"]
