"""
Error taxonomy for the will lifecycle.

Collaborators (record store, encryption binder, verification authority) raise
the exception classes below; the lifecycle controller maps every exception to
an `ErrorKind` through `classify` and hands callers a classified outcome
instead of a raw exception.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Classification attached to every failed operation outcome."""

    UNAUTHENTICATED = "unauthenticated"
    INVALID_INPUT = "invalid_input"
    ENCRYPTION_FAILED = "encryption_failed"
    USER_REJECTED = "user_rejected"
    STORE_REJECTED = "store_rejected"
    NETWORK_ERROR = "network_error"
    SESSION_LOST = "session_lost"
    VERIFICATION_FAILED = "verification_failed"
    ALREADY_PENDING = "already_pending"
    RECORD_NOT_FOUND = "record_not_found"
    INTERNAL = "internal"

    @property
    def retryable(self) -> bool:
        """Whether the caller may reissue the same operation unchanged."""
        return self in _RETRYABLE


_RETRYABLE = frozenset(
    {
        ErrorKind.STORE_REJECTED,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.SESSION_LOST,
        ErrorKind.VERIFICATION_FAILED,
        ErrorKind.ALREADY_PENDING,
    }
)


class WillError(Exception):
    """Base class for classified lifecycle errors."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL


class Unauthenticated(WillError):
    kind = ErrorKind.UNAUTHENTICATED


class InvalidInput(WillError):
    kind = ErrorKind.INVALID_INPUT


class EncryptionFailed(WillError):
    kind = ErrorKind.ENCRYPTION_FAILED


class UserRejected(WillError):
    """The acting identity declined to confirm a submission."""

    kind = ErrorKind.USER_REJECTED


class StoreRejected(WillError):
    """Store-side validation or consensus failure."""

    kind = ErrorKind.STORE_REJECTED


class NetworkError(WillError):
    kind = ErrorKind.NETWORK_ERROR


class SessionLost(WillError):
    kind = ErrorKind.SESSION_LOST


class AlreadyPending(WillError):
    kind = ErrorKind.ALREADY_PENDING


class RecordNotFound(WillError):
    kind = ErrorKind.RECORD_NOT_FOUND


class AlreadyFinalized(WillError):
    """
    The record was finalized before this finalize attempt landed.

    Never surfaced to callers as a failure: the controller resolves it into a
    success carrying the store's revealed amount.
    """

    kind = ErrorKind.INTERNAL


class BinderError(WillError):
    """Raised by encryption binders."""

    kind = ErrorKind.ENCRYPTION_FAILED


class BinderUnavailable(BinderError):
    pass


class InvalidContext(BinderError):
    pass


class VerificationError(WillError):
    """Raised by verification protocol clients."""

    kind = ErrorKind.VERIFICATION_FAILED


class ProtocolTimeout(VerificationError):
    pass


class AuthorityRejected(VerificationError):
    pass


def classify(exc: BaseException) -> ErrorKind:
    """Map any exception raised by a collaborator onto an `ErrorKind`."""
    if isinstance(exc, WillError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError, OSError)):
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.INTERNAL


__all__ = [
    "AlreadyFinalized",
    "AlreadyPending",
    "AuthorityRejected",
    "BinderError",
    "BinderUnavailable",
    "EncryptionFailed",
    "ErrorKind",
    "InvalidContext",
    "InvalidInput",
    "NetworkError",
    "ProtocolTimeout",
    "RecordNotFound",
    "SessionLost",
    "StoreRejected",
    "Unauthenticated",
    "UserRejected",
    "VerificationError",
    "WillError",
    "classify",
]
