"""
Collaborator interfaces consumed by the lifecycle controller.

The controller depends only on these contracts. Concrete adapters (in-memory
store, Postgres store, local encryption authority) implement them; tests swap
in fakes with the same shape.
"""

from __future__ import annotations

import abc
from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence, runtime_checkable

from cryptowill.domain.models import EncryptedInput, Record

FinalizeCallback = Callable[[bytes, bytes], Awaitable[None]]
"""Submits (clear_values_encoded, decryption_proof) to the store's finalize entry point."""


@runtime_checkable
class RecordStoreClient(Protocol):
    """
    Read and write access to the durable ledger of will records.

    Attributes
    ----------
    context : str
        Store address; the encryption target context for every record it holds.
    """

    context: str

    async def list_record_ids(self) -> Sequence[str]:
        ...

    async def get_record(self, record_id: str) -> Record:
        """Raise `RecordNotFound` for unknown ids."""
        ...

    async def get_encrypted_handle(self, record_id: str) -> str:
        ...

    async def get_ciphertext(self, handle: str) -> bytes:
        ...

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
        """
        Persist a new record atomically.

        Raises
        ------
        UserRejected, StoreRejected, NetworkError
        """
        ...

    async def finalize_record(
        self, record_id: str, clear_values_encoded: bytes, decryption_proof: bytes
    ) -> None:
        """
        Commit a verified reveal exactly once.

        Raises
        ------
        AlreadyFinalized, StoreRejected, NetworkError
        """
        ...


@runtime_checkable
class EncryptionBinder(Protocol):
    """Produces ciphertext + proof bound to a target context and requester."""

    async def encrypt(self, target_context: str, requester: str, amount: int) -> EncryptedInput:
        """
        Raises
        ------
        BinderUnavailable, InvalidContext
        """
        ...


@runtime_checkable
class VerificationProtocolClient(Protocol):
    """Runs the verify-then-reveal exchange with an off-record authority."""

    async def verify(
        self,
        handles: Sequence[str],
        target_context: str,
        finalize_callback: FinalizeCallback,
    ) -> Dict[str, int]:
        """
        Return clear values keyed by handle after `finalize_callback` succeeded.

        Raises
        ------
        ProtocolTimeout, AuthorityRejected, AlreadyFinalized
        """
        ...


@runtime_checkable
class SessionProvider(Protocol):
    """Identity and connection status of the acting account."""

    @property
    def identity(self) -> Optional[str]:
        ...

    @property
    def connected(self) -> bool:
        ...

    async def wait_lost(self) -> None:
        ...


class AbstractRecordStore(abc.ABC):
    """
    Optional ABC helper for class-based store implementations.

    Subclasses set `context` and implement every coroutine.
    """

    context: str

    @abc.abstractmethod
    async def list_record_ids(self) -> Sequence[str]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def get_record(self, record_id: str) -> Record:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def get_encrypted_handle(self, record_id: str) -> str:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def get_ciphertext(self, handle: str) -> bytes:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
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
    ) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def finalize_record(
        self, record_id: str, clear_values_encoded: bytes, decryption_proof: bytes
    ) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = [
    "AbstractRecordStore",
    "EncryptionBinder",
    "FinalizeCallback",
    "RecordStoreClient",
    "SessionProvider",
    "VerificationProtocolClient",
]
