"""
Local stand-ins for the encryption engine and the decryption authority.

Both share a `LocalKeyring` derived from `Settings.authority_secret`:

- ciphertext = 16-byte nonce || amount (64-bit) masked with
  HMAC-SHA256(key, "mask" | context | nonce)
- input proof = HMAC-SHA256(key, "input" | context | requester | ciphertext)
- decryption proof = HMAC-SHA256(key, "reveal" | context | handles | clear values)

This keeps the binding properties the controller relies on (a proof only
verifies for the context/requester it was made for) without pulling in a real
FHE toolkit. It is not a confidentiality scheme for production use.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import secrets
from typing import Awaitable, Callable, Dict, Sequence

from cryptowill.clients.abstract import FinalizeCallback
from cryptowill.codec import encode_clear_values
from cryptowill.domain.errors import AuthorityRejected, InvalidContext, RecordNotFound
from cryptowill.domain.models import EncryptedInput
from cryptowill.utils.logging import get_logger

log = get_logger(__name__)

NONCE_SIZE = 16
AMOUNT_SIZE = 8


def _join(*parts: bytes) -> bytes:
    return b"\x00".join(parts)


class LocalKeyring:
    """HMAC key material shared by the binder, the authority and the store."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("authority secret must be non-empty")
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()

    def _mac(self, *parts: bytes) -> bytes:
        return hmac.new(self._key, _join(*parts), hashlib.sha256).digest()

    def _mask(self, context: str, nonce: bytes) -> int:
        return int.from_bytes(self._mac(b"mask", context.encode(), nonce)[:AMOUNT_SIZE], "big")

    def seal(self, context: str, amount: int) -> bytes:
        nonce = secrets.token_bytes(NONCE_SIZE)
        masked = amount ^ self._mask(context, nonce)
        return nonce + masked.to_bytes(AMOUNT_SIZE, "big")

    def open(self, context: str, ciphertext: bytes) -> int:
        if len(ciphertext) != NONCE_SIZE + AMOUNT_SIZE:
            raise ValueError("malformed ciphertext")
        nonce, masked = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        return int.from_bytes(masked, "big") ^ self._mask(context, nonce)

    def input_proof(self, context: str, requester: str, ciphertext: bytes) -> bytes:
        return self._mac(b"input", context.encode(), requester.encode(), ciphertext)

    def verify_input(self, context: str, requester: str, ciphertext: bytes, proof: bytes) -> bool:
        return hmac.compare_digest(self.input_proof(context, requester, ciphertext), proof)

    def decryption_proof(self, context: str, handles: Sequence[str], encoded: bytes) -> bytes:
        return self._mac(b"reveal", context.encode(), "|".join(handles).encode(), encoded)

    def verify_decryption(
        self, context: str, handles: Sequence[str], encoded: bytes, proof: bytes
    ) -> bool:
        return hmac.compare_digest(self.decryption_proof(context, handles, encoded), proof)


class LocalEncryptionBinder:
    """`EncryptionBinder` backed by a `LocalKeyring`."""

    def __init__(self, keyring: LocalKeyring) -> None:
        self._keyring = keyring

    async def encrypt(self, target_context: str, requester: str, amount: int) -> EncryptedInput:
        if not target_context:
            raise InvalidContext("target context is empty")
        if not requester:
            raise InvalidContext("requester identity is empty")
        try:
            ciphertext = self._keyring.seal(target_context, amount)
        except OverflowError as exc:
            raise InvalidContext(f"amount {amount} does not fit the encrypted integer width") from exc
        await asyncio.sleep(0)
        return EncryptedInput(
            ciphertext=ciphertext,
            proof=self._keyring.input_proof(target_context, requester, ciphertext),
        )


class LocalVerificationAuthority:
    """
    `VerificationProtocolClient` that decrypts locally and signs the reveal.

    `ciphertext_lookup` resolves a handle to the stored ciphertext, normally
    the store's `get_ciphertext`.
    """

    def __init__(
        self,
        keyring: LocalKeyring,
        ciphertext_lookup: Callable[[str], Awaitable[bytes]],
    ) -> None:
        self._keyring = keyring
        self._lookup = ciphertext_lookup

    async def verify(
        self,
        handles: Sequence[str],
        target_context: str,
        finalize_callback: FinalizeCallback,
    ) -> Dict[str, int]:
        if not handles:
            raise AuthorityRejected("no handles to reveal")

        clear_values: Dict[str, int] = {}
        for handle in handles:
            try:
                ciphertext = await self._lookup(handle)
            except RecordNotFound as exc:
                raise AuthorityRejected(f"unknown handle {handle}") from exc
            try:
                clear_values[handle] = self._keyring.open(target_context, ciphertext)
            except ValueError as exc:
                raise AuthorityRejected(str(exc)) from exc

        encoded = encode_clear_values(clear_values[h] for h in handles)
        proof = self._keyring.decryption_proof(target_context, handles, encoded)
        log.debug("[AUTHORITY REVEAL]", extra={"handles": list(handles)})
        await finalize_callback(encoded, proof)
        return clear_values


__all__ = ["LocalEncryptionBinder", "LocalKeyring", "LocalVerificationAuthority"]
