"""
Domain models for CryptoWill.

`Record` mirrors the fields the durable store keeps per will. The confidential
amount never appears here in plaintext until the store reports the record as
finalized.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class Record(BaseModel):
    """
    Representation of a single will record as reported by the store.
    """

    id: str = Field(..., min_length=1, description="Stable identifier, unique within the store.")
    title: str = Field(..., min_length=1, description="Display label.")
    beneficiary: str = Field(..., min_length=1, description="Public recipient designator.")
    creator: str = Field(..., description="Account that created the record.")
    created_at: int = Field(..., ge=0, description="Seconds since epoch, set by the store.")
    encrypted_amount_handle: str = Field(
        ..., min_length=1, description="Opaque reference to the confidential payload."
    )
    public_aux_value: int = Field(0, ge=0, description="Plaintext value for display/sorting.")
    is_finalized: bool = Field(False, description="True once verification+reveal completed.")
    revealed_amount: Optional[int] = Field(
        None, ge=0, description="Plaintext amount, present only when finalized."
    )

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @model_validator(mode="after")
    def _revealed_iff_finalized(self) -> "Record":
        if self.is_finalized and self.revealed_amount is None:
            raise ValueError("finalized record must carry revealed_amount")
        if not self.is_finalized and self.revealed_amount is not None:
            raise ValueError("revealed_amount is only defined for finalized records")
        return self

    @property
    def status(self) -> str:
        return "executed" if self.is_finalized else "active"

    def finalized(self, revealed_amount: int) -> "Record":
        """Return a finalized copy of this record."""
        return Record(**{**self.model_dump(), "is_finalized": True, "revealed_amount": revealed_amount})

    def to_display(self) -> Dict[str, Any]:
        payload = self.model_dump()
        payload["status"] = self.status
        return payload


class EncryptedInput(BaseModel):
    """Ciphertext plus correctness proof produced by an encryption binder."""

    ciphertext: bytes = Field(..., min_length=1)
    proof: bytes = Field(..., min_length=1)

    model_config = {"frozen": True}


__all__ = ["EncryptedInput", "Record"]
