"""
Domain package for CryptoWill.

Exports the record model, the error taxonomy and the outcome types used across
the controller, the store adapters and the CLI. Keep this package focused on
data definitions and validation concerns.
"""

from cryptowill.domain.errors import ErrorKind, WillError, classify
from cryptowill.domain.models import EncryptedInput, Record
from cryptowill.domain.outcomes import OperationKind, OperationOutcome, Resolution

__all__ = [
    "EncryptedInput",
    "ErrorKind",
    "OperationKind",
    "OperationOutcome",
    "Record",
    "Resolution",
    "WillError",
    "classify",
]
