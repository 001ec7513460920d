"""
CryptoWill - lifecycle controller for encrypted will records.

Wills carry a confidential amount that stays encrypted until an execution step
runs a verify-then-reveal exchange with an off-record authority and commits the
revealed amount to the store exactly once. This package provides:

- The lifecycle controller (snapshot ownership, create/execute transitions,
  reconciliation with the store after every operation)
- Collaborator interfaces plus in-memory and PostgreSQL record stores
- Local stand-ins for the encryption binder and the decryption authority
- Derived views (statistics, search, pagination) and a Typer CLI
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from cryptowill.clients import (
    EncryptionBinder,
    InMemoryRecordStore,
    LocalEncryptionBinder,
    LocalKeyring,
    LocalVerificationAuthority,
    RecordStoreClient,
    SessionProvider,
    VerificationProtocolClient,
)
from cryptowill.config import Settings, get_settings
from cryptowill.controller import LifecycleController, RecordState
from cryptowill.domain import (
    EncryptedInput,
    ErrorKind,
    OperationKind,
    OperationOutcome,
    Record,
    Resolution,
)
from cryptowill.events import EventBus, OperationFailed, OperationStarted, OperationSucceeded
from cryptowill.session import Session
from cryptowill.utils.logging import configure_logging, get_logger
from cryptowill.views import compute_stats, filter_records, ordered, paginate

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Controller
    "LifecycleController",
    "RecordState",
    "Session",
    # Domain
    "EncryptedInput",
    "ErrorKind",
    "OperationKind",
    "OperationOutcome",
    "Record",
    "Resolution",
    # Events
    "EventBus",
    "OperationFailed",
    "OperationStarted",
    "OperationSucceeded",
    # Collaborators
    "EncryptionBinder",
    "InMemoryRecordStore",
    "LocalEncryptionBinder",
    "LocalKeyring",
    "LocalVerificationAuthority",
    "RecordStoreClient",
    "SessionProvider",
    "VerificationProtocolClient",
    # Views
    "compute_stats",
    "filter_records",
    "ordered",
    "paginate",
    # Logging
    "configure_logging",
    "get_logger",
]
