"""
Collaborator package for CryptoWill.

Re-exports the interfaces the controller consumes together with the bundled
adapters, so downstream code can import from `cryptowill.clients` directly.
The Postgres store is imported from `cryptowill.clients.postgres` on demand.
"""

from cryptowill.clients.abstract import (
    AbstractRecordStore,
    EncryptionBinder,
    FinalizeCallback,
    RecordStoreClient,
    SessionProvider,
    VerificationProtocolClient,
)
from cryptowill.clients.local_authority import (
    LocalEncryptionBinder,
    LocalKeyring,
    LocalVerificationAuthority,
)
from cryptowill.clients.memory import InMemoryRecordStore

__all__ = [
    # Interfaces
    "AbstractRecordStore",
    "EncryptionBinder",
    "FinalizeCallback",
    "RecordStoreClient",
    "SessionProvider",
    "VerificationProtocolClient",
    # Adapters
    "InMemoryRecordStore",
    "LocalEncryptionBinder",
    "LocalKeyring",
    "LocalVerificationAuthority",
]
