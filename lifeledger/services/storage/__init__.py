"""
Storage Services Package

Provides abstract interfaces and two concrete implementations:
a local JSON store (demo mode) and Supabase (remote mode).
"""

from lifeledger.services.storage.interface import (
    AuditStorageInterface,
    AuthBackendError,
    AuthBackendInterface,
    ConnectionError,
    DuplicateError,
    InconsistentDataError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)
from lifeledger.services.storage.local_store import (
    JsonDocumentStore,
    LocalAuditStorage,
    LocalAuthBackend,
    LocalRecordStorage,
)
from lifeledger.services.storage.supabase_store import (
    SupabaseAuditStorage,
    SupabaseAuthBackend,
    SupabaseClient,
    SupabaseRecordStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "AuthBackendInterface",
    "RecordStorageInterface",
    # Exceptions
    "AuthBackendError",
    "ConnectionError",
    "DuplicateError",
    "InconsistentDataError",
    "NotFoundError",
    "StorageError",
    # Local implementation
    "JsonDocumentStore",
    "LocalAuditStorage",
    "LocalAuthBackend",
    "LocalRecordStorage",
    # Supabase implementation
    "SupabaseAuditStorage",
    "SupabaseAuthBackend",
    "SupabaseClient",
    "SupabaseRecordStorage",
]
