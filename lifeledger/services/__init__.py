"""Services package."""

from lifeledger.services.payments import (
    EmiService,
    OverpaymentError,
    RecurringService,
    advance_due_date,
)
from lifeledger.services.storage import (
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

__all__ = [
    "AuditStorageInterface",
    "AuthBackendError",
    "AuthBackendInterface",
    "ConnectionError",
    "DuplicateError",
    "EmiService",
    "InconsistentDataError",
    "NotFoundError",
    "OverpaymentError",
    "RecordStorageInterface",
    "RecurringService",
    "StorageError",
    "advance_due_date",
]
