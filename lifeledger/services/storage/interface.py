"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for every storage concern.
This allows us to:
1. Run against Supabase when it is configured, local JSON otherwise
2. Pick the backend once at startup and inject it (no mode checks
   scattered through business logic)
3. Use in-memory fakes for testing

The session controller only ever talks to AuthBackendInterface.
Page views and the dashboard talk to RecordStorageInterface.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from lifeledger.models.audit import AuditEvent
from lifeledger.models.records import NotificationSettings, RecordKind, TrackedRecord
from lifeledger.models.user import BackendMode, User


class AuthBackendInterface(ABC):
    """
    Abstract interface for user records, credentials and sessions.

    One implementation per backend mode. The controller layers the
    approval gate and impersonation on top of these primitives.
    """

    @property
    @abstractmethod
    def mode(self) -> BackendMode:
        """Which mode this backend implements."""
        pass

    @abstractmethod
    async def get_user(
        self,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        """
        Look up one user by exactly one of the filters.

        Returns:
            The user if found, None otherwise

        Raises:
            ValueError: If not exactly one filter is given
            StorageError: If the lookup fails
        """
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        """All users, newest first."""
        pass

    @abstractmethod
    async def upsert_user(self, user: User) -> User:
        """
        Insert or replace a user record (matched by id).

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_user(self, user_id: str, **fields: Any) -> User:
        """
        Update fields of an existing user.

        Returns:
            The updated user

        Raises:
            NotFoundError: If the user doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def restore_session(self) -> Optional[User]:
        """
        Return the user of a previously persisted session, if any.

        Each backend applies its own restore policy; the returned user
        is ready to be made the active user.
        """
        pass

    @abstractmethod
    async def verify_credentials(self, user: User, secret: str) -> bool:
        """
        Check a secret against the user's stored credential.

        In remote mode a successful check also opens the provider session.

        Returns:
            True if the secret matches

        Raises:
            AuthBackendError: If the check itself could not be performed
            InconsistentDataError: If the credential belongs to another profile
        """
        pass

    @abstractmethod
    async def create_account(self, username: str, email: str, secret: str) -> User:
        """
        Create credentials and an unapproved user record.

        Never leaves a session open.

        Raises:
            DuplicateError: If the username or email is taken
            AuthBackendError: If the credential could not be created
        """
        pass

    @abstractmethod
    async def persist_session(self, user: User) -> None:
        """Remember user as the current session's identity."""
        pass

    @abstractmethod
    async def end_session(self) -> None:
        """Forget the current session."""
        pass

    @abstractmethod
    async def get_current_session_token(self) -> Optional[str]:
        """Provider access token of the current session, if any."""
        pass


class RecordStorageInterface(ABC):
    """
    Abstract interface for the per-user domain records.

    Used by the page views and the dashboard, outside the auth core.
    """

    @abstractmethod
    async def list_records(self, kind: RecordKind, user_id: str) -> list[TrackedRecord]:
        """
        List a user's records of one kind, newest first.
        """
        pass

    @abstractmethod
    async def save_record(self, kind: RecordKind, data: dict[str, Any]) -> TrackedRecord:
        """
        Create a record. id and created_at are assigned here.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        kind: RecordKind,
        record_id: str,
        updates: dict[str, Any],
    ) -> Optional[TrackedRecord]:
        """
        Merge updates into an existing record.

        Returns:
            The updated record, or None if it doesn't exist
        """
        pass

    @abstractmethod
    async def delete_record(self, kind: RecordKind, record_id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if something was deleted
        """
        pass

    @abstractmethod
    async def get_notification_settings(self, user_id: str) -> Optional[NotificationSettings]:
        pass

    @abstractmethod
    async def save_notification_settings(
        self,
        settings: NotificationSettings,
    ) -> NotificationSettings:
        """Upsert by user_id."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


def single_filter(**filters: Optional[str]) -> tuple[str, str]:
    """
    Validate that exactly one lookup filter was given.

    Returns:
        (field_name, value)
    """
    given = [(name, value) for name, value in filters.items() if value is not None]
    if len(given) != 1:
        raise ValueError(
            f"Exactly one of {', '.join(filters)} must be given, got {len(given)}"
        )
    return given[0]


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class AuthBackendError(StorageError):
    """The auth subsystem failed to perform an operation."""
    pass


class InconsistentDataError(StorageError):
    """Stored data disagrees with what the auth subsystem reports."""
    pass
