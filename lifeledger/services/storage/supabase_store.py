"""
Supabase Storage Implementation

DESIGN DECISION: Supabase is the remote backend because it provides both:
1. Postgres tables behind a REST API (one table per entity kind)
2. An auth subsystem for credentials and sessions

The `users` table and the auth subsystem are separate stores. The
registration and login logic here keeps them agreeing: a users row
is always keyed by the auth user's id.

TRADEOFFS:
- The supabase client is synchronous; calls block the event loop
  briefly (fine for a single-user UI process)
- No transactions across auth and tables (we order writes carefully
  and sign out on any half-finished step)
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

import structlog
from supabase import AuthApiError, Client, create_client
from tenacity import retry, stop_after_attempt, wait_exponential

from lifeledger.config import get_settings
from lifeledger.config.settings import SupabaseSettings
from lifeledger.models.audit import AuditEvent
from lifeledger.models.records import NotificationSettings, RecordKind, TrackedRecord
from lifeledger.models.user import BackendMode, User, UserRole, utc_now
from lifeledger.services.storage.interface import (
    AuditStorageInterface,
    AuthBackendInterface,
    AuthBackendError,
    ConnectionError,
    DuplicateError,
    InconsistentDataError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    single_filter,
)


logger = structlog.get_logger(__name__)

# Table names
USERS_TABLE = "users"
NOTIFICATION_SETTINGS_TABLE = "notification_settings"
AUDIT_LOG_TABLE = "audit_log"

# GoTrue answers bad email/password pairs with HTTP 400
INVALID_CREDENTIALS_STATUS = 400


def to_jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert python values into what PostgREST accepts."""
    result = {}
    for key, value in fields.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = str(value)
        result[key] = value
    return result


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Creates the client lazily from settings.
    """

    def __init__(
        self,
        settings: Optional[SupabaseSettings] = None,
        client: Optional[Client] = None,
    ):
        self._settings = settings or get_settings().supabase
        self._client: Optional[Client] = client

    def connect(self) -> Client:
        """Return the Supabase client, creating it on first use."""
        if self._client is None:
            if not self._settings.is_configured:
                raise ConnectionError("Supabase is not configured")
            self._client = self._create_client()
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _create_client(self) -> Client:
        try:
            return create_client(self._settings.url, self._settings.anon_key)
        except Exception as e:
            raise ConnectionError(f"Failed to connect to Supabase: {e}")

    def table(self, name: str):
        return self.connect().table(name)

    @property
    def auth(self):
        return self.connect().auth


def _execute(query, action: str) -> list[dict]:
    """Run a PostgREST query and return its rows."""
    try:
        response = query.execute()
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(f"Failed to {action}: {e}")
    return list(response.data or [])


class SupabaseAuthBackend(AuthBackendInterface):
    """
    Remote users, credentials and sessions.

    The provider session lives inside the supabase client; we only
    read it back on restore and clear it on sign-out.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    @property
    def mode(self) -> BackendMode:
        return BackendMode.REMOTE

    # -------------------------------------------------------------------------
    # User rows
    # -------------------------------------------------------------------------

    async def get_user(
        self,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        field, value = single_filter(id=user_id, username=username, email=email)
        rows = _execute(
            self._client.table(USERS_TABLE).select("*").eq(field, value).limit(1),
            "get user",
        )
        return User.model_validate(rows[0]) if rows else None

    async def list_users(self) -> list[User]:
        rows = _execute(
            self._client.table(USERS_TABLE).select("*").order("created_at", desc=True),
            "list users",
        )
        return [User.model_validate(row) for row in rows]

    async def upsert_user(self, user: User) -> User:
        rows = _execute(
            self._client.table(USERS_TABLE).upsert(user.to_record()),
            "save user",
        )
        return User.model_validate(rows[0]) if rows else user

    async def update_user(self, user_id: str, **fields: Any) -> User:
        rows = _execute(
            self._client.table(USERS_TABLE).update(to_jsonable(fields)).eq("id", user_id),
            "update user",
        )
        if not rows:
            raise NotFoundError(f"User not found: {user_id}")
        return User.model_validate(rows[0])

    # -------------------------------------------------------------------------
    # Auth subsystem
    # -------------------------------------------------------------------------

    def _sign_out_quietly(self) -> None:
        """Roll back a provider session; used on half-finished flows."""
        try:
            self._client.auth.sign_out()
        except Exception as e:
            logger.warning("supabase_sign_out_failed", error=str(e))

    async def restore_session(self) -> Optional[User]:
        try:
            session = self._client.auth.get_session()
        except Exception as e:
            raise AuthBackendError(f"Failed to read session: {e}")

        if not session or not session.user:
            return None

        user = await self.get_user(user_id=session.user.id)
        if user is None:
            self._sign_out_quietly()
            raise InconsistentDataError(
                f"Session for {session.user.id} has no users row"
            )

        if not user.can_authenticate:
            logger.info(
                "session_rejected_by_gate",
                user_id=user.id,
                is_active=user.is_active,
                is_approved=user.is_approved,
            )
            self._sign_out_quietly()
            return None

        return user

    async def verify_credentials(self, user: User, secret: str) -> bool:
        try:
            response = self._client.auth.sign_in_with_password(
                {"email": user.email, "password": secret}
            )
        except AuthApiError as e:
            if getattr(e, "status", None) == INVALID_CREDENTIALS_STATUS:
                return False
            raise AuthBackendError(f"Sign-in failed: {e}")
        except Exception as e:
            raise AuthBackendError(f"Sign-in failed: {e}")

        auth_user = getattr(response, "user", None)
        if auth_user is None:
            return False

        if auth_user.id != user.id:
            # Credential belongs to a different profile row
            self._sign_out_quietly()
            raise InconsistentDataError(
                f"Auth user {auth_user.id} does not match profile {user.id}"
            )
        return True

    async def create_account(self, username: str, email: str, secret: str) -> User:
        if await self.get_user(username=username) is not None:
            raise DuplicateError("Username already exists")
        if await self.get_user(email=email) is not None:
            raise DuplicateError("Email already exists")

        try:
            response = self._client.auth.sign_up({"email": email, "password": secret})
        except AuthApiError as e:
            raise AuthBackendError(getattr(e, "message", None) or str(e))
        except Exception as e:
            raise AuthBackendError(f"Sign-up failed: {e}")

        auth_user = getattr(response, "user", None)
        try:
            if auth_user is None:
                raise AuthBackendError("Sign-up did not return a user")

            user = User(
                id=auth_user.id,
                username=username,
                email=email,
                role=UserRole.USER,
                is_active=True,
                is_approved=False,
            )
            _execute(
                self._client.table(USERS_TABLE).insert(user.to_record()),
                "create user row",
            )
            return user
        finally:
            # Registration never grants a session
            if getattr(response, "session", None) is not None:
                self._sign_out_quietly()

    async def persist_session(self, user: User) -> None:
        # The supabase client keeps its own session
        return None

    async def end_session(self) -> None:
        try:
            self._client.auth.sign_out()
        except Exception as e:
            raise AuthBackendError(f"Sign-out failed: {e}")

    async def get_current_session_token(self) -> Optional[str]:
        try:
            session = self._client.auth.get_session()
        except Exception as e:
            raise AuthBackendError(f"Failed to read session: {e}")
        return session.access_token if session else None


class SupabaseRecordStorage(RecordStorageInterface):
    """
    Remote domain records, one table per kind, scoped by user_id.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def list_records(self, kind: RecordKind, user_id: str) -> list[TrackedRecord]:
        rows = _execute(
            self._client.table(kind.table)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True),
            f"list {kind.value}",
        )
        return [kind.model.model_validate(row) for row in rows]

    async def save_record(self, kind: RecordKind, data: dict[str, Any]) -> TrackedRecord:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at")}
        record = kind.model.model_validate(
            {**payload, "id": str(uuid4()), "created_at": utc_now()}
        )
        rows = _execute(
            self._client.table(kind.table).insert(record.to_record()),
            f"save {kind.value}",
        )
        return kind.model.model_validate(rows[0]) if rows else record

    async def update_record(
        self,
        kind: RecordKind,
        record_id: str,
        updates: dict[str, Any],
    ) -> Optional[TrackedRecord]:
        protected = {"id", "user_id", "created_at"}
        changes = to_jsonable({k: v for k, v in updates.items() if k not in protected})
        rows = _execute(
            self._client.table(kind.table).update(changes).eq("id", record_id),
            f"update {kind.value}",
        )
        return kind.model.model_validate(rows[0]) if rows else None

    async def delete_record(self, kind: RecordKind, record_id: str) -> bool:
        rows = _execute(
            self._client.table(kind.table).delete().eq("id", record_id),
            f"delete {kind.value}",
        )
        return len(rows) > 0

    async def get_notification_settings(self, user_id: str) -> Optional[NotificationSettings]:
        rows = _execute(
            self._client.table(NOTIFICATION_SETTINGS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1),
            "get notification settings",
        )
        return NotificationSettings.model_validate(rows[0]) if rows else None

    async def save_notification_settings(
        self,
        settings: NotificationSettings,
    ) -> NotificationSettings:
        existing = await self.get_notification_settings(settings.user_id)
        if existing is not None:
            settings = settings.model_copy(update={"id": existing.id})
        rows = _execute(
            self._client.table(NOTIFICATION_SETTINGS_TABLE).upsert(
                settings.to_record(), on_conflict="user_id"
            ),
            "save notification settings",
        )
        return NotificationSettings.model_validate(rows[0]) if rows else settings


class SupabaseAuditStorage(AuditStorageInterface):
    """
    Remote audit log.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def append_event(self, event: AuditEvent) -> bool:
        _execute(
            self._client.table(AUDIT_LOG_TABLE).insert(event.to_record()),
            "append audit event",
        )
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        rows = _execute(
            self._client.table(AUDIT_LOG_TABLE)
            .select("*")
            .order("timestamp", desc=True)
            .limit(limit),
            "get audit events",
        )
        events = []
        for row in rows:
            try:
                events.append(AuditEvent.model_validate(row))
            except ValueError:
                continue  # Skip malformed rows
        return events
