"""
Local JSON Storage Implementation (Demo Mode)

DESIGN DECISION: When no remote backend is configured, everything is kept
in JSON documents on local disk:
1. One document per key, the same keys the browser build kept in
   localStorage (demo_users, demo_expenses, ...)
2. Each document is a JSON array of records (or one object for the
   current session)
3. Writes go to a temp file first and are moved into place

TRADEOFFS:
- Whole-document rewrites on every change (fine for personal use)
- No cross-process locking (one app process per data directory)

Passwords are stored only as bcrypt hashes, never in plaintext.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

import bcrypt
import structlog

from lifeledger.config import get_settings
from lifeledger.models.audit import AuditEvent
from lifeledger.models.records import NotificationSettings, RecordKind, TrackedRecord
from lifeledger.models.user import BackendMode, User, UserRole, utc_now
from lifeledger.services.storage.interface import (
    AuditStorageInterface,
    AuthBackendInterface,
    AuthBackendError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    single_filter,
)


logger = structlog.get_logger(__name__)

# Document keys
CURRENT_USER_KEY = "demo_current_user"
USERS_KEY = "demo_users"
NOTIFICATION_SETTINGS_KEY = "demo_notification_settings"
AUDIT_LOG_KEY = "demo_audit_log"

# Seeded demo admin
SEED_ADMIN_ID = "admin-1"
SEED_ADMIN_USERNAME = "admin"
SEED_ADMIN_EMAIL = "admin@demo.com"

PASSWORD_HASH_FIELD = "password_hash"

# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


class JsonDocumentStore:
    """
    Low-level key/value store of JSON documents.

    Each key maps to <data_dir>/<key>.json.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self._data_dir = Path(data_dir or get_settings().local_store.data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        """Read a document, or default if it doesn't exist."""
        path = self._path(key)
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return default
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt document {key}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}")

    def set(self, key: str, value: Any) -> None:
        """Replace a document."""
        path = self._path(key)
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._data_dir, prefix=f".{key}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(value, fh, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}")

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {key}: {e}")

    def get_list(self, key: str) -> list[dict]:
        value = self.get(key, default=[])
        if not isinstance(value, list):
            raise StorageError(f"Document {key} is not a list")
        return value


class LocalAuthBackend(AuthBackendInterface):
    """
    Demo-mode users, credentials and sessions.

    User documents are User records plus a bcrypt password_hash.
    The persisted current user is trusted as-is on restore.
    """

    def __init__(
        self,
        store: Optional[JsonDocumentStore] = None,
        seed_admin_password: Optional[str] = None,
        bcrypt_rounds: Optional[int] = None,
    ):
        if seed_admin_password is None or bcrypt_rounds is None:
            settings = get_settings().local_store
            if seed_admin_password is None:
                seed_admin_password = settings.seed_admin_password
            if bcrypt_rounds is None:
                bcrypt_rounds = settings.bcrypt_rounds
        self._store = store or JsonDocumentStore()
        self._seed_admin_password = seed_admin_password
        self._bcrypt_rounds = bcrypt_rounds

    @property
    def mode(self) -> BackendMode:
        return BackendMode.LOCAL

    # -------------------------------------------------------------------------
    # Password hashing
    # -------------------------------------------------------------------------

    def _hash_secret(self, secret: str) -> str:
        encoded = secret.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise AuthBackendError(
                f"Password is too long (max {BCRYPT_MAX_BYTES} bytes)"
            )
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._bcrypt_rounds)).decode("ascii")

    @staticmethod
    def _check_secret(secret: str, hashed: Optional[str]) -> bool:
        encoded = secret.encode("utf-8")
        if not hashed or len(encoded) > BCRYPT_MAX_BYTES:
            return False
        return bcrypt.checkpw(encoded, hashed.encode("ascii"))

    # -------------------------------------------------------------------------
    # User documents
    # -------------------------------------------------------------------------

    def _seed_users(self) -> list[dict]:
        admin = User(
            id=SEED_ADMIN_ID,
            username=SEED_ADMIN_USERNAME,
            email=SEED_ADMIN_EMAIL,
            role=UserRole.ADMIN,
            is_active=True,
            is_approved=True,
        )
        doc = admin.to_record()
        doc[PASSWORD_HASH_FIELD] = self._hash_secret(self._seed_admin_password)
        logger.info("demo_store_seeded", user_id=SEED_ADMIN_ID)
        return [doc]

    def _load_user_docs(self) -> list[dict]:
        docs = self._store.get(USERS_KEY)
        if docs is None:
            docs = self._seed_users()
            self._store.set(USERS_KEY, docs)
        return docs

    @staticmethod
    def _doc_to_user(doc: dict) -> User:
        data = {k: v for k, v in doc.items() if k != PASSWORD_HASH_FIELD}
        return User.model_validate(data)

    def _find_doc(self, docs: list[dict], field: str, value: str) -> Optional[dict]:
        for doc in docs:
            if doc.get(field) == value:
                return doc
        return None

    async def get_user(
        self,
        user_id: Optional[str] = None,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[User]:
        field, value = single_filter(id=user_id, username=username, email=email)
        doc = self._find_doc(self._load_user_docs(), field, value)
        return self._doc_to_user(doc) if doc else None

    async def list_users(self) -> list[User]:
        users = [self._doc_to_user(doc) for doc in self._load_user_docs()]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return users

    async def upsert_user(self, user: User) -> User:
        docs = self._load_user_docs()
        doc = self._find_doc(docs, "id", user.id)
        new_doc = user.to_record()
        if doc is not None:
            if PASSWORD_HASH_FIELD in doc:
                new_doc[PASSWORD_HASH_FIELD] = doc[PASSWORD_HASH_FIELD]
            docs[docs.index(doc)] = new_doc
        else:
            docs.append(new_doc)
        self._store.set(USERS_KEY, docs)
        return user

    async def update_user(self, user_id: str, **fields: Any) -> User:
        docs = self._load_user_docs()
        doc = self._find_doc(docs, "id", user_id)
        if doc is None:
            raise NotFoundError(f"User not found: {user_id}")

        current = self._doc_to_user(doc)
        updated = current.model_copy(update=fields)
        # Re-validate the merged record
        updated = User.model_validate(updated.model_dump())

        new_doc = updated.to_record()
        if PASSWORD_HASH_FIELD in doc:
            new_doc[PASSWORD_HASH_FIELD] = doc[PASSWORD_HASH_FIELD]
        docs[docs.index(doc)] = new_doc
        self._store.set(USERS_KEY, docs)
        return updated

    # -------------------------------------------------------------------------
    # Credentials and sessions
    # -------------------------------------------------------------------------

    async def restore_session(self) -> Optional[User]:
        doc = self._store.get(CURRENT_USER_KEY)
        if not doc:
            return None
        return User.model_validate(doc)

    async def verify_credentials(self, user: User, secret: str) -> bool:
        doc = self._find_doc(self._load_user_docs(), "id", user.id)
        if doc is None:
            return False
        return self._check_secret(secret, doc.get(PASSWORD_HASH_FIELD))

    async def create_account(self, username: str, email: str, secret: str) -> User:
        docs = self._load_user_docs()
        if any(d.get("username") == username or d.get("email") == email for d in docs):
            raise DuplicateError("Username or email already exists")

        user = User(
            id=str(uuid4()),
            username=username,
            email=email,
            role=UserRole.USER,
            is_active=True,
            is_approved=False,
        )
        doc = user.to_record()
        doc[PASSWORD_HASH_FIELD] = self._hash_secret(secret)
        docs.append(doc)
        self._store.set(USERS_KEY, docs)
        return user

    async def persist_session(self, user: User) -> None:
        self._store.set(CURRENT_USER_KEY, user.to_record())

    async def end_session(self) -> None:
        self._store.remove(CURRENT_USER_KEY)

    async def get_current_session_token(self) -> Optional[str]:
        return None


class LocalRecordStorage(RecordStorageInterface):
    """
    Demo-mode domain records.

    Each kind is one JSON array of records across all users;
    reads filter by user_id.
    """

    def __init__(self, store: Optional[JsonDocumentStore] = None):
        self._store = store or JsonDocumentStore()

    async def list_records(self, kind: RecordKind, user_id: str) -> list[TrackedRecord]:
        records = [
            kind.model.model_validate(doc)
            for doc in self._store.get_list(kind.local_key)
            if doc.get("user_id") == user_id
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def save_record(self, kind: RecordKind, data: dict[str, Any]) -> TrackedRecord:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at")}
        record = kind.model.model_validate(
            {**payload, "id": str(uuid4()), "created_at": utc_now()}
        )
        docs = self._store.get_list(kind.local_key)
        docs.append(record.to_record())
        self._store.set(kind.local_key, docs)
        return record

    async def update_record(
        self,
        kind: RecordKind,
        record_id: str,
        updates: dict[str, Any],
    ) -> Optional[TrackedRecord]:
        docs = self._store.get_list(kind.local_key)
        for idx, doc in enumerate(docs):
            if doc.get("id") == record_id:
                protected = {"id", "user_id", "created_at"}
                merged = {**doc, **{k: v for k, v in updates.items() if k not in protected}}
                record = kind.model.model_validate(merged)
                docs[idx] = record.to_record()
                self._store.set(kind.local_key, docs)
                return record
        return None

    async def delete_record(self, kind: RecordKind, record_id: str) -> bool:
        docs = self._store.get_list(kind.local_key)
        remaining = [doc for doc in docs if doc.get("id") != record_id]
        if len(remaining) == len(docs):
            return False
        self._store.set(kind.local_key, remaining)
        return True

    async def get_notification_settings(self, user_id: str) -> Optional[NotificationSettings]:
        for doc in self._store.get_list(NOTIFICATION_SETTINGS_KEY):
            if doc.get("user_id") == user_id:
                return NotificationSettings.model_validate(doc)
        return None

    async def save_notification_settings(
        self,
        settings: NotificationSettings,
    ) -> NotificationSettings:
        docs = self._store.get_list(NOTIFICATION_SETTINGS_KEY)
        for idx, doc in enumerate(docs):
            if doc.get("user_id") == settings.user_id:
                # Keep the existing document's id
                settings = settings.model_copy(update={"id": doc.get("id", settings.id)})
                docs[idx] = settings.to_record()
                break
        else:
            docs.append(settings.to_record())
        self._store.set(NOTIFICATION_SETTINGS_KEY, docs)
        return settings


class LocalAuditStorage(AuditStorageInterface):
    """
    Demo-mode audit log.

    Audit events are append-only.
    """

    def __init__(self, store: Optional[JsonDocumentStore] = None):
        self._store = store or JsonDocumentStore()

    async def append_event(self, event: AuditEvent) -> bool:
        docs = self._store.get_list(AUDIT_LOG_KEY)
        docs.append(event.to_record())
        self._store.set(AUDIT_LOG_KEY, docs)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = []
        for doc in self._store.get_list(AUDIT_LOG_KEY):
            try:
                events.append(AuditEvent.model_validate(doc))
            except ValueError:
                continue  # Skip malformed entries
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
