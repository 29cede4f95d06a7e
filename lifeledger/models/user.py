"""
Identity and Session Models for Life Ledger

These models describe who is using the app and as whom.

CRITICAL: A user can authenticate only if is_active AND is_approved.
Registration always creates an unapproved account; an admin must
approve it before the first successful login.

DESIGN DECISION: Credentials never live on the User model. The local
store keeps a bcrypt hash next to the record, and the remote backend
keeps credentials inside its own auth subsystem.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """Role of a user. Admin unlocks approval and impersonation."""
    ADMIN = "admin"
    USER = "user"


class BackendMode(str, Enum):
    """Which storage backend the process runs against."""
    LOCAL = "local"    # Demo mode - JSON documents on disk
    REMOTE = "remote"  # Supabase tables + auth


class AuthState(str, Enum):
    """Observable authentication state of a controller."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    IMPERSONATING = "impersonating"


class AuthFailure(str, Enum):
    """
    Why the last auth operation failed.

    These only pick the human-readable message. Control flow is the
    same for all of them: return False, create no session.
    """
    INVALID_CREDENTIALS = "invalid_credentials"
    PENDING_APPROVAL = "pending_approval"
    DEACTIVATED = "deactivated"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


# =============================================================================
# USER
# =============================================================================

class User(BaseModel):
    """
    Identity record.

    Mirrors the `users` table and the demo store's user documents.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique user ID (auth user UUID in remote mode)"
    )
    username: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=254,
    )
    role: UserRole = Field(
        default=UserRole.USER,
        description="admin or user"
    )
    is_active: bool = Field(
        default=True,
        description="Deactivated users cannot log in"
    )
    is_approved: bool = Field(
        default=False,
        description="Unapproved users cannot log in"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the account was registered"
    )
    last_login: Optional[datetime] = None
    ip_whitelist: list[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_authenticate(self) -> bool:
        """The approval gate."""
        return self.is_active and self.is_approved

    def to_record(self) -> dict:
        """Serialize for storage (JSON-safe)."""
        return self.model_dump(mode="json")


# =============================================================================
# SESSION STATE
# =============================================================================

class ImpersonationState(BaseModel):
    """
    Overlay recorded while an admin presents as another user.

    A non-null original_admin_user means the active user is a stand-in
    and control may only be returned to that identity.
    """

    original_admin_user: Optional[User] = None
    is_impersonating: bool = False

    @model_validator(mode='after')
    def validate_consistency(self) -> 'ImpersonationState':
        if self.is_impersonating != (self.original_admin_user is not None):
            raise ValueError(
                "is_impersonating must be set exactly when original_admin_user is"
            )
        return self


class AuthNotice(BaseModel):
    """A user-facing message produced by an auth operation."""

    level: NoticeLevel
    message: str = Field(..., min_length=1, max_length=300)
    created_at: datetime = Field(default_factory=utc_now)
