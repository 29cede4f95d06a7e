"""
Audit Models for Life Ledger

Every authentication and administration step is logged for audit purposes.
This provides:
1. Traceability of who logged in, and as whom
2. A record of every approval and activation change
3. Debugging information when a backend misbehaves

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Credentials never appear in an audit event.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from lifeledger.models.user import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    SESSION_RESTORED = "session_restored"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"

    # Registration
    USER_REGISTERED = "user_registered"
    REGISTRATION_REJECTED = "registration_rejected"

    # Impersonation
    IMPERSONATION_STARTED = "impersonation_started"
    IMPERSONATION_ENDED = "impersonation_ended"

    # Administration
    USER_APPROVAL_CHANGED = "user_approval_changed"
    USER_ACTIVATION_CHANGED = "user_activation_changed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it (the real identity, never the impersonated one)
    actor_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_record(self) -> dict:
        """Convert to a JSON-safe document for the audit store."""
        return self.model_dump(mode="json")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.login_succeeded(user_id, username)
        event = AuditEventBuilder.impersonation_started(admin_id, target_id)
    """

    @staticmethod
    def session_restored(user_id: str, mode: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_RESTORED,
            entity_type="session",
            entity_id=user_id,
            actor_id=user_id,
            description=f"Session restored ({mode} mode)",
            details={"mode": mode},
        )

    @staticmethod
    def login_succeeded(user_id: str, username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="user",
            entity_id=user_id,
            actor_id=user_id,
            description=f"Login succeeded: {username}",
            details={"username": username},
            is_user_action=True,
        )

    @staticmethod
    def login_failed(username: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description=f"Login failed: {reason}",
            details={"username": username, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def logout(user_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGOUT,
            entity_type="session",
            entity_id=user_id,
            actor_id=user_id,
            description="Logged out",
            is_user_action=True,
        )

    @staticmethod
    def user_registered(user_id: str, username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user_id,
            description=f"User registered, pending approval: {username}",
            details={"username": username},
            is_user_action=True,
        )

    @staticmethod
    def registration_rejected(username: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REGISTRATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description=f"Registration rejected: {reason}",
            details={"username": username, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def impersonation_started(admin_id: str, target_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPERSONATION_STARTED,
            entity_type="user",
            entity_id=target_id,
            actor_id=admin_id,
            description=f"Admin {admin_id} is now viewing as {target_id}",
            is_user_action=True,
        )

    @staticmethod
    def impersonation_ended(admin_id: str, target_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPERSONATION_ENDED,
            entity_type="user",
            entity_id=target_id,
            actor_id=admin_id,
            description=f"Admin {admin_id} returned to own account",
            is_user_action=True,
        )

    @staticmethod
    def user_status_changed(
        admin_id: str,
        user_id: str,
        field: str,
        value: bool,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.USER_APPROVAL_CHANGED
            if field == "is_approved"
            else AuditEventType.USER_ACTIVATION_CHANGED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="user",
            entity_id=user_id,
            actor_id=admin_id,
            description=f"{field} set to {value} for user {user_id}",
            details={"field": field, "value": value},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
