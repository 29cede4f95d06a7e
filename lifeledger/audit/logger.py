"""
Audit Logger

DESIGN DECISION: Every authentication and administration step is logged.
This provides:
1. Traceability of logins, logouts and impersonation
2. A history of approval and activation changes
3. Debugging capability when a backend fails

The audit logger:
- Is async, like the storage it writes to
- Gracefully handles failures (doesn't crash the app if logging fails)
- Never receives credentials
"""

import logging
from typing import Optional

import structlog

from lifeledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from lifeledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))
    logging.getLogger().setLevel(getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store of the active backend (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("lifeledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_session_restored(self, user_id: str, mode: str) -> None:
        await self.log(AuditEventBuilder.session_restored(user_id=user_id, mode=mode))

    async def log_login_succeeded(self, user_id: str, username: str) -> None:
        await self.log(AuditEventBuilder.login_succeeded(user_id=user_id, username=username))

    async def log_login_failed(self, username: str, reason: str) -> None:
        await self.log(AuditEventBuilder.login_failed(username=username, reason=reason))

    async def log_logout(self, user_id: Optional[str]) -> None:
        await self.log(AuditEventBuilder.logout(user_id=user_id))

    async def log_user_registered(self, user_id: str, username: str) -> None:
        await self.log(AuditEventBuilder.user_registered(user_id=user_id, username=username))

    async def log_registration_rejected(self, username: str, reason: str) -> None:
        await self.log(
            AuditEventBuilder.registration_rejected(username=username, reason=reason)
        )

    async def log_impersonation_started(self, admin_id: str, target_id: str) -> None:
        await self.log(
            AuditEventBuilder.impersonation_started(admin_id=admin_id, target_id=target_id)
        )

    async def log_impersonation_ended(self, admin_id: str, target_id: Optional[str]) -> None:
        await self.log(
            AuditEventBuilder.impersonation_ended(admin_id=admin_id, target_id=target_id)
        )

    async def log_user_status_changed(
        self,
        admin_id: str,
        user_id: str,
        field: str,
        value: bool,
    ) -> None:
        """Log an approval or activation change."""
        await self.log(
            AuditEventBuilder.user_status_changed(
                admin_id=admin_id,
                user_id=user_id,
                field=field,
                value=value,
            )
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        await self.log(
            AuditEventBuilder.system_error(
                error_type=error_type,
                error_message=error_message,
                details=details,
            )
        )
