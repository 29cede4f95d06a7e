"""
Admin approval workflow.

Approval and activation are direct data mutations. The only business
rule enforced at login is the gate itself, so a change made here takes
effect on the user's next login or session check, never on a session
that is already active.
"""

from typing import Optional

from pydantic import BaseModel, Field

from lifeledger.audit import AuditLogger
from lifeledger.auth.controller import SessionController
from lifeledger.models.user import AuthNotice, NoticeLevel, User
from lifeledger.services.storage import AuthBackendInterface, StorageError


STATUS_FIELDS = ("is_approved", "is_active")


class PermissionDeniedError(Exception):
    """The acting user is not allowed to perform this operation."""
    pass


class UserSummary(BaseModel):
    """Users bucketed the way the admin page shows them."""

    total: int = 0
    pending: list[User] = Field(default_factory=list)
    active: list[User] = Field(default_factory=list)
    inactive: list[User] = Field(default_factory=list)


class AdminService:
    """
    User listing and status toggles for the admin page.

    Permission checks use the presented user, so an admin who is
    impersonating a regular user has no admin rights until they return.
    """

    def __init__(
        self,
        controller: SessionController,
        backend: AuthBackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._controller = controller
        self._backend = backend
        self._audit_logger = audit_logger or AuditLogger()
        self._notices: list[AuthNotice] = []

    def pop_notices(self) -> list[AuthNotice]:
        notices, self._notices = self._notices, []
        return notices

    def _require_admin(self) -> User:
        user = self._controller.user
        if user is None or not user.is_admin:
            raise PermissionDeniedError("Admin access required")
        return user

    async def list_users(self) -> list[User]:
        """All users, newest first."""
        self._require_admin()
        return await self._backend.list_users()

    async def summarize(self) -> UserSummary:
        users = await self.list_users()
        return UserSummary(
            total=len(users),
            pending=[u for u in users if not u.is_approved],
            active=[u for u in users if u.is_approved and u.is_active],
            inactive=[u for u in users if u.is_approved and not u.is_active],
        )

    async def set_approved(self, user_id: str, value: bool) -> User:
        return await self._set_status(user_id, "is_approved", value)

    async def set_active(self, user_id: str, value: bool) -> User:
        return await self._set_status(user_id, "is_active", value)

    async def _set_status(self, user_id: str, field: str, value: bool) -> User:
        if field not in STATUS_FIELDS:
            raise ValueError(f"Not a status field: {field}")
        admin = self._require_admin()

        try:
            updated = await self._backend.update_user(user_id, **{field: value})
        except StorageError:
            self._notices.append(
                AuthNotice(level=NoticeLevel.ERROR, message="Failed to update user status")
            )
            raise

        if field == "is_approved":
            action = "approved" if value else "unapproved"
        else:
            action = "activated" if value else "deactivated"
        self._notices.append(
            AuthNotice(level=NoticeLevel.SUCCESS, message=f"User {action} successfully")
        )
        await self._audit_logger.log_user_status_changed(
            admin_id=admin.id,
            user_id=user_id,
            field=field,
            value=value,
        )
        return updated
