"""
Session / Auth Controller

The single source of truth for who is using the app, and as whom.

State machine:
    UNAUTHENTICATED --login--> AUTHENTICATED --impersonate--> IMPERSONATING
    IMPERSONATING --return_to_admin--> AUTHENTICATED
    any state --logout--> UNAUTHENTICATED

CRITICAL BOUNDARIES:
1. Login is gated: user must exist, be approved and be active,
   and the secret must verify. Any failure creates no session.
2. Registration never grants access. An admin approves first.
3. No exception escapes a controller operation. Failures become a
   False return plus a user-facing notice.
4. Operations are serialized through one lock, so overlapping calls
   (a slow login and a page-load session check) never interleave.

The controller is constructed with one backend, chosen at startup.
It never checks which mode it is in to decide what to do.
"""

import asyncio
from collections import deque
from typing import Optional

import structlog

from lifeledger.audit import AuditLogger
from lifeledger.models.user import (
    AuthFailure,
    AuthNotice,
    AuthState,
    BackendMode,
    ImpersonationState,
    NoticeLevel,
    User,
    utc_now,
)
from lifeledger.services.storage import (
    AuthBackendError,
    AuthBackendInterface,
    DuplicateError,
)


logger = structlog.get_logger(__name__)


# User-facing messages
MSG_INVALID_CREDENTIALS = "Invalid username or password"
MSG_PENDING_APPROVAL = "Your account is pending approval"
MSG_DEACTIVATED = "Your account has been deactivated"
MSG_LOGIN_FAILED = "Login failed"
MSG_ALREADY_EXISTS = "Username or email already exists"
MSG_REGISTRATION_FAILED = "Registration failed"
MSG_LOGOUT_FAILED = "Logout did not complete cleanly"
MSG_IMPERSONATE_SELF = "Cannot impersonate yourself"
MSG_IMPERSONATE_FAILED = "Failed to impersonate user"

FAILURE_MESSAGES = {
    AuthFailure.INVALID_CREDENTIALS: MSG_INVALID_CREDENTIALS,
    AuthFailure.PENDING_APPROVAL: MSG_PENDING_APPROVAL,
    AuthFailure.DEACTIVATED: MSG_DEACTIVATED,
    AuthFailure.ALREADY_EXISTS: MSG_ALREADY_EXISTS,
}


class SessionController:
    """
    Owns the current user, the session and the impersonation overlay.

    Page views read the exposed state and call the async operations;
    they never assign state themselves.
    """

    def __init__(
        self,
        backend: AuthBackendInterface,
        audit_logger: Optional[AuditLogger] = None,
        max_notices: int = 50,
    ):
        self._backend = backend
        self._audit_logger = audit_logger or AuditLogger()

        self._user: Optional[User] = None
        self._impersonation = ImpersonationState()
        self._loading = True
        self._last_failure: Optional[AuthFailure] = None
        self._notices: deque[AuthNotice] = deque(maxlen=max_notices)

        # Single-flight: one auth operation at a time, FIFO
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def user(self) -> Optional[User]:
        """The presented identity (the stand-in while impersonating)."""
        return self._user

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_impersonating(self) -> bool:
        return self._impersonation.is_impersonating

    @property
    def original_admin_user(self) -> Optional[User]:
        return self._impersonation.original_admin_user

    @property
    def is_demo_mode(self) -> bool:
        return self._backend.mode == BackendMode.LOCAL

    @property
    def mode(self) -> BackendMode:
        return self._backend.mode

    @property
    def state(self) -> AuthState:
        if self._user is None:
            return AuthState.UNAUTHENTICATED
        if self._impersonation.is_impersonating:
            return AuthState.IMPERSONATING
        return AuthState.AUTHENTICATED

    @property
    def last_failure(self) -> Optional[AuthFailure]:
        """Reason the most recent operation failed, None if it succeeded."""
        return self._last_failure

    @property
    def acting_user(self) -> Optional[User]:
        """The real identity behind the session (the admin while impersonating)."""
        return self._impersonation.original_admin_user or self._user

    def pop_notices(self) -> list[AuthNotice]:
        """Drain pending notices, oldest first."""
        notices = list(self._notices)
        self._notices.clear()
        return notices

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _notify(self, level: NoticeLevel, message: str) -> None:
        self._notices.append(AuthNotice(level=level, message=message))

    def _clear_session_state(self) -> None:
        self._user = None
        self._impersonation = ImpersonationState()

    def _mode_suffix(self) -> str:
        return " (Demo Mode)" if self.is_demo_mode else ""

    async def _fail(self, failure: AuthFailure, username: str) -> bool:
        self._last_failure = failure
        self._notify(NoticeLevel.ERROR, FAILURE_MESSAGES[failure])
        await self._audit_logger.log_login_failed(username=username, reason=failure.value)
        return False

    async def _report_error(self, operation: str, error: Exception) -> None:
        logger.error(
            "auth_operation_failed",
            operation=operation,
            error_type=type(error).__name__,
            error=str(error),
            exc_info=error,
        )
        await self._audit_logger.log_error(
            error_type=f"{operation}_failed",
            error_message=str(error),
            details={"operation": operation, "mode": self.mode.value},
        )

    async def _rollback_session(self) -> None:
        """End a session opened by a login that then failed."""
        try:
            await self._backend.end_session()
        except Exception as e:
            logger.warning("login_rollback_failed", error=str(e))
        self._clear_session_state()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def check_session(self) -> Optional[User]:
        """
        Restore a previously persisted session.

        Sets loading to False exactly once when this resolves, whatever
        the outcome. Failures are logged and leave the session absent.
        The restored identity replaces any impersonation overlay.
        """
        async with self._lock:
            try:
                user = await self._backend.restore_session()
                self._user = user
                self._impersonation = ImpersonationState()
                if user is not None:
                    await self._audit_logger.log_session_restored(
                        user_id=user.id, mode=self.mode.value
                    )
                return user
            except Exception as e:
                self._clear_session_state()
                await self._report_error("check_session", e)
                return None
            finally:
                if self._loading:
                    self._loading = False

    async def login(self, identifier: str, secret: str) -> bool:
        """
        Authenticate by username and secret.

        Returns:
            True if a session was created
        """
        async with self._lock:
            self._last_failure = None
            verified = False
            try:
                user = await self._backend.get_user(username=identifier)

                if user is None:
                    return await self._fail(AuthFailure.INVALID_CREDENTIALS, identifier)
                if not user.is_approved:
                    return await self._fail(AuthFailure.PENDING_APPROVAL, identifier)
                if not user.is_active:
                    return await self._fail(AuthFailure.DEACTIVATED, identifier)

                if not await self._backend.verify_credentials(user, secret):
                    return await self._fail(AuthFailure.INVALID_CREDENTIALS, identifier)
                verified = True

                user = await self._backend.update_user(user.id, last_login=utc_now())
                await self._backend.persist_session(user)

                self._user = user
                self._impersonation = ImpersonationState()
                self._notify(NoticeLevel.SUCCESS, f"Login successful{self._mode_suffix()}")
                await self._audit_logger.log_login_succeeded(
                    user_id=user.id, username=user.username
                )
                return True

            except Exception as e:
                await self._report_error("login", e)
                if verified:
                    # Remote verification already opened a provider session
                    await self._rollback_session()
                self._last_failure = AuthFailure.FAILED
                self._notify(NoticeLevel.ERROR, MSG_LOGIN_FAILED)
                return False

    async def register(self, username: str, email: str, secret: str) -> bool:
        """
        Create an account pending admin approval.

        Returns:
            True if the account was created. It cannot log in yet.
        """
        async with self._lock:
            self._last_failure = None
            try:
                # Raises DuplicateError before anything is written
                user = await self._backend.create_account(username, email, secret)

                self._notify(
                    NoticeLevel.SUCCESS,
                    "Registration successful! Please wait for admin approval."
                    + self._mode_suffix(),
                )
                await self._audit_logger.log_user_registered(
                    user_id=user.id, username=user.username
                )
                return True

            except DuplicateError as e:
                self._last_failure = AuthFailure.ALREADY_EXISTS
                self._notify(NoticeLevel.ERROR, MSG_ALREADY_EXISTS)
                await self._audit_logger.log_registration_rejected(
                    username=username, reason=str(e)
                )
                return False

            except AuthBackendError as e:
                # Provider messages (weak password, bad email) are user-facing
                await self._report_error("register", e)
                self._last_failure = AuthFailure.FAILED
                self._notify(NoticeLevel.ERROR, str(e) or MSG_REGISTRATION_FAILED)
                return False

            except Exception as e:
                await self._report_error("register", e)
                self._last_failure = AuthFailure.FAILED
                self._notify(NoticeLevel.ERROR, MSG_REGISTRATION_FAILED)
                return False

    async def logout(self) -> None:
        """
        End the session and clear any impersonation.

        Always leaves the controller unauthenticated.
        """
        async with self._lock:
            self._last_failure = None
            acting_id = self.acting_user.id if self.acting_user else None
            try:
                await self._backend.end_session()
                self._notify(NoticeLevel.SUCCESS, "Logged out successfully")
            except Exception as e:
                await self._report_error("logout", e)
                self._notify(NoticeLevel.ERROR, MSG_LOGOUT_FAILED)
            finally:
                self._clear_session_state()
            await self._audit_logger.log_logout(user_id=acting_id)

    async def impersonate_user(self, target_id: str) -> bool:
        """
        Present the app as another user. Admins only.

        The admin's own session is left untouched; only the presented
        identity changes.

        Returns:
            True if the presented identity changed
        """
        async with self._lock:
            admin = self._user
            if admin is None or not admin.is_admin:
                return False
            if self._impersonation.is_impersonating:
                # Already a stand-in; its role is not the admin's
                return False
            if target_id == admin.id:
                self._notify(NoticeLevel.ERROR, MSG_IMPERSONATE_SELF)
                return False

            try:
                target = await self._backend.get_user(user_id=target_id)
            except Exception as e:
                await self._report_error("impersonate_user", e)
                self._notify(NoticeLevel.ERROR, MSG_IMPERSONATE_FAILED)
                return False

            if target is None:
                self._notify(NoticeLevel.ERROR, MSG_IMPERSONATE_FAILED)
                return False

            self._impersonation = ImpersonationState(
                original_admin_user=admin,
                is_impersonating=True,
            )
            self._user = target
            self._notify(
                NoticeLevel.SUCCESS,
                f"Now viewing as {target.username}{self._mode_suffix()}",
            )
            await self._audit_logger.log_impersonation_started(
                admin_id=admin.id, target_id=target.id
            )
            return True

    async def return_to_admin(self) -> bool:
        """
        Restore the original admin identity.

        Returns:
            True if an impersonation was ended
        """
        async with self._lock:
            admin = self._impersonation.original_admin_user
            if admin is None:
                return False

            target_id = self._user.id if self._user else None
            self._user = admin
            self._impersonation = ImpersonationState()
            self._notify(NoticeLevel.SUCCESS, "Returned to admin account")
            await self._audit_logger.log_impersonation_ended(
                admin_id=admin.id, target_id=target_id
            )
            return True
