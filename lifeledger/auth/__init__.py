"""Authentication, session and administration package."""

from lifeledger.auth.controller import SessionController
from lifeledger.auth.admin import AdminService, PermissionDeniedError, UserSummary

__all__ = [
    "AdminService",
    "PermissionDeniedError",
    "SessionController",
    "UserSummary",
]
