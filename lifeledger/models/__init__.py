"""
Data Models Package

This package contains all Pydantic models used in Life Ledger.
All data flowing through the system must conform to these schemas.
"""

from lifeledger.models.user import (
    AuthFailure,
    AuthNotice,
    AuthState,
    BackendMode,
    ImpersonationState,
    NoticeLevel,
    User,
    UserRole,
)
from lifeledger.models.records import (
    EMI,
    CategoryTotal,
    DashboardStats,
    Expense,
    ExpenseReport,
    NotificationSettings,
    PaymentFrequency,
    RecordKind,
    RecurringPayment,
    ReportRange,
    Reminder,
    Todo,
    TodoPriority,
    TrackedRecord,
)
from lifeledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Identity models
    "AuthFailure",
    "AuthNotice",
    "AuthState",
    "BackendMode",
    "ImpersonationState",
    "NoticeLevel",
    "User",
    "UserRole",
    # Record models
    "EMI",
    "CategoryTotal",
    "DashboardStats",
    "Expense",
    "ExpenseReport",
    "NotificationSettings",
    "PaymentFrequency",
    "RecordKind",
    "RecurringPayment",
    "ReportRange",
    "Reminder",
    "Todo",
    "TodoPriority",
    "TrackedRecord",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
