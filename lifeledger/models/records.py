"""
Domain Record Models for Life Ledger

Plain per-user records consumed by the page views: expenses, to-dos,
reminders, recurring payments, EMIs and notification settings.

Every record carries a generated id, the owning user_id and a
created_at timestamp assigned when it is first saved.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from lifeledger.models.user import utc_now


def generate_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class TodoPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PaymentFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# RECORDS
# =============================================================================

class TrackedRecord(BaseModel):
    """Base for all user-owned records."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=generate_id)
    user_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


class Expense(TrackedRecord):
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)


class Todo(TrackedRecord):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    priority: TodoPriority = TodoPriority.MEDIUM
    due_date: Optional[date] = None
    completed: bool = False


class Reminder(TrackedRecord):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    reminder_date: datetime

    def is_on(self, day: date) -> bool:
        return self.reminder_date.date() == day


class RecurringPayment(TrackedRecord):
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    next_due_date: date


class EMI(TrackedRecord):
    """
    Equated Monthly Installment - a fixed periodic loan repayment.

    paid_amount accumulates as installments are recorded.
    """
    loan_name: str = Field(..., min_length=1, max_length=200)
    total_amount: Decimal = Field(..., gt=0, decimal_places=2)
    monthly_payment: Decimal = Field(..., gt=0, decimal_places=2)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    start_date: date

    @model_validator(mode='after')
    def validate_amounts(self) -> 'EMI':
        if self.monthly_payment > self.total_amount:
            raise ValueError("Monthly payment cannot exceed total amount")
        return self

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))

    @property
    def is_active(self) -> bool:
        return self.remaining_amount > 0


class NotificationSettings(BaseModel):
    """One settings document per user, upserted by user_id."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=generate_id)
    user_id: str = Field(..., min_length=1)
    discord_webhook_url: Optional[str] = None
    notifications_enabled: bool = False
    morning_briefing_time: Optional[str] = None
    evening_summary_time: Optional[str] = None

    @field_validator('morning_briefing_time', 'evening_summary_time')
    @classmethod
    def validate_hhmm(cls, v: Optional[str]) -> Optional[str]:
        """Times are wall-clock HH:MM."""
        if not v:
            return None
        datetime.strptime(v, "%H:%M")
        return v

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


class DashboardStats(BaseModel):
    """Figures shown on the dashboard."""

    window_days: int = 30
    total_expenses_in_window: Decimal = Decimal("0")
    pending_todos: int = 0
    active_emis: int = 0
    today_reminders: list[Reminder] = Field(default_factory=list)


class ReportRange(str, Enum):
    """Periods the expense report can cover."""
    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"
    LAST_90_DAYS = "90days"
    THIS_MONTH = "thisMonth"


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal


class ExpenseReport(BaseModel):
    """
    Expense figures for one report period.

    daily_totals has an entry for every calendar day in the period,
    zero when nothing was spent. monthly_totals is keyed "YYYY-MM".
    """

    range: ReportRange
    start: datetime
    end: datetime
    total: Decimal = Decimal("0")
    average_daily: Decimal = Decimal("0")
    highest_category: Optional[str] = None
    transaction_count: int = 0
    category_totals: list[CategoryTotal] = Field(default_factory=list)
    daily_totals: dict[date, Decimal] = Field(default_factory=dict)
    monthly_totals: dict[str, Decimal] = Field(default_factory=dict)


# =============================================================================
# RECORD KINDS
# =============================================================================

class RecordKind(str, Enum):
    """
    Entity kinds stored per user.

    The value doubles as the remote table name; local_key is the
    document key used by the demo store.
    """
    EXPENSES = "expenses"
    TODOS = "todos"
    REMINDERS = "reminders"
    RECURRING_PAYMENTS = "recurring_payments"
    EMIS = "emis"

    @property
    def table(self) -> str:
        return self.value

    @property
    def local_key(self) -> str:
        return f"demo_{self.value}"

    @property
    def model(self) -> type[TrackedRecord]:
        return _RECORD_MODELS[self]


_RECORD_MODELS: dict[RecordKind, type[TrackedRecord]] = {
    RecordKind.EXPENSES: Expense,
    RecordKind.TODOS: Todo,
    RecordKind.REMINDERS: Reminder,
    RecordKind.RECURRING_PAYMENTS: RecurringPayment,
    RecordKind.EMIS: EMI,
}
