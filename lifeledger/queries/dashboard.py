"""
Dashboard Statistics

DESIGN DECISION: Statistics are computed in Python from the records the
store returns, the same way for both backends. The record counts for a
single user are small enough that filtering client-side is simpler than
maintaining per-backend aggregate queries.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from lifeledger.config import get_settings
from lifeledger.models.records import (
    EMI,
    DashboardStats,
    Expense,
    RecordKind,
    Reminder,
    Todo,
)
from lifeledger.services.storage import RecordStorageInterface


class DashboardQuery:
    """
    Computes the figures on a user's dashboard.

    GUARANTEES:
    - Only counts records owned by the given user
    - Never estimates: an empty store yields zeros
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        window_days: Optional[int] = None,
    ):
        self._storage = storage
        self._window_days = window_days or get_settings().app.dashboard_window_days

    async def get_stats(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> DashboardStats:
        """
        Build dashboard statistics for a user.

        Args:
            user_id: Owner of the records
            now: Reference time (UTC); defaults to the current time
        """
        now = now or datetime.now(timezone.utc)
        today = now.date()

        expenses: list[Expense] = await self._storage.list_records(RecordKind.EXPENSES, user_id)
        todos: list[Todo] = await self._storage.list_records(RecordKind.TODOS, user_id)
        emis: list[EMI] = await self._storage.list_records(RecordKind.EMIS, user_id)
        reminders: list[Reminder] = await self._storage.list_records(RecordKind.REMINDERS, user_id)

        since = now - timedelta(days=self._window_days)

        return DashboardStats(
            window_days=self._window_days,
            total_expenses_in_window=self._total_since(expenses, since),
            pending_todos=sum(1 for todo in todos if not todo.completed),
            active_emis=sum(1 for emi in emis if emi.is_active),
            today_reminders=self._reminders_on(reminders, today),
        )

    @staticmethod
    def _total_since(expenses: list[Expense], since: datetime) -> Decimal:
        return sum(
            (e.amount for e in expenses if as_utc(e.created_at) >= since),
            Decimal("0"),
        )

    @staticmethod
    def _reminders_on(reminders: list[Reminder], day: date) -> list[Reminder]:
        matching = [r for r in reminders if r.is_on(day)]
        matching.sort(key=lambda r: r.reminder_date)
        return matching


def as_utc(value: datetime) -> datetime:
    """Naive timestamps from storage are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
