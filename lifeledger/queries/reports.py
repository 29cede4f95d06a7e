"""
Expense Reports

Figures behind the reports page: totals, a daily average, the
category breakdown and per-day and per-month series for one period.
Computed in Python from the store's records, like the dashboard.
"""

import math
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from lifeledger.models.records import (
    CategoryTotal,
    Expense,
    ExpenseReport,
    RecordKind,
    ReportRange,
)
from lifeledger.queries.dashboard import as_utc
from lifeledger.services.storage import RecordStorageInterface


RANGE_DAYS = {
    ReportRange.LAST_7_DAYS: 7,
    ReportRange.LAST_30_DAYS: 30,
    ReportRange.LAST_90_DAYS: 90,
}

CENT = Decimal("0.01")


def report_period(report_range: ReportRange, now: datetime) -> tuple[datetime, datetime]:
    """
    Start and end (both inclusive) of a report period.

    Rolling ranges end at now; THIS_MONTH spans the whole calendar month.
    """
    if report_range == ReportRange.THIS_MONTH:
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            next_month = start.replace(year=start.year + 1, month=1)
        else:
            next_month = start.replace(month=start.month + 1)
        return start, next_month - timedelta(microseconds=1)
    return now - timedelta(days=RANGE_DAYS[report_range]), now


class ReportQuery:
    """
    Builds expense reports for one user.

    GUARANTEES:
    - Only counts the user's own expenses inside the period
    - Every day of the period appears in daily_totals
    """

    def __init__(self, storage: RecordStorageInterface):
        self._storage = storage

    async def get_report(
        self,
        user_id: str,
        report_range: ReportRange = ReportRange.LAST_30_DAYS,
        now: Optional[datetime] = None,
    ) -> ExpenseReport:
        now = as_utc(now or datetime.now(timezone.utc))
        start, end = report_period(report_range, now)

        expenses: list[Expense] = [
            e for e in await self._storage.list_records(RecordKind.EXPENSES, user_id)
            if start <= as_utc(e.created_at) <= end
        ]

        category_totals = self._by_category(expenses)
        total = sum((e.amount for e in expenses), Decimal("0"))
        days = max(1, math.ceil((end - start) / timedelta(days=1)))

        return ExpenseReport(
            range=report_range,
            start=start,
            end=end,
            total=total,
            average_daily=(total / days).quantize(CENT, rounding=ROUND_HALF_UP),
            highest_category=category_totals[0].category if category_totals else None,
            transaction_count=len(expenses),
            category_totals=category_totals,
            daily_totals=self._by_day(expenses, start.date(), end.date()),
            monthly_totals=self._by_month(expenses),
        )

    @staticmethod
    def _by_category(expenses: list[Expense]) -> list[CategoryTotal]:
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for expense in expenses:
            totals[expense.category] += expense.amount
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [CategoryTotal(category=c, amount=a) for c, a in ranked]

    @staticmethod
    def _by_day(expenses: list[Expense], first: date, last: date) -> dict[date, Decimal]:
        totals: dict[date, Decimal] = {}
        day = first
        while day <= last:
            totals[day] = Decimal("0")
            day += timedelta(days=1)
        for expense in expenses:
            key = as_utc(expense.created_at).date()
            totals[key] = totals.get(key, Decimal("0")) + expense.amount
        return totals

    @staticmethod
    def _by_month(expenses: list[Expense]) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = {}
        for expense in sorted(expenses, key=lambda e: as_utc(e.created_at)):
            key = as_utc(expense.created_at).strftime("%Y-%m")
            totals[key] = totals.get(key, Decimal("0")) + expense.amount
        return totals
