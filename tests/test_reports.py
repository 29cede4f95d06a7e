"""
Tests for expense reports.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from lifeledger.models.records import Expense, RecordKind, ReportRange
from lifeledger.queries import ReportQuery
from lifeledger.queries.reports import report_period

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def query(record_storage) -> ReportQuery:
    return ReportQuery(record_storage)


def put_expenses(store, *expenses: tuple[str, str, datetime], user_id: str = "u-1") -> None:
    """Write (amount, category, created_at) expenses directly."""
    store.set(RecordKind.EXPENSES.local_key, [
        Expense(user_id=user_id, amount=Decimal(amount), category=category,
                created_at=created_at).to_record()
        for amount, category, created_at in expenses
    ])


class TestReportPeriod:
    """Tests for report_period."""

    def test_rolling_ranges_end_now(self):
        assert report_period(ReportRange.LAST_7_DAYS, NOW) == (NOW - timedelta(days=7), NOW)
        assert report_period(ReportRange.LAST_90_DAYS, NOW)[0] == NOW - timedelta(days=90)

    def test_this_month_covers_whole_month(self):
        start, end = report_period(ReportRange.THIS_MONTH, NOW)
        assert start == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert end.date() == date(2024, 6, 30)
        assert end < datetime(2024, 7, 1, tzinfo=timezone.utc)

    def test_this_month_in_december(self):
        start, end = report_period(ReportRange.THIS_MONTH, NOW.replace(month=12))
        assert end.date() == date(2024, 12, 31)


class TestReportQuery:
    """Tests for ReportQuery.get_report."""

    def test_empty_report(self, query):
        report = asyncio.run(query.get_report("u-1", now=NOW))

        assert report.range == ReportRange.LAST_30_DAYS
        assert report.total == Decimal("0")
        assert report.average_daily == Decimal("0.00")
        assert report.highest_category is None
        assert report.transaction_count == 0
        assert report.category_totals == []
        assert len(report.daily_totals) == 31
        assert set(report.daily_totals.values()) == {Decimal("0")}

    def test_figures_for_period(self, query, store):
        put_expenses(
            store,
            ("40.00", "food", NOW - timedelta(days=1)),
            ("20.00", "food", NOW - timedelta(days=1, hours=2)),
            ("30.00", "fuel", NOW - timedelta(days=10)),
            ("500.00", "rent", NOW - timedelta(days=45)),
        )

        report = asyncio.run(query.get_report("u-1", ReportRange.LAST_30_DAYS, now=NOW))

        assert report.total == Decimal("90.00")
        assert report.average_daily == Decimal("3.00")
        assert report.transaction_count == 3
        assert report.highest_category == "food"
        assert [(c.category, c.amount) for c in report.category_totals] == [
            ("food", Decimal("60.00")),
            ("fuel", Decimal("30.00")),
        ]
        assert report.daily_totals[date(2024, 6, 14)] == Decimal("60.00")
        assert report.daily_totals[date(2024, 6, 5)] == Decimal("30.00")

    def test_only_own_expenses(self, query, store):
        put_expenses(store, ("75.00", "rent", NOW - timedelta(days=1)), user_id="u-2")
        assert asyncio.run(query.get_report("u-1", now=NOW)).transaction_count == 0

    def test_this_month(self, query, store):
        put_expenses(
            store,
            ("10.00", "food", datetime(2024, 6, 1, 0, 30, tzinfo=timezone.utc)),
            ("20.00", "food", datetime(2024, 6, 28, tzinfo=timezone.utc)),
            ("99.00", "food", datetime(2024, 5, 31, 23, 0, tzinfo=timezone.utc)),
        )

        report = asyncio.run(query.get_report("u-1", ReportRange.THIS_MONTH, now=NOW))

        assert report.total == Decimal("30.00")
        assert report.average_daily == Decimal("1.00")
        assert len(report.daily_totals) == 30

    def test_monthly_totals(self, query, store):
        put_expenses(
            store,
            ("5.00", "fuel", datetime(2024, 6, 2, tzinfo=timezone.utc)),
            ("7.00", "food", datetime(2024, 4, 20, tzinfo=timezone.utc)),
            ("3.00", "food", datetime(2024, 5, 9, tzinfo=timezone.utc)),
            ("4.00", "food", datetime(2024, 6, 10, tzinfo=timezone.utc)),
        )

        report = asyncio.run(query.get_report("u-1", ReportRange.LAST_90_DAYS, now=NOW))

        assert list(report.monthly_totals.items()) == [
            ("2024-04", Decimal("7.00")),
            ("2024-05", Decimal("3.00")),
            ("2024-06", Decimal("9.00")),
        ]

    def test_naive_now_is_utc(self, query, store):
        put_expenses(store, ("12.00", "food", NOW - timedelta(days=2)))

        report = asyncio.run(
            query.get_report("u-1", ReportRange.LAST_7_DAYS, now=NOW.replace(tzinfo=None))
        )
        assert report.total == Decimal("12.00")

    def test_works_against_remote_records(self, remote_records):
        asyncio.run(remote_records.save_record(
            RecordKind.EXPENSES, {"user_id": "u-1", "amount": "8.00", "category": "food"}
        ))
        report = asyncio.run(ReportQuery(remote_records).get_report("u-1"))
        assert report.total == Decimal("8.00")
        assert report.highest_category == "food"
