"""
Payment recording for EMIs and recurring payments.

Recording a payment writes two records: an expense for the amount paid,
then the updated EMI or recurring payment. Both go through the same
RecordStorageInterface, so the behaviour is identical in either mode.
"""

import calendar
from datetime import date, timedelta
from typing import Optional

import structlog

from lifeledger.models.records import (
    EMI,
    Expense,
    PaymentFrequency,
    RecordKind,
    RecurringPayment,
    TrackedRecord,
)
from lifeledger.services.storage import NotFoundError, RecordStorageInterface


logger = structlog.get_logger(__name__)

PAYMENT_EXPENSE_CATEGORY = "Bills & Utilities"


class OverpaymentError(ValueError):
    """An installment would take the paid amount past the loan total."""
    pass


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def advance_due_date(day: date, frequency: PaymentFrequency) -> date:
    """
    Next due date after a payment on day.

    Jan 31 monthly becomes Feb 28 (or 29); Feb 29 yearly becomes Feb 28.
    """
    if frequency == PaymentFrequency.DAILY:
        return day + timedelta(days=1)
    if frequency == PaymentFrequency.WEEKLY:
        return day + timedelta(weeks=1)
    if frequency == PaymentFrequency.YEARLY:
        return add_months(day, 12)
    return add_months(day, 1)


async def _get_owned(
    storage: RecordStorageInterface,
    kind: RecordKind,
    user_id: str,
    record_id: str,
) -> TrackedRecord:
    for record in await storage.list_records(kind, user_id):
        if record.id == record_id:
            return record
    raise NotFoundError(f"{kind.value} record not found: {record_id}")


class EmiService:
    """Records EMI installments."""

    def __init__(self, storage: RecordStorageInterface):
        self._storage = storage

    async def record_payment(self, user_id: str, emi_id: str) -> tuple[EMI, Expense]:
        """
        Pay one monthly installment of an EMI.

        Returns:
            (updated EMI, expense recorded for the installment)

        Raises:
            NotFoundError: If the user has no EMI with that id
            OverpaymentError: If the installment would exceed the total
            StorageError: If either write fails
        """
        emi: EMI = await _get_owned(self._storage, RecordKind.EMIS, user_id, emi_id)

        new_paid_amount = emi.paid_amount + emi.monthly_payment
        if new_paid_amount > emi.total_amount:
            raise OverpaymentError("Payment would exceed total loan amount")

        expense = await self._storage.save_record(RecordKind.EXPENSES, {
            "user_id": user_id,
            "amount": emi.monthly_payment,
            "category": PAYMENT_EXPENSE_CATEGORY,
            "description": f"EMI: {emi.loan_name}",
        })
        updated = await self._storage.update_record(
            RecordKind.EMIS, emi.id, {"paid_amount": new_paid_amount}
        )
        if updated is None:
            raise NotFoundError(f"emis record not found: {emi.id}")

        logger.info(
            "emi_payment_recorded",
            emi_id=emi.id,
            amount=str(emi.monthly_payment),
            remaining=str(updated.remaining_amount),
        )
        return updated, expense


class RecurringService:
    """Processes recurring payments."""

    def __init__(self, storage: RecordStorageInterface):
        self._storage = storage

    async def process_payment(
        self,
        user_id: str,
        payment_id: str,
    ) -> tuple[RecurringPayment, Expense]:
        """
        Record this period's payment and move the due date on.

        The next due date is computed from the current due date, not
        from today, so a late payment does not shift the schedule.

        Returns:
            (updated payment, expense recorded for it)

        Raises:
            NotFoundError: If the user has no recurring payment with that id
            StorageError: If either write fails
        """
        payment: RecurringPayment = await _get_owned(
            self._storage, RecordKind.RECURRING_PAYMENTS, user_id, payment_id
        )

        expense = await self._storage.save_record(RecordKind.EXPENSES, {
            "user_id": user_id,
            "amount": payment.amount,
            "category": PAYMENT_EXPENSE_CATEGORY,
            "description": f"Recurring: {payment.title}",
        })
        next_due: date = advance_due_date(payment.next_due_date, payment.frequency)
        updated: Optional[RecurringPayment] = await self._storage.update_record(
            RecordKind.RECURRING_PAYMENTS,
            payment.id,
            {"next_due_date": next_due.isoformat()},
        )
        if updated is None:
            raise NotFoundError(f"recurring_payments record not found: {payment.id}")

        logger.info(
            "recurring_payment_processed",
            payment_id=payment.id,
            next_due_date=next_due.isoformat(),
        )
        return updated, expense
