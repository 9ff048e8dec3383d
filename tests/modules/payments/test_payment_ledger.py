"""Tests for recording and allocating payments."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import list_audit_entries
from src.core.documents import DocumentSequence
from src.core.exceptions import (
    ConcurrentModificationConflict,
    InvalidAmount,
    PaymentNotFound,
    StudentNotFound,
    ValidationError,
)
from src.modules.obligations.models import ObligationStatus
from src.modules.obligations.service import ObligationStore
from src.modules.payments.models import (
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
)
from src.modules.payments.schemas import PaymentFilters
from src.modules.payments.service import PaymentLedger


class FailingObligationStore(ObligationStore):
    """Raises on the n-th obligation update, after earlier ones were flushed."""

    def __init__(self, db: AsyncSession, fail_on: int):
        super().__init__(db)
        self.fail_on = fail_on
        self.calls = 0

    async def apply_payment(self, *args, **kwargs):
        self.calls += 1
        if self.calls == self.fail_on:
            raise ConcurrentModificationConflict()
        return await super().apply_payment(*args, **kwargs)


class TestRecordPayment:
    async def test_allocates_overdue_first(
        self, db_session: AsyncSession, student, make_obligation
    ):
        term = await make_obligation(student, "5000.00", due_date=date(2024, 3, 1))
        arrears = await make_obligation(
            student, "3000.00", due_date=date(2024, 1, 15), is_overdue=True, overdue_days=20
        )
        ledger = PaymentLedger(db_session)

        result = await ledger.record_payment(
            1, student.id, Decimal("6000.00"), PaymentMethod.CASH, date(2024, 2, 4)
        )

        assert [a.obligation_id for a in result.allocations] == [arrears.id, term.id]
        assert [a.allocated_amount for a in result.allocations] == [
            Decimal("3000.00"),
            Decimal("3000.00"),
        ]
        assert result.unallocated_amount == Decimal("0.00")
        assert arrears.status == ObligationStatus.PAID.value
        assert arrears.is_overdue is False
        assert term.balance == Decimal("2000.00")
        assert term.status == ObligationStatus.PARTIAL.value

    async def test_amount_is_conserved(self, db_session: AsyncSession, student, make_obligation):
        await make_obligation(student, "120.00", due_date=date(2024, 1, 1))
        await make_obligation(student, "80.50", due_date=date(2024, 2, 1))
        ledger = PaymentLedger(db_session)

        result = await ledger.record_payment(
            1, student.id, "250.25", "cash", date(2024, 2, 4)
        )

        allocated = sum((a.allocated_amount for a in result.allocations), Decimal("0"))
        assert allocated == Decimal("200.50")
        assert allocated + result.unallocated_amount == result.payment.amount

    async def test_nothing_outstanding_leaves_credit(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        result = await ledger.record_payment(
            1, student.id, Decimal("700.00"), PaymentMethod.CASH, date(2024, 2, 4)
        )

        assert result.allocations == []
        assert result.unallocated_amount == Decimal("700.00")

    async def test_assigns_document_numbers(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        first = await ledger.record_payment(1, student.id, "10", "cash", date(2024, 2, 4))
        second = await ledger.record_payment(1, student.id, "10", "cash", date(2024, 2, 4))

        assert first.payment.payment_reference == "PAY2402040001"
        assert second.payment.payment_reference == "PAY2402040002"
        assert first.payment.receipt_number == "RCT/2024/000001"
        assert second.payment.receipt_number == "RCT/2024/000002"

    async def test_verification_depends_on_method(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        cash = await ledger.record_payment(
            1, student.id, "10", PaymentMethod.CASH, date(2024, 2, 4), received_by_id=3
        )
        transfer = await ledger.record_payment(
            1, student.id, "10", PaymentMethod.BANK_TRANSFER, date(2024, 2, 4)
        )

        assert cash.payment.payment_status == PaymentStatus.COMPLETED.value
        assert cash.payment.is_verified is True
        assert cash.payment.verified_by_id == 3
        assert transfer.payment.payment_status == PaymentStatus.PENDING.value
        assert transfer.payment.is_verified is False

    async def test_failure_midway_persists_nothing(
        self, db_session: AsyncSession, student, make_obligation
    ):
        first = await make_obligation(student, "100.00", due_date=date(2024, 1, 1))
        await make_obligation(student, "200.00", due_date=date(2024, 2, 1))
        student_id = student.id
        store = FailingObligationStore(db_session, fail_on=2)
        ledger = PaymentLedger(db_session, obligations=store)

        with pytest.raises(ConcurrentModificationConflict):
            await ledger.record_payment(1, student_id, "250", "cash", date(2024, 2, 4))

        assert store.calls == 2
        assert await db_session.scalar(select(func.count()).select_from(Payment)) == 0
        assert await db_session.scalar(select(func.count()).select_from(PaymentAllocation)) == 0
        assert await db_session.scalar(select(func.count()).select_from(DocumentSequence)) == 0
        await db_session.refresh(first)
        assert first.balance == Decimal("100.00")
        assert first.amount_paid == Decimal("0.00")

    async def test_earmarked_payment_skips_obligations(
        self, db_session: AsyncSession, student, make_obligation
    ):
        obligation = await make_obligation(student, "1000.00")
        ledger = PaymentLedger(db_session)

        result = await ledger.record_payment(
            1, student.id, "400", "cash", date(2024, 2, 4), allocate=False
        )

        assert result.allocations == []
        assert result.unallocated_amount == Decimal("400.00")
        assert obligation.balance == Decimal("1000.00")
        assert await db_session.scalar(select(func.count()).select_from(PaymentAllocation)) == 0

    async def test_replayed_reference_writes_nothing(
        self, db_session: AsyncSession, student, make_obligation
    ):
        obligation = await make_obligation(student, "1000.00")
        ledger = PaymentLedger(db_session)

        first = await ledger.record_payment(
            1, student.id, "400", "online", date(2024, 2, 4), transaction_reference="TX-1"
        )
        again = await ledger.record_payment(
            1, student.id, "400", "online", date(2024, 2, 4), transaction_reference=" TX-1 "
        )

        assert first.replayed is False
        assert again.replayed is True
        assert again.payment.id == first.payment.id
        assert [a.id for a in again.allocations] == [a.id for a in first.allocations]
        assert obligation.balance == Decimal("600.00")
        assert await db_session.scalar(select(func.count()).select_from(Payment)) == 1
        assert await db_session.scalar(select(func.count()).select_from(PaymentAllocation)) == 1

    async def test_same_reference_in_other_school_is_new(
        self, db_session: AsyncSession, student, make_student
    ):
        other = await make_student(school_id=2, student_number="STU-000002")
        ledger = PaymentLedger(db_session)

        first = await ledger.record_payment(
            1, student.id, "50", "online", date(2024, 2, 4), transaction_reference="TX-9"
        )
        second = await ledger.record_payment(
            2, other.id, "50", "online", date(2024, 2, 4), transaction_reference="TX-9"
        )

        assert second.replayed is False
        assert second.payment.id != first.payment.id

    async def test_rejects_invalid_amount_and_method(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        with pytest.raises(InvalidAmount):
            await ledger.record_payment(1, student.id, "-10", "cash", date(2024, 2, 4))
        with pytest.raises(ValidationError) as exc_info:
            await ledger.record_payment(1, student.id, "10", "cheque", date(2024, 2, 4))
        assert exc_info.value.details["field"] == "payment_method"

    async def test_student_of_other_school_is_not_found(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        with pytest.raises(StudentNotFound):
            await ledger.record_payment(2, student.id, "10", "cash", date(2024, 2, 4))

        assert await db_session.scalar(select(func.count()).select_from(Payment)) == 0

    async def test_audit_entry_written(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        result = await ledger.record_payment(1, student.id, "10", "cash", date(2024, 2, 4))

        entries = await list_audit_entries(
            db_session, 1, entity_type="Payment", entity_id=result.payment.id
        )
        assert [e.action for e in entries] == ["payment.record"]
        assert entries[0].new_values["unallocated"] == "10.00"


class TestPaymentStatusChanges:
    async def test_verify_pending_payment(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)
        recorded = await ledger.record_payment(
            1, student.id, "10", PaymentMethod.BANK_TRANSFER, date(2024, 2, 4)
        )

        payment = await ledger.verify_payment(1, recorded.payment.id, verified_by_id=5, notes="Seen")

        assert payment.payment_status == PaymentStatus.COMPLETED.value
        assert payment.is_verified is True
        assert payment.verified_by_id == 5
        assert payment.verified_at is not None

    async def test_verify_completed_payment_fails(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)
        recorded = await ledger.record_payment(1, student.id, "10", "cash", date(2024, 2, 4))

        with pytest.raises(ValidationError):
            await ledger.verify_payment(1, recorded.payment.id, verified_by_id=5)

    async def test_cancel_unallocated_pending_payment(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)
        recorded = await ledger.record_payment(
            1, student.id, "10", PaymentMethod.BANK_TRANSFER, date(2024, 2, 4)
        )

        payment = await ledger.cancel_payment(1, recorded.payment.id, user_id=2, reason="Bounced")

        assert payment.payment_status == PaymentStatus.CANCELLED.value

    async def test_allocated_payment_cannot_fail(
        self, db_session: AsyncSession, student, make_obligation
    ):
        await make_obligation(student, "100.00")
        ledger = PaymentLedger(db_session)
        recorded = await ledger.record_payment(
            1, student.id, "10", PaymentMethod.BANK_TRANSFER, date(2024, 2, 4)
        )

        with pytest.raises(ValidationError):
            await ledger.mark_payment_failed(1, recorded.payment.id, reason="Reversed")

    async def test_unknown_payment(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)

        with pytest.raises(PaymentNotFound):
            await ledger.get_payment(1, 404)
        with pytest.raises(PaymentNotFound):
            await ledger.verify_payment(1, 404, verified_by_id=1)

    async def test_detail_reports_unallocated(
        self, db_session: AsyncSession, student, make_obligation
    ):
        await make_obligation(student, "100.00")
        ledger = PaymentLedger(db_session)
        recorded = await ledger.record_payment(1, student.id, "150", "cash", date(2024, 2, 4))

        detail = await ledger.get_payment_detail(1, recorded.payment.id)

        assert len(detail.allocations) == 1
        assert detail.unallocated_amount == Decimal("50.00")

    async def test_list_filters_and_pages(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)
        await ledger.record_payment(1, student.id, "10", "cash", date(2024, 2, 4))
        await ledger.record_payment(1, student.id, "10", "bank_transfer", date(2024, 2, 4))
        await ledger.record_payment(1, student.id, "10", "cash", date(2024, 2, 5))

        pending, pending_total = await ledger.list_payments(
            1, PaymentFilters(payment_status=PaymentStatus.PENDING)
        )
        first_page, total = await ledger.list_payments(
            1, PaymentFilters(student_id=student.id, limit=2)
        )

        assert pending_total == 1
        assert [p.payment_method for p in pending] == ["bank_transfer"]
        assert total == 3
        assert len(first_page) == 2
        assert first_page[0].payment_date == date(2024, 2, 5)


class TestPaymentStatistics:
    async def test_groups_by_method_and_status(self, db_session: AsyncSession, student):
        ledger = PaymentLedger(db_session)
        await ledger.record_payment(1, student.id, "100.00", "cash", date(2024, 2, 1))
        await ledger.record_payment(1, student.id, "50.25", "cash", date(2024, 2, 10))
        await ledger.record_payment(1, student.id, "30.00", "bank_transfer", date(2024, 2, 12))

        stats = await ledger.get_payment_statistics(1)

        assert stats.total_payments == 3
        assert stats.total_amount == Decimal("180.25")
        assert stats.by_method["cash"].count == 2
        assert stats.by_method["cash"].amount == Decimal("150.25")
        assert stats.by_method["bank_transfer"].amount == Decimal("30.00")
        assert stats.by_status["completed"].count == 2
        assert stats.by_status["pending"].count == 1

    async def test_date_range_and_school_scope(
        self, db_session: AsyncSession, student, make_student
    ):
        other = await make_student(2, "ADM-OTHER")
        ledger = PaymentLedger(db_session)
        await ledger.record_payment(1, student.id, "10.00", "cash", date(2024, 1, 31))
        await ledger.record_payment(1, student.id, "20.00", "cash", date(2024, 2, 1))
        await ledger.record_payment(1, student.id, "40.00", "cash", date(2024, 2, 29))
        await ledger.record_payment(2, other.id, "80.00", "cash", date(2024, 2, 15))

        stats = await ledger.get_payment_statistics(
            1, start_date=date(2024, 2, 1), end_date=date(2024, 2, 29)
        )

        assert stats.total_payments == 2
        assert stats.total_amount == Decimal("60.00")

    async def test_empty_range(self, db_session: AsyncSession, student):
        stats = await PaymentLedger(db_session).get_payment_statistics(1)

        assert stats.total_payments == 0
        assert stats.total_amount == Decimal("0.00")
        assert stats.by_method == {}

    async def test_inverted_range_rejected(self, db_session: AsyncSession, student):
        with pytest.raises(ValidationError):
            await PaymentLedger(db_session).get_payment_statistics(
                1, start_date=date(2024, 3, 1), end_date=date(2024, 2, 1)
            )
