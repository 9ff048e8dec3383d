"""Tests for payment plan creation, installment payments and plan status."""

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import list_audit_entries
from src.core.exceptions import (
    InstallmentNotFound,
    PaymentNotFound,
    PlanNotFound,
    StudentNotFound,
    ValidationError,
)
from src.modules.payment_plans.models import InstallmentStatus, PlanFrequency, PlanStatus
from src.modules.payment_plans.schemas import PaymentPlanCreate
from src.modules.payment_plans.service import PaymentPlanService
from src.modules.payments.service import PaymentLedger


@pytest.fixture
def earmark(db_session: AsyncSession):
    """Record a payment that is kept back from obligations for installments."""

    async def factory(student, amount: str = "1000.00", method: str = "cash"):
        result = await PaymentLedger(db_session).record_payment(
            student.school_id, student.id, amount, method, date(2024, 1, 10), allocate=False
        )
        return result.payment

    return factory


def plan_params(**overrides) -> PaymentPlanCreate:
    values = {
        "plan_name": "Term 1 instalments",
        "total_amount": Decimal("1200.00"),
        "down_payment": Decimal("200.00"),
        "number_of_installments": 3,
        "start_date": date(2024, 1, 15),
    }
    values.update(overrides)
    return PaymentPlanCreate(**values)


class TestCreatePaymentPlan:
    async def test_defaults(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)

        created = await service.create_payment_plan(1, student.id, plan_params())

        plan = created.plan
        assert plan.remaining_amount == Decimal("1000.00")
        assert plan.balance == Decimal("1000.00")
        assert plan.installment_amount == Decimal("333.33")
        assert plan.grace_period_days == 7
        assert plan.end_date == date(2024, 3, 15)
        assert plan.status == PlanStatus.ACTIVE.value
        assert [i.amount for i in created.installments] == [
            Decimal("333.33"),
            Decimal("333.33"),
            Decimal("333.34"),
        ]
        assert all(i.status == InstallmentStatus.PENDING.value for i in created.installments)

    async def test_explicit_installment_amount_must_add_up(
        self, db_session: AsyncSession, student
    ):
        service = PaymentPlanService(db_session)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_payment_plan(
                1, student.id, plan_params(installment_amount=Decimal("300.00"))
            )
        assert exc_info.value.details["field"] == "installment_amount"

        created = await service.create_payment_plan(
            1,
            student.id,
            plan_params(installment_amount=Decimal("250.00"), number_of_installments=4),
        )
        assert {i.amount for i in created.installments} == {Decimal("250.00")}

    async def test_end_date_before_last_installment(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)

        with pytest.raises(ValidationError):
            await service.create_payment_plan(
                1, student.id, plan_params(end_date=date(2024, 2, 1))
            )

    async def test_down_payment_must_be_below_total(self):
        with pytest.raises(ValueError):
            plan_params(down_payment=Decimal("1200.00"))

    async def test_many_small_installments_stay_positive(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)

        created = await service.create_payment_plan(
            1,
            student.id,
            plan_params(
                total_amount=Decimal("7.00"),
                down_payment=Decimal("0"),
                number_of_installments=120,
                frequency=PlanFrequency.WEEKLY,
            ),
        )

        assert created.plan.installment_amount == Decimal("0.05")
        assert created.installments[-1].amount == Decimal("1.05")
        assert all(i.balance > 0 for i in created.installments)
        assert sum(i.amount for i in created.installments) == Decimal("7.00")

    async def test_too_many_installments_for_amount(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_payment_plan(
                1,
                student.id,
                plan_params(
                    total_amount=Decimal("0.50"),
                    down_payment=Decimal("0"),
                    number_of_installments=120,
                ),
            )
        assert exc_info.value.details["field"] == "number_of_installments"

    async def test_unknown_student(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)

        with pytest.raises(StudentNotFound):
            await service.create_payment_plan(2, student.id, plan_params())


class TestInstallmentPayments:
    async def test_pay_plan_to_completion(self, db_session: AsyncSession, student, earmark):
        service = PaymentPlanService(db_session)
        payment = await earmark(student)
        created = await service.create_payment_plan(1, student.id, plan_params())
        first, second, third = created.installments

        partial = await service.apply_installment_payment(1, first.id, payment.id, Decimal("100.00"))
        assert partial.installment.balance == Decimal("233.33")
        assert partial.installment.status == InstallmentStatus.PENDING.value
        assert partial.plan.installments_paid == 0

        await service.apply_installment_payment(1, first.id, payment.id, Decimal("233.33"))
        await service.apply_installment_payment(1, second.id, payment.id, Decimal("333.33"))
        outcome = await service.apply_installment_payment(1, third.id, payment.id, Decimal("333.34"))

        assert outcome.installment.status == InstallmentStatus.PAID.value
        assert outcome.installment.paid_at is not None
        assert outcome.plan.installments_paid == 3
        assert outcome.plan.amount_paid == Decimal("1000.00")
        assert outcome.plan.balance == Decimal("0.00")
        assert outcome.plan.status == PlanStatus.COMPLETED.value

        entries = await list_audit_entries(
            db_session, 1, action="payment_plan.installment_payment"
        )
        assert len(entries) == 4

    async def test_paid_installment_rejects_more(self, db_session: AsyncSession, student, earmark):
        service = PaymentPlanService(db_session)
        payment = await earmark(student)
        created = await service.create_payment_plan(1, student.id, plan_params())
        first = created.installments[0]
        await service.apply_installment_payment(1, first.id, payment.id, Decimal("333.33"))

        with pytest.raises(ValidationError):
            await service.apply_installment_payment(1, first.id, payment.id, Decimal("1.00"))

    async def test_overpayment_clamps_installment_balance(
        self, db_session: AsyncSession, student, earmark
    ):
        service = PaymentPlanService(db_session)
        payment = await earmark(student)
        created = await service.create_payment_plan(1, student.id, plan_params())

        outcome = await service.apply_installment_payment(
            1, created.installments[0].id, payment.id, Decimal("400.00")
        )

        assert outcome.installment.balance == Decimal("0.00")
        assert outcome.plan.amount_paid == Decimal("400.00")
        assert outcome.plan.balance == Decimal("600.00")

    async def test_links_recorded_payment(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())

        with pytest.raises(PaymentNotFound):
            await service.apply_installment_payment(
                1, created.installments[0].id, 555, Decimal("10.00")
            )

    async def test_payment_already_allocated_to_obligations(
        self, db_session: AsyncSession, student, make_obligation
    ):
        await make_obligation(student, "500.00")
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())
        installment_id, plan_id = created.installments[0].id, created.plan.id
        paid = await PaymentLedger(db_session).record_payment(
            1, student.id, "500", "cash", date(2024, 1, 10)
        )
        payment_id = paid.payment.id

        with pytest.raises(ValidationError) as exc_info:
            await service.apply_installment_payment(
                1, installment_id, payment_id, Decimal("500.00")
            )

        assert exc_info.value.details["field"] == "amount"
        detail = await service.get_plan(1, plan_id)
        assert detail.plan.amount_paid == Decimal("0.00")
        assert detail.installments[0].balance == Decimal("333.33")

    async def test_payment_of_another_student(
        self, db_session: AsyncSession, student, make_student, earmark
    ):
        other = await make_student(school_id=1, student_number="STU-000002")
        payment = await earmark(other, "500.00")
        payment_id = payment.id
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())

        with pytest.raises(ValidationError) as exc_info:
            await service.apply_installment_payment(
                1, created.installments[0].id, payment_id, Decimal("100.00")
            )
        assert exc_info.value.details["field"] == "payment_id"

    async def test_amount_limited_to_what_is_left(
        self, db_session: AsyncSession, student, earmark
    ):
        payment = await earmark(student, "500.00")
        payment_id = payment.id
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())
        first_id, second_id = created.installments[0].id, created.installments[1].id

        await service.apply_installment_payment(1, first_id, payment_id, Decimal("333.33"))
        with pytest.raises(ValidationError) as exc_info:
            await service.apply_installment_payment(1, second_id, payment_id, Decimal("200.00"))
        assert exc_info.value.details["field"] == "amount"

        outcome = await service.apply_installment_payment(
            1, second_id, payment_id, Decimal("166.67")
        )
        assert outcome.installment.balance == Decimal("166.66")

        detail = await PaymentLedger(db_session).get_payment_detail(1, payment_id)
        assert detail.unallocated_amount == Decimal("0.00")
        assert [a.installment_id for a in detail.allocations] == [first_id, second_id]
        assert all(a.obligation_id is None for a in detail.allocations)

    async def test_cancelled_payment_cannot_be_applied(
        self, db_session: AsyncSession, student, earmark
    ):
        payment = await earmark(student, "300.00", method="bank_transfer")
        payment_id = payment.id
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())
        await PaymentLedger(db_session).cancel_payment(1, payment_id, reason="Bounced")

        with pytest.raises(ValidationError) as exc_info:
            await service.apply_installment_payment(
                1, created.installments[0].id, payment_id, Decimal("300.00")
            )
        assert exc_info.value.details["field"] == "payment_id"

    async def test_applied_payment_cannot_be_cancelled(
        self, db_session: AsyncSession, student, earmark
    ):
        payment = await earmark(student, "300.00", method="bank_transfer")
        payment_id = payment.id
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())

        await service.apply_installment_payment(
            1, created.installments[0].id, payment_id, Decimal("300.00")
        )

        with pytest.raises(ValidationError):
            await PaymentLedger(db_session).cancel_payment(1, payment_id, reason="Bounced")

    async def test_missing_installment_and_plan(self, db_session: AsyncSession, student, earmark):
        service = PaymentPlanService(db_session)
        payment = await earmark(student)

        with pytest.raises(InstallmentNotFound):
            await service.apply_installment_payment(1, 999, payment.id, Decimal("10.00"))
        with pytest.raises(PlanNotFound):
            await service.get_plan(1, 999)


class TestOverdueAndDefault:
    async def test_sweep_counts_overdue_once(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())

        # Grace for the first two installments has ended by 1 March.
        assert await service.sweep_overdue_installments(1, as_of=date(2024, 3, 1)) == 2
        assert await service.sweep_overdue_installments(1, as_of=date(2024, 3, 2)) == 2

        detail = await service.get_plan(1, created.plan.id)
        assert detail.plan.installments_overdue == 2
        assert [i.status for i in detail.installments] == ["overdue", "overdue", "pending"]
        assert detail.installments[0].days_overdue == 47

    async def test_earlier_sweep_keeps_days_overdue(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())

        await service.sweep_overdue_installments(1, as_of=date(2024, 3, 2))
        await service.sweep_overdue_installments(1, as_of=date(2024, 3, 1))

        detail = await service.get_plan(1, created.plan.id)
        assert detail.installments[0].days_overdue == 47
        assert detail.plan.installments_overdue == 2

    async def test_paying_overdue_installment_decrements_count(
        self, db_session: AsyncSession, student, earmark
    ):
        service = PaymentPlanService(db_session)
        payment = await earmark(student)
        created = await service.create_payment_plan(1, student.id, plan_params())
        await service.sweep_overdue_installments(1, as_of=date(2024, 3, 1))

        outcome = await service.apply_installment_payment(
            1, created.installments[0].id, payment.id, Decimal("333.33")
        )

        assert outcome.plan.installments_overdue == 1
        assert outcome.installment.days_overdue == 0

    async def test_default_above_threshold(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())
        await service.sweep_overdue_installments(1, as_of=date(2024, 4, 1))

        assert await service.mark_defaulted_plans(1) == 1
        assert created.plan.status == PlanStatus.DEFAULTED.value
        assert await service.mark_defaulted_plans(1) == 0

    async def test_threshold_is_exclusive(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)
        created = await service.create_payment_plan(1, student.id, plan_params())
        await service.sweep_overdue_installments(1, as_of=date(2024, 3, 1))

        assert await service.mark_defaulted_plans(1, threshold=2) == 0
        assert await service.mark_defaulted_plans(1, threshold=1) == 1
        assert created.plan.status == PlanStatus.DEFAULTED.value


class TestPlanQueries:
    async def test_stats(self, db_session: AsyncSession, student, earmark):
        service = PaymentPlanService(db_session)
        payment = await earmark(student)
        first = await service.create_payment_plan(1, student.id, plan_params())
        await service.create_payment_plan(
            1, student.id, plan_params(total_amount=Decimal("500.00"), down_payment=Decimal("0"))
        )
        await service.apply_installment_payment(
            1, first.installments[0].id, payment.id, Decimal("333.33")
        )

        stats = await service.get_plan_stats(1)

        assert stats.total_plans == 2
        assert stats.total_amount == Decimal("1700.00")
        assert stats.amount_paid == Decimal("333.33")
        assert stats.balance == Decimal("1166.67")
        assert stats.by_status["active"].count == 2

    async def test_list_for_student(self, db_session: AsyncSession, student):
        service = PaymentPlanService(db_session)
        await service.create_payment_plan(1, student.id, plan_params())

        assert len(await service.list_plans_for_student(1, student.id)) == 1
        with pytest.raises(StudentNotFound):
            await service.list_plans_for_student(2, student.id)


class TestPaymentPlansApi:
    async def test_create_and_pay(self, client: AsyncClient, student):
        student_id = student.id
        created = await client.post(
            f"/api/v1/schools/1/students/{student_id}/payment-plans",
            json={
                "plan_name": "Fees plan",
                "total_amount": "900",
                "number_of_installments": 3,
                "start_date": "2024-01-31",
            },
        )

        assert created.status_code == 201
        installments = created.json()["data"]["installments"]
        assert [i["due_date"] for i in installments] == ["2024-01-31", "2024-02-29", "2024-03-31"]

        recorded = await client.post(
            "/api/v1/schools/1/payments",
            json={
                "student_id": student_id,
                "amount": "300",
                "payment_method": "cash",
                "payment_date": "2024-01-31",
                "allocate": False,
            },
        )
        payment_id = recorded.json()["data"]["payment"]["id"]

        paid = await client.post(
            f"/api/v1/schools/1/installments/{installments[0]['id']}/payments",
            json={"payment_id": payment_id, "amount": "300"},
        )
        again = await client.post(
            f"/api/v1/schools/1/installments/{installments[1]['id']}/payments",
            json={"payment_id": payment_id, "amount": "1"},
        )

        assert paid.status_code == 200
        assert paid.json()["data"]["installment"]["status"] == "paid"
        assert again.status_code == 422
        assert again.json()["errors"][0]["field"] == "amount"

        stats = await client.get("/api/v1/schools/1/payment-plans/stats")
        assert stats.json()["data"]["total_plans"] == 1
