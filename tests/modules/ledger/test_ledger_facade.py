from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.budgets.schemas import BudgetCreate
from src.modules.ledger.service import Ledger
from src.modules.payment_plans.schemas import PaymentPlanCreate


class _Notifier:
    def __init__(self):
        self.alerts = []

    async def notify(self, alert) -> None:
        self.alerts.append(alert)


class TestLedger:
    async def test_shares_one_student_directory(self, db_session: AsyncSession):
        ledger = Ledger(db_session)

        assert ledger.payments.obligations is ledger.obligations
        assert ledger.payments.students is ledger.obligations.students
        assert ledger.plans.students is ledger.obligations.students
        assert ledger.sweeper.repository is ledger.obligations.repository

    async def test_term_walkthrough(self, db_session: AsyncSession, student, make_obligation):
        tuition = await make_obligation(student, "5000.00", due_date=date(2024, 1, 20))
        meals = await make_obligation(
            student, "1500.00", due_date=date(2024, 2, 20), category_code="MEALS"
        )
        ledger = Ledger(db_session)

        assert await ledger.sweep_overdue(1, as_of=date(2024, 2, 1)) == 1

        discounted = await ledger.apply_discount(1, meals.id, Decimal("500.00"), "sibling")
        assert discounted.balance == Decimal("1000.00")

        result = await ledger.record_payment(1, student.id, "5500", "cash", date(2024, 2, 2))
        assert [a.obligation_id for a in result.allocations] == [tuition.id, meals.id]
        assert result.unallocated_amount == Decimal("0.00")
        assert tuition.status == "paid"
        assert meals.balance == Decimal("500.00")

        created = await ledger.create_payment_plan(
            1,
            student.id,
            PaymentPlanCreate(
                plan_name="Remaining meals",
                total_amount=Decimal("500.00"),
                number_of_installments=2,
                start_date=date(2024, 3, 1),
            ),
        )
        earmarked = await ledger.record_payment(
            1, student.id, "250", "cash", date(2024, 3, 1), allocate=False
        )
        assert earmarked.allocations == []
        assert meals.balance == Decimal("500.00")

        outcome = await ledger.apply_installment_payment(
            1, created.installments[0].id, earmarked.payment.id, Decimal("250.00")
        )
        assert outcome.installment.payment_id == earmarked.payment.id
        assert outcome.plan.balance == Decimal("250.00")

    async def test_reconcile_uses_notifier(self, db_session: AsyncSession):
        notifier = _Notifier()
        ledger = Ledger(db_session, budget_notifier=notifier)
        budget = await ledger.budgets.create_budget(
            1,
            BudgetCreate(
                budget_name="Library",
                start_date=date(2024, 1, 1),
                end_date=date(2024, 12, 31),
                total_budgeted_amount=Decimal("100.00"),
            ),
        )

        reconciled = await ledger.reconcile_budget(1, budget.id)

        assert reconciled.utilization_rate == Decimal("0.00")
        assert ledger.budgets.notifier is notifier
        assert notifier.alerts == []
