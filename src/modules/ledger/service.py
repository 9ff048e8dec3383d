"""
Ledger facade.

Wires the repositories of one session into the ledger engines and exposes
the ledger's six mutating operations. Callers that need more than these
(fee structures, reports, expense workflow) use the module services directly.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.budgets.alerts import BudgetAlertNotifier
from src.modules.budgets.models import Budget
from src.modules.budgets.repository import BudgetRepository
from src.modules.budgets.service import BudgetService
from src.modules.obligations.models import Obligation
from src.modules.obligations.repository import ObligationRepository
from src.modules.obligations.service import ObligationStore
from src.modules.obligations.sweeper import OverdueSweeper
from src.modules.payment_plans.repository import PaymentPlanRepository
from src.modules.payment_plans.schemas import PaymentPlanCreate
from src.modules.payment_plans.service import (
    InstallmentPaymentOutcome,
    PaymentPlanService,
    PlanWithInstallments,
)
from src.modules.payments.models import PaymentMethod
from src.modules.payments.repository import PaymentRepository
from src.modules.payments.service import PaymentLedger, RecordPaymentResult
from src.modules.students.service import StudentDirectory


class Ledger:
    def __init__(self, session: AsyncSession, budget_notifier: BudgetAlertNotifier | None = None):
        students = StudentDirectory(session)
        obligation_repository = ObligationRepository(session)
        payment_repository = PaymentRepository(session)

        self.obligations = ObligationStore(
            session, repository=obligation_repository, students=students
        )
        self.payments = PaymentLedger(
            session,
            payments=payment_repository,
            obligations=self.obligations,
            students=students,
        )
        self.plans = PaymentPlanService(
            session,
            repository=PaymentPlanRepository(session),
            students=students,
            payments=payment_repository,
        )
        self.sweeper = OverdueSweeper(session, repository=obligation_repository)
        self.budgets = BudgetService(
            session, repository=BudgetRepository(session), notifier=budget_notifier
        )

    async def record_payment(
        self,
        school_id: int,
        student_id: int,
        amount: Decimal,
        method: PaymentMethod | str,
        payment_date: date,
        transaction_reference: str | None = None,
        received_by_id: int | None = None,
        notes: str | None = None,
        allocate: bool = True,
    ) -> RecordPaymentResult:
        return await self.payments.record_payment(
            school_id,
            student_id,
            amount,
            method,
            payment_date,
            transaction_reference=transaction_reference,
            received_by_id=received_by_id,
            notes=notes,
            allocate=allocate,
        )

    async def apply_discount(
        self,
        school_id: int,
        obligation_id: int,
        amount: Decimal,
        discount_type: str,
        reason: str | None = None,
        approver_id: int | None = None,
    ) -> Obligation:
        return await self.obligations.apply_discount(
            school_id, obligation_id, amount, discount_type, reason=reason, approver_id=approver_id
        )

    async def create_payment_plan(
        self, school_id: int, student_id: int, params: PaymentPlanCreate
    ) -> PlanWithInstallments:
        return await self.plans.create_payment_plan(school_id, student_id, params)

    async def apply_installment_payment(
        self,
        school_id: int,
        installment_id: int,
        payment_id: int,
        amount: Decimal,
    ) -> InstallmentPaymentOutcome:
        return await self.plans.apply_installment_payment(
            school_id, installment_id, payment_id, amount
        )

    async def sweep_overdue(self, school_id: int, as_of: date | None = None) -> int:
        return await self.sweeper.sweep_overdue(school_id, as_of)

    async def reconcile_budget(self, school_id: int, budget_id: int) -> Budget:
        return await self.budgets.reconcile_budget(school_id, budget_id)
