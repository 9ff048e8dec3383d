"""Budget reconciliation and the expense workflow that drives it."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditService
from src.core.config import settings
from src.core.database.session import atomic
from src.core.documents.number_generator import DocumentNumberGenerator
from src.core.exceptions import BudgetNotFound, ExpenseNotFound, ValidationError
from src.modules.budgets.alerts import (
    BudgetAlert,
    BudgetAlertNotifier,
    CategorySpend,
    LoggingBudgetAlertNotifier,
)
from src.modules.budgets.models import (
    Budget,
    BudgetStatus,
    Expense,
    ExpenseApprovalStatus,
    ExpensePaymentStatus,
)
from src.modules.budgets.repository import BudgetRepository
from src.modules.budgets.schemas import (
    BudgetAlertResponse,
    BudgetCreate,
    BudgetTypeUtilization,
    BudgetUtilization,
    ExpenseCategoryStatistics,
    ExpenseCreate,
    ExpenseStatistics,
    ExpenseStatusStatistics,
)
from src.shared.utils.money import ZERO, parse_amount, round_money

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")


def percentage_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100 at 2dp; 0 when whole is 0."""
    if whole == 0:
        return ZERO
    return round_money(part / whole * _HUNDRED)


@dataclass(frozen=True)
class Reconciliation:
    budget: Budget
    categories: list[CategorySpend]
    alert: BudgetAlert | None


class BudgetService:
    """Service for budgets and their actual-spending reconciliation."""

    def __init__(
        self,
        db: AsyncSession,
        repository: BudgetRepository | None = None,
        notifier: BudgetAlertNotifier | None = None,
    ):
        self.db = db
        self.repository = repository or BudgetRepository(db)
        self.notifier = notifier or LoggingBudgetAlertNotifier()
        self.audit = AuditService(db)

    async def create_budget(self, school_id: int, data: BudgetCreate) -> Budget:
        threshold = (
            data.alert_threshold
            if data.alert_threshold is not None
            else settings.default_budget_alert_threshold
        )
        async with atomic(self.db):
            budget = await self.repository.add_budget(
                Budget(
                    school_id=school_id,
                    budget_name=data.budget_name,
                    description=data.description,
                    budget_type=data.budget_type.value,
                    status=BudgetStatus.DRAFT.value,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    total_budgeted_amount=round_money(data.total_budgeted_amount),
                    total_actual_amount=ZERO,
                    variance_amount=round_money(data.total_budgeted_amount),
                    variance_percentage=ZERO if data.total_budgeted_amount == 0 else _HUNDRED,
                    utilization_rate=ZERO,
                    actual_spending=[],
                    alert_threshold=round_money(threshold),
                    alerts_enabled=data.alerts_enabled,
                    created_by_id=data.created_by_id,
                )
            )
            await self.audit.log(
                school_id=school_id,
                action="budget.create",
                entity_type="Budget",
                entity_id=budget.id,
                entity_identifier=budget.budget_name,
                user_id=data.created_by_id,
                new_values={"total_budgeted_amount": str(budget.total_budgeted_amount)},
            )
        return budget

    async def get_budget(self, school_id: int, budget_id: int) -> Budget:
        budget = await self.repository.get_budget(school_id, budget_id)
        if budget is None:
            raise BudgetNotFound(budget_id)
        return budget

    async def list_budgets(self, school_id: int, budget_type: str | None = None) -> list[Budget]:
        return await self.repository.list_budgets(school_id, budget_type=budget_type)

    async def approve_budget(
        self, school_id: int, budget_id: int, approved_by_id: int, notes: str | None = None
    ) -> Budget:
        """Approve a draft budget: draft -> approved."""
        async with atomic(self.db):
            budget = await self._get_for_update(school_id, budget_id)
            if budget.status != BudgetStatus.DRAFT.value:
                raise ValidationError(
                    f"Only draft budgets can be approved (status is {budget.status})"
                )

            budget.status = BudgetStatus.APPROVED.value
            budget.approved_by_id = approved_by_id
            budget.approved_at = datetime.now(timezone.utc)
            budget.approval_notes = notes
            await self.audit.log(
                school_id=school_id,
                action="budget.approve",
                entity_type="Budget",
                entity_id=budget.id,
                entity_identifier=budget.budget_name,
                user_id=approved_by_id,
                old_values={"status": BudgetStatus.DRAFT.value},
                new_values={"status": budget.status},
                comment=notes,
            )

        logger.info("Approved budget %s by user %s", budget.id, approved_by_id)
        return budget

    async def cancel_budget(
        self,
        school_id: int,
        budget_id: int,
        user_id: int | None = None,
        reason: str | None = None,
    ) -> Budget:
        """Cancel a draft or approved budget. Its expenses and figures are kept."""
        async with atomic(self.db):
            budget = await self._get_for_update(school_id, budget_id)
            if budget.is_cancelled:
                raise ValidationError("Budget is already cancelled")

            old_status = budget.status
            budget.status = BudgetStatus.CANCELLED.value
            await self.audit.log(
                school_id=school_id,
                action="budget.cancel",
                entity_type="Budget",
                entity_id=budget.id,
                entity_identifier=budget.budget_name,
                user_id=user_id,
                old_values={"status": old_status},
                new_values={"status": budget.status},
                comment=reason,
            )

        logger.info("Cancelled budget %s (was %s)", budget.id, old_status)
        return budget

    async def reconcile_budget(self, school_id: int, budget_id: int) -> Budget:
        """
        Recompute a budget's actual figures from its approved and paid expenses.

        A full recompute, so running it twice with no expense changes in
        between gives the same figures.
        """
        async with atomic(self.db):
            result = await self.recompute(school_id, budget_id)
        await self.raise_alert(result)
        return result.budget

    async def recompute(self, school_id: int, budget_id: int) -> Reconciliation:
        """Reconcile inside the caller's transaction. Alerts are left to the caller."""
        budget = await self.repository.get_budget(school_id, budget_id, for_update=True)
        if budget is None:
            raise BudgetNotFound(budget_id)

        categories = [
            CategorySpend(category_code=code, total_amount=round_money(total))
            for code, total in await self.repository.spending_by_category(school_id, budget_id)
        ]
        actual = round_money(sum((c.total_amount for c in categories), ZERO))
        budgeted = round_money(budget.total_budgeted_amount)
        variance = round_money(budgeted - actual)

        budget.total_actual_amount = actual
        budget.variance_amount = variance
        budget.variance_percentage = percentage_of(variance, budgeted)
        budget.utilization_rate = percentage_of(actual, budgeted)
        budget.actual_spending = [c.to_json() for c in categories]
        budget.last_reconciled_at = datetime.now(timezone.utc)
        await self.db.flush()

        alert = None
        if self._alerts_on(budget) and budget.utilization_rate > budget.alert_threshold:
            alert = BudgetAlert.for_rate(
                school_id=school_id,
                budget_id=budget.id,
                budget_name=budget.budget_name,
                utilization_rate=budget.utilization_rate,
                threshold=budget.alert_threshold,
            )

        logger.info(
            "Reconciled budget %s: actual %s of %s (%s%%)",
            budget.id,
            actual,
            budgeted,
            budget.utilization_rate,
        )
        return Reconciliation(budget=budget, categories=categories, alert=alert)

    async def raise_alert(self, result: Reconciliation) -> None:
        if result.alert is not None:
            await self.notifier.notify(result.alert)

    async def get_budget_utilization(self, school_id: int) -> BudgetUtilization:
        """School-wide budget figures from the last reconciliation of each budget."""
        budgets = await self.repository.list_budgets(school_id)
        total_budgeted = total_spent = ZERO
        by_type: dict[str, dict[str, Decimal]] = {}
        alerts: list[BudgetAlertResponse] = []

        for budget in budgets:
            if budget.is_cancelled:
                continue
            total_budgeted += budget.total_budgeted_amount
            total_spent += budget.total_actual_amount

            bucket = by_type.setdefault(budget.budget_type, {"budgeted": ZERO, "spent": ZERO})
            bucket["budgeted"] += budget.total_budgeted_amount
            bucket["spent"] += budget.total_actual_amount

            if self._alerts_on(budget) and budget.utilization_rate > budget.alert_threshold:
                alert = BudgetAlert.for_rate(
                    school_id=school_id,
                    budget_id=budget.id,
                    budget_name=budget.budget_name,
                    utilization_rate=budget.utilization_rate,
                    threshold=budget.alert_threshold,
                )
                alerts.append(
                    BudgetAlertResponse(
                        budget_id=alert.budget_id,
                        budget_name=alert.budget_name,
                        utilization_rate=alert.utilization_rate,
                        threshold=alert.threshold,
                        kind=alert.kind.value,
                    )
                )

        return BudgetUtilization(
            total_budgeted=round_money(total_budgeted),
            total_spent=round_money(total_spent),
            overall_utilization=percentage_of(total_spent, total_budgeted),
            by_type={
                budget_type: BudgetTypeUtilization(
                    budgeted=round_money(values["budgeted"]),
                    spent=round_money(values["spent"]),
                    utilization=percentage_of(values["spent"], values["budgeted"]),
                )
                for budget_type, values in by_type.items()
            },
            alerts=alerts,
        )

    @staticmethod
    def _alerts_on(budget: Budget) -> bool:
        return settings.budget_alerts_enabled and budget.alerts_enabled

    async def _get_for_update(self, school_id: int, budget_id: int) -> Budget:
        budget = await self.repository.get_budget(school_id, budget_id, for_update=True)
        if budget is None:
            raise BudgetNotFound(budget_id)
        return budget


class ExpenseService:
    """
    Expense approval and payment workflow.

    Every transition that can change what counts as approved-and-paid
    spending re-runs reconciliation of the expense's budget in the same
    transaction.
    """

    def __init__(
        self,
        db: AsyncSession,
        repository: BudgetRepository | None = None,
        budgets: BudgetService | None = None,
    ):
        self.db = db
        self.repository = repository or BudgetRepository(db)
        self.budgets = budgets or BudgetService(db, repository=self.repository)
        self.numbers = DocumentNumberGenerator(db)
        self.audit = AuditService(db)

    async def create_expense(self, school_id: int, data: ExpenseCreate) -> Expense:
        amount = parse_amount(data.amount)
        async with atomic(self.db):
            if data.budget_id is not None:
                budget = await self.repository.get_budget(school_id, data.budget_id)
                if budget is None:
                    raise BudgetNotFound(data.budget_id)
                if budget.is_cancelled:
                    raise ValidationError(
                        f"Budget {budget.budget_name} is cancelled", field="budget_id"
                    )

            reference = await self.numbers.expense_reference(school_id, data.expense_date)
            expense = await self.repository.add_expense(
                Expense(
                    school_id=school_id,
                    budget_id=data.budget_id,
                    category_code=data.category_code,
                    expense_reference=reference,
                    title=data.title,
                    description=data.description,
                    vendor_name=data.vendor_name,
                    amount=amount,
                    amount_paid=ZERO,
                    balance=amount,
                    expense_date=data.expense_date,
                    approval_status=ExpenseApprovalStatus.PENDING.value,
                    payment_status=ExpensePaymentStatus.PENDING.value,
                    created_by_id=data.created_by_id,
                )
            )
            await self.audit.log(
                school_id=school_id,
                action="expense.create",
                entity_type="Expense",
                entity_id=expense.id,
                entity_identifier=reference,
                user_id=data.created_by_id,
                new_values={"amount": str(amount), "budget_id": data.budget_id},
            )
        return expense

    async def get_expense(self, school_id: int, expense_id: int) -> Expense:
        expense = await self.repository.get_expense(school_id, expense_id)
        if expense is None:
            raise ExpenseNotFound(expense_id)
        return expense

    async def list_expenses(
        self,
        school_id: int,
        budget_id: int | None = None,
        approval_status: str | None = None,
        payment_status: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Expense], int]:
        return await self.repository.list_expenses(
            school_id,
            budget_id=budget_id,
            approval_status=approval_status,
            payment_status=payment_status,
            page=page,
            limit=limit,
        )

    async def get_expense_statistics(
        self, school_id: int, start_date: date | None = None, end_date: date | None = None
    ) -> ExpenseStatistics:
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must not be before start_date", field="end_date")

        by_category: dict[str, ExpenseCategoryStatistics] = {}
        by_status: dict[str, ExpenseStatusStatistics] = {}
        total_expenses = pending_approval = approved_expenses = 0
        total_amount = amount_paid = ZERO
        rows = await self.repository.expense_statistics(school_id, start_date, end_date)
        for code, approval, payment, count, amount, paid in rows:
            category = by_category.setdefault(code, ExpenseCategoryStatistics())
            category.count += count
            category.amount = round_money(category.amount + amount)
            category.paid = round_money(category.paid + paid)

            status = by_status.setdefault(f"{approval}_{payment}", ExpenseStatusStatistics())
            status.count += count
            status.amount = round_money(status.amount + amount)

            total_expenses += count
            total_amount += amount
            amount_paid += paid
            if approval == ExpenseApprovalStatus.PENDING.value:
                pending_approval += count
            elif approval == ExpenseApprovalStatus.APPROVED.value:
                approved_expenses += count

        return ExpenseStatistics(
            start_date=start_date,
            end_date=end_date,
            total_expenses=total_expenses,
            total_amount=round_money(total_amount),
            amount_paid=round_money(amount_paid),
            pending_approval=pending_approval,
            approved_expenses=approved_expenses,
            by_category=by_category,
            by_status=by_status,
        )

    async def approve_expense(
        self, school_id: int, expense_id: int, approved_by_id: int, notes: str | None = None
    ) -> Expense:
        result = None
        async with atomic(self.db):
            expense = await self._get_for_update(school_id, expense_id)
            if expense.approval_status != ExpenseApprovalStatus.PENDING.value:
                raise ValidationError("Expense is not pending approval")

            expense.approval_status = ExpenseApprovalStatus.APPROVED.value
            expense.approved_by_id = approved_by_id
            expense.approved_at = datetime.now(timezone.utc)
            expense.approval_notes = notes
            await self.db.flush()

            await self.audit.log(
                school_id=school_id,
                action="expense.approve",
                entity_type="Expense",
                entity_id=expense.id,
                entity_identifier=expense.expense_reference,
                user_id=approved_by_id,
                new_values={"approval_status": expense.approval_status},
                comment=notes,
            )
            if expense.budget_id is not None:
                result = await self.budgets.recompute(school_id, expense.budget_id)

        if result is not None:
            await self.budgets.raise_alert(result)
        return expense

    async def reject_expense(
        self, school_id: int, expense_id: int, rejected_by_id: int, reason: str
    ) -> Expense:
        # Only pending expenses can be rejected, and those never count as spending.
        async with atomic(self.db):
            expense = await self._get_for_update(school_id, expense_id)
            if expense.approval_status != ExpenseApprovalStatus.PENDING.value:
                raise ValidationError("Expense is not pending approval")

            expense.approval_status = ExpenseApprovalStatus.REJECTED.value
            expense.rejection_reason = reason
            await self.audit.log(
                school_id=school_id,
                action="expense.reject",
                entity_type="Expense",
                entity_id=expense.id,
                entity_identifier=expense.expense_reference,
                user_id=rejected_by_id,
                new_values={"approval_status": expense.approval_status},
                comment=reason,
            )
        return expense

    async def record_expense_payment(
        self,
        school_id: int,
        expense_id: int,
        amount: Decimal,
        payment_date: date,
        payment_method: str | None = None,
    ) -> Expense:
        amount = parse_amount(amount)
        result = None
        async with atomic(self.db):
            expense = await self._get_for_update(school_id, expense_id)
            if expense.approval_status == ExpenseApprovalStatus.REJECTED.value:
                raise ValidationError("Cannot pay a rejected expense")
            if expense.is_paid:
                raise ValidationError(f"Expense {expense.expense_reference} is already paid")

            expense.amount_paid = round_money(expense.amount_paid + amount)
            expense.balance = max(ZERO, round_money(expense.amount - expense.amount_paid))
            if expense.balance == 0:
                expense.payment_status = ExpensePaymentStatus.PAID.value
                expense.payment_date = payment_date
            else:
                expense.payment_status = ExpensePaymentStatus.PARTIALLY_PAID.value
            if payment_method:
                expense.payment_method = payment_method
            await self.db.flush()

            await self.audit.log(
                school_id=school_id,
                action="expense.payment",
                entity_type="Expense",
                entity_id=expense.id,
                entity_identifier=expense.expense_reference,
                new_values={
                    "amount": str(amount),
                    "amount_paid": str(expense.amount_paid),
                    "payment_status": expense.payment_status,
                },
            )
            if expense.budget_id is not None and expense.is_paid:
                result = await self.budgets.recompute(school_id, expense.budget_id)

        if result is not None:
            await self.budgets.raise_alert(result)
        return expense

    async def _get_for_update(self, school_id: int, expense_id: int) -> Expense:
        expense = await self.repository.get_expense(school_id, expense_id, for_update=True)
        if expense is None:
            raise ExpenseNotFound(expense_id)
        return expense
