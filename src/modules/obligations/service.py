"""Obligation Store: balances for student fee obligations."""

import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditService
from src.core.database.session import atomic
from src.core.exceptions import ObligationNotFound, ValidationError
from src.modules.obligations.models import FeeStructure, Obligation, ObligationStatus
from src.modules.obligations.repository import ObligationRepository
from src.modules.obligations.schemas import (
    CategoryFeeSummary,
    FeeStructureCreate,
    ObligationCreate,
    OutstandingFeeResponse,
    StudentFeeSummary,
)
from src.modules.obligations.status import (
    allocation_priority,
    derive_obligation_status,
    final_amount_for,
    obligation_balance,
)
from src.modules.students.service import StudentDirectory
from src.shared.utils.money import ZERO, parse_amount, round_money

logger = logging.getLogger(__name__)


class ObligationStore:
    """Reads and mutates obligations for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        repository: ObligationRepository | None = None,
        students: StudentDirectory | None = None,
    ):
        self.db = db
        self.repository = repository or ObligationRepository(db)
        self.students = students or StudentDirectory(db)
        self.audit = AuditService(db)

    # --- Reads ---

    async def get_obligation(self, school_id: int, obligation_id: int) -> Obligation:
        obligation = await self.repository.get(school_id, obligation_id)
        if obligation is None:
            raise ObligationNotFound(obligation_id)
        return obligation

    async def list_for_student(self, school_id: int, student_id: int) -> list[Obligation]:
        return await self.repository.list_for_student(school_id, student_id)

    async def find_outstanding_for_student(
        self, school_id: int, student_id: int, for_update: bool = False
    ) -> list[Obligation]:
        """Obligations with balance > 0 in the order payments are applied to them."""
        obligations = await self.repository.list_outstanding_for_student(
            school_id, student_id, for_update=for_update
        )
        return sorted(obligations, key=allocation_priority)

    async def list_outstanding(
        self, school_id: int, overdue_only: bool = False, category_code: str | None = None
    ) -> list[OutstandingFeeResponse]:
        """Every unpaid obligation in the school, ordered by student name."""
        rows = await self.repository.list_outstanding(
            school_id, overdue_only=overdue_only, category_code=category_code
        )
        return [
            OutstandingFeeResponse(
                obligation_id=obligation.id,
                student_id=student.id,
                student_number=student.student_number,
                student_name=student.full_name,
                description=obligation.description,
                category_code=obligation.category_code,
                final_amount=obligation.final_amount,
                amount_paid=obligation.amount_paid,
                balance=obligation.balance,
                due_date=obligation.due_date,
                status=obligation.status,
                is_overdue=obligation.is_overdue,
                overdue_days=obligation.overdue_days,
            )
            for obligation, student in rows
        ]

    # --- Mutations inside the caller's transaction ---

    async def apply_payment(
        self,
        school_id: int,
        obligation_id: int,
        amount: Decimal,
        paid_on: date | None = None,
    ) -> Obligation:
        """
        Add a payment amount to an obligation.

        Does not commit: the caller owns the transaction. The row is locked
        for the rest of that transaction and the version column guards the
        write, so two allocations can never both spend the same balance.
        """
        amount = parse_amount(amount)
        obligation = await self.repository.get(school_id, obligation_id, for_update=True)
        if obligation is None:
            raise ObligationNotFound(obligation_id)

        obligation.amount_paid = round_money(obligation.amount_paid + amount)
        self._rebalance(obligation)
        obligation.last_payment_date = paid_on or date.today()
        if obligation.balance == 0:
            obligation.is_overdue = False
            obligation.overdue_days = 0
        if obligation.overpaid_amount > 0:
            logger.warning(
                "Obligation %s overpaid by %s", obligation.id, obligation.overpaid_amount
            )

        await self.db.flush()
        return obligation

    # --- Top-level operations (commit) ---

    async def apply_discount(
        self,
        school_id: int,
        obligation_id: int,
        amount: Decimal,
        discount_type: str,
        reason: str | None = None,
        approver_id: int | None = None,
    ) -> Obligation:
        """
        Apply a discount, keeping payments already made.

        A discount larger than the remaining balance leaves the obligation
        overpaid; that is logged and recorded in the audit log.
        """
        amount = parse_amount(amount)
        async with atomic(self.db):
            obligation = await self.repository.get(school_id, obligation_id, for_update=True)
            if obligation is None:
                raise ObligationNotFound(obligation_id)

            old_values = {
                "discount_amount": str(obligation.discount_amount),
                "final_amount": str(obligation.final_amount),
                "balance": str(obligation.balance),
            }

            obligation.discount_amount = round_money(obligation.discount_amount + amount)
            obligation.discount_type = discount_type
            obligation.discount_reason = reason
            obligation.approved_by_id = approver_id
            self._rebalance(obligation)
            if obligation.balance == 0:
                obligation.is_overdue = False
                obligation.overdue_days = 0
            await self.db.flush()

            await self.audit.log(
                school_id=school_id,
                action="obligation.discount",
                entity_type="Obligation",
                entity_id=obligation.id,
                user_id=approver_id,
                old_values=old_values,
                new_values={
                    "discount_amount": str(obligation.discount_amount),
                    "final_amount": str(obligation.final_amount),
                    "balance": str(obligation.balance),
                    "discount_type": discount_type,
                },
                comment=reason,
            )

            excess = obligation.overpaid_amount
            if excess > 0:
                logger.warning(
                    "Discount on obligation %s exceeds remaining balance by %s",
                    obligation.id,
                    excess,
                )
                await self.audit.log(
                    school_id=school_id,
                    action="obligation.over_discount",
                    entity_type="Obligation",
                    entity_id=obligation.id,
                    user_id=approver_id,
                    new_values={"overpaid_amount": str(excess)},
                )

        logger.info("Discount %s applied to obligation %s", amount, obligation_id)
        return obligation

    async def create_fee_structure(self, school_id: int, data: FeeStructureCreate) -> FeeStructure:
        async with atomic(self.db):
            structure = await self.repository.add_fee_structure(
                FeeStructure(
                    school_id=school_id,
                    name=data.name,
                    category_code=data.category_code,
                    amount=round_money(data.amount),
                    due_date=data.due_date,
                    is_active=True,
                )
            )
        return structure

    async def create_obligation(self, school_id: int, data: ObligationCreate) -> Obligation:
        """Materialise one obligation for a student."""
        original = parse_amount(data.original_amount)
        async with atomic(self.db):
            await self.students.require_student(school_id, data.student_id)
            obligation = await self.repository.add(
                self._new_obligation(
                    school_id=school_id,
                    student_id=data.student_id,
                    description=data.description,
                    category_code=data.category_code,
                    original_amount=original,
                    additional_charges=round_money(data.additional_charges),
                    due_date=data.due_date,
                    fee_structure_id=data.fee_structure_id,
                )
            )
            await self.audit.log(
                school_id=school_id,
                action="obligation.create",
                entity_type="Obligation",
                entity_id=obligation.id,
                new_values={
                    "student_id": data.student_id,
                    "final_amount": str(obligation.final_amount),
                },
            )
        return obligation

    async def generate_for_student(
        self, school_id: int, student_id: int, fee_structure_ids: list[int]
    ) -> list[Obligation]:
        """Materialise fee structures for a student, skipping any already materialised."""
        generated: list[Obligation] = []
        async with atomic(self.db):
            await self.students.require_student(school_id, student_id)
            structures = await self.repository.get_fee_structures(school_id, fee_structure_ids)
            if not structures:
                raise ValidationError("No active fee structures found", field="fee_structure_ids")

            for structure in structures:
                if await self.repository.exists_for_structure(school_id, student_id, structure.id):
                    continue
                obligation = await self.repository.add(
                    self._new_obligation(
                        school_id=school_id,
                        student_id=student_id,
                        description=structure.name,
                        category_code=structure.category_code,
                        original_amount=structure.amount,
                        additional_charges=ZERO,
                        due_date=structure.due_date,
                        fee_structure_id=structure.id,
                    )
                )
                generated.append(obligation)

            if generated:
                await self.audit.log(
                    school_id=school_id,
                    action="obligation.generate",
                    entity_type="Student",
                    entity_id=student_id,
                    new_values={"obligation_ids": [o.id for o in generated]},
                )

        logger.info(
            "Generated %d obligations for student %s in school %s",
            len(generated),
            student_id,
            school_id,
        )
        return generated

    async def get_student_summary(self, school_id: int, student_id: int) -> StudentFeeSummary:
        await self.students.require_student(school_id, student_id)
        obligations = await self.repository.list_for_student(school_id, student_id)

        total_fees = total_paid = total_balance = total_discount = overdue_amount = ZERO
        by_category: OrderedDict[str, dict[str, Decimal]] = OrderedDict()

        for obligation in obligations:
            total_fees += obligation.final_amount
            total_paid += obligation.amount_paid
            total_balance += obligation.balance
            total_discount += obligation.discount_amount
            if obligation.is_overdue and obligation.balance > 0:
                overdue_amount += obligation.balance

            bucket = by_category.setdefault(
                obligation.category_code, {"amount": ZERO, "paid": ZERO}
            )
            bucket["amount"] += obligation.final_amount
            bucket["paid"] += obligation.amount_paid

        if total_balance <= 0:
            payment_status = ObligationStatus.PAID.value
        elif total_paid > 0:
            payment_status = ObligationStatus.PARTIAL.value
        elif overdue_amount > 0:
            payment_status = "overdue"
        else:
            payment_status = ObligationStatus.PENDING.value

        categories = [
            CategoryFeeSummary(
                category_code=code,
                amount=round_money(values["amount"]),
                paid=round_money(values["paid"]),
                balance=obligation_balance(values["amount"], values["paid"]),
                status=derive_obligation_status(values["amount"], values["paid"]).value,
            )
            for code, values in by_category.items()
        ]

        return StudentFeeSummary(
            student_id=student_id,
            total_fees=round_money(total_fees),
            total_paid=round_money(total_paid),
            total_balance=round_money(total_balance),
            total_discount=round_money(total_discount),
            overdue_amount=round_money(overdue_amount),
            payment_status=payment_status,
            categories=categories,
        )

    # --- Helpers ---

    @staticmethod
    def _rebalance(obligation: Obligation) -> None:
        obligation.final_amount = final_amount_for(
            obligation.original_amount,
            obligation.discount_amount,
            obligation.additional_charges,
        )
        obligation.balance = obligation_balance(obligation.final_amount, obligation.amount_paid)
        obligation.status = derive_obligation_status(
            obligation.final_amount, obligation.amount_paid
        ).value

    @staticmethod
    def _new_obligation(
        *,
        school_id: int,
        student_id: int,
        description: str,
        category_code: str,
        original_amount: Decimal,
        additional_charges: Decimal,
        due_date: date | None,
        fee_structure_id: int | None,
    ) -> Obligation:
        final = final_amount_for(original_amount, ZERO, additional_charges)
        return Obligation(
            school_id=school_id,
            student_id=student_id,
            fee_structure_id=fee_structure_id,
            description=description,
            category_code=category_code,
            original_amount=round_money(original_amount),
            discount_amount=ZERO,
            additional_charges=additional_charges,
            final_amount=final,
            amount_paid=ZERO,
            balance=final,
            due_date=due_date,
            status=derive_obligation_status(final, ZERO).value,
            is_overdue=False,
            overdue_days=0,
        )
