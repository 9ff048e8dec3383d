"""Persistence for obligations and fee structures. Every query is school-scoped."""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.obligations.models import FeeStructure, Obligation, ObligationStatus
from src.modules.students.models import Student


class ObligationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, school_id: int, obligation_id: int, for_update: bool = False) -> Obligation | None:
        query = select(Obligation).where(
            Obligation.id == obligation_id, Obligation.school_id == school_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_for_student(self, school_id: int, student_id: int) -> list[Obligation]:
        result = await self.db.execute(
            select(Obligation)
            .where(Obligation.school_id == school_id, Obligation.student_id == student_id)
            .order_by(Obligation.category_code, Obligation.id)
        )
        return list(result.scalars().all())

    async def list_outstanding_for_student(
        self, school_id: int, student_id: int, for_update: bool = False
    ) -> list[Obligation]:
        """Obligations with a positive balance, locked when for_update is set. Unordered."""
        query = (
            select(Obligation)
            .where(
                Obligation.school_id == school_id,
                Obligation.student_id == student_id,
                Obligation.balance > 0,
            )
            .order_by(Obligation.id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_outstanding(
        self, school_id: int, overdue_only: bool = False, category_code: str | None = None
    ) -> list[tuple[Obligation, Student]]:
        """Unpaid obligations across the school with their students, by student name."""
        query = (
            select(Obligation, Student)
            .join(
                Student,
                (Student.id == Obligation.student_id) & (Student.school_id == Obligation.school_id),
            )
            .where(
                Obligation.school_id == school_id,
                Obligation.balance > 0,
                Obligation.status != ObligationStatus.PAID.value,
            )
        )
        if overdue_only:
            query = query.where(Obligation.is_overdue.is_(True))
        if category_code:
            query = query.where(Obligation.category_code == category_code)

        result = await self.db.execute(
            query.order_by(
                Student.last_name, Student.first_name, Obligation.due_date, Obligation.id
            )
        )
        return [(obligation, student) for obligation, student in result.all()]

    async def list_sweep_candidates(self, school_id: int, as_of: date) -> list[Obligation]:
        result = await self.db.execute(
            select(Obligation)
            .where(
                Obligation.school_id == school_id,
                Obligation.balance > 0,
                Obligation.due_date.is_not(None),
                Obligation.due_date < as_of,
                Obligation.status != ObligationStatus.PAID.value,
            )
            .order_by(Obligation.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def exists_for_structure(self, school_id: int, student_id: int, fee_structure_id: int) -> bool:
        result = await self.db.execute(
            select(Obligation.id).where(
                Obligation.school_id == school_id,
                Obligation.student_id == student_id,
                Obligation.fee_structure_id == fee_structure_id,
            )
        )
        return result.first() is not None

    async def add(self, obligation: Obligation) -> Obligation:
        self.db.add(obligation)
        await self.db.flush()
        return obligation

    # --- Fee structures ---

    async def get_fee_structures(self, school_id: int, ids: list[int]) -> list[FeeStructure]:
        result = await self.db.execute(
            select(FeeStructure)
            .where(
                FeeStructure.school_id == school_id,
                FeeStructure.id.in_(ids),
                FeeStructure.is_active.is_(True),
            )
            .order_by(FeeStructure.id)
        )
        return list(result.scalars().all())

    async def add_fee_structure(self, structure: FeeStructure) -> FeeStructure:
        self.db.add(structure)
        await self.db.flush()
        return structure
