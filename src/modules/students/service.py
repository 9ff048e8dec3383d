"""Student directory lookups used to validate ledger callers."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import StudentNotFound
from src.modules.students.models import Student


class StudentDirectory:
    """Resolves student ids within a single school."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_student(self, school_id: int, student_id: int) -> Student | None:
        result = await self.db.execute(
            select(Student).where(Student.id == student_id, Student.school_id == school_id)
        )
        return result.scalar_one_or_none()

    async def require_student(self, school_id: int, student_id: int) -> Student:
        """Return the student or raise StudentNotFound (also for another school's student)."""
        student = await self.get_student(school_id, student_id)
        if student is None:
            raise StudentNotFound(student_id)
        return student
