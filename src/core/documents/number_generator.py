from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.models import DocumentSequence


class DocumentNumberGenerator:
    """
    Generates per-school, per-period sequential document numbers.

    Examples:
        PAY2601150001     payment reference (daily sequence)
        RCT/2026/000042   receipt number (yearly sequence)
        EXP26010007       expense reference (monthly sequence)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_value(self, school_id: int, prefix: str, period: str) -> int:
        """
        Increment and return the counter for (school, prefix, period).

        Uses SELECT FOR UPDATE so concurrent inserts never share a number.
        """
        stmt = (
            select(DocumentSequence)
            .where(
                DocumentSequence.school_id == school_id,
                DocumentSequence.prefix == prefix,
                DocumentSequence.period == period,
            )
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        sequence = result.scalar_one_or_none()

        if sequence is None:
            sequence = DocumentSequence(school_id=school_id, prefix=prefix, period=period, last_number=0)
            self.session.add(sequence)
            await self.session.flush()

            # Re-fetch with lock
            result = await self.session.execute(stmt)
            sequence = result.scalar_one()

        sequence.last_number += 1
        await self.session.flush()

        return sequence.last_number

    async def payment_reference(self, school_id: int, on: date) -> str:
        seq = await self.next_value(school_id, "PAY", on.isoformat())
        return f"PAY{on:%y%m%d}{seq:04d}"

    async def receipt_number(self, school_id: int, on: date) -> str:
        seq = await self.next_value(school_id, "RCT", str(on.year))
        return f"RCT/{on.year}/{seq:06d}"

    async def expense_reference(self, school_id: int, on: date) -> str:
        seq = await self.next_value(school_id, "EXP", f"{on:%Y-%m}")
        return f"EXP{on:%y%m}{seq:04d}"
