"""Overdue Sweeper: batch recompute of overdue bookkeeping on obligations."""

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import atomic
from src.modules.obligations.repository import ObligationRepository

logger = logging.getLogger(__name__)


class OverdueSweeper:
    def __init__(self, db: AsyncSession, repository: ObligationRepository | None = None):
        self.db = db
        self.repository = repository or ObligationRepository(db)

    async def sweep_overdue(self, school_id: int, as_of: date | None = None) -> int:
        """
        Flag unpaid obligations past their due date and refresh overdue_days.

        Only is_overdue and overdue_days are written; balances are never
        touched, no obligation is un-flagged here and overdue_days never
        decreases. Re-running on the same day gives the same result.
        """
        as_of = as_of or date.today()
        async with atomic(self.db):
            candidates = await self.repository.list_sweep_candidates(school_id, as_of)
            for obligation in candidates:
                obligation.is_overdue = True
                obligation.overdue_days = max(
                    obligation.overdue_days, (as_of - obligation.due_date).days
                )
            await self.db.flush()

        logger.info(
            "Overdue sweep for school %s as of %s updated %d obligations",
            school_id,
            as_of,
            len(candidates),
        )
        return len(candidates)
