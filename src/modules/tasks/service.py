"""Periodic ledger maintenance: overdue sweeps and plan defaulting."""

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.obligations.sweeper import OverdueSweeper
from src.modules.payment_plans.service import PaymentPlanService

logger = logging.getLogger(__name__)


class LedgerTasks:
    def __init__(self, db: AsyncSession):
        self.sweeper = OverdueSweeper(db)
        self.plans = PaymentPlanService(db)

    async def run_daily(self, school_id: int, as_of: date | None = None) -> dict[str, int]:
        as_of = as_of or date.today()
        result = {
            "overdue_obligations": await self.sweeper.sweep_overdue(school_id, as_of),
            "overdue_installments": await self.plans.sweep_overdue_installments(school_id, as_of),
        }
        logger.info("Daily ledger tasks for school %s as of %s: %s", school_id, as_of, result)
        return result

    async def run_weekly(self, school_id: int, threshold: int | None = None) -> dict[str, int]:
        result = {"defaulted_plans": await self.plans.mark_defaulted_plans(school_id, threshold)}
        logger.info("Weekly ledger tasks for school %s: %s", school_id, result)
        return result
