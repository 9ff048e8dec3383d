"""Typed reconciliation records and the budget alert hook."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

logger = logging.getLogger(__name__)


class BudgetAlertKind(StrEnum):
    APPROACHING_LIMIT = "approaching_limit"
    OVER_BUDGET = "over_budget"


@dataclass(frozen=True)
class CategorySpend:
    """Approved and paid spending for one expense category of a budget."""

    category_code: str
    total_amount: Decimal

    def to_json(self) -> dict:
        return {"category_code": self.category_code, "total_amount": str(self.total_amount)}

    @classmethod
    def from_json(cls, data: dict) -> "CategorySpend":
        return cls(category_code=data["category_code"], total_amount=Decimal(data["total_amount"]))


@dataclass(frozen=True)
class BudgetAlert:
    school_id: int
    budget_id: int
    budget_name: str
    utilization_rate: Decimal
    threshold: Decimal
    kind: BudgetAlertKind

    @classmethod
    def for_rate(
        cls,
        school_id: int,
        budget_id: int,
        budget_name: str,
        utilization_rate: Decimal,
        threshold: Decimal,
    ) -> "BudgetAlert":
        kind = (
            BudgetAlertKind.OVER_BUDGET
            if utilization_rate >= 100
            else BudgetAlertKind.APPROACHING_LIMIT
        )
        return cls(
            school_id=school_id,
            budget_id=budget_id,
            budget_name=budget_name,
            utilization_rate=utilization_rate,
            threshold=threshold,
            kind=kind,
        )


class BudgetAlertNotifier(Protocol):
    async def notify(self, alert: BudgetAlert) -> None: ...


class LoggingBudgetAlertNotifier:
    """Default notifier: writes the alert to the log."""

    async def notify(self, alert: BudgetAlert) -> None:
        logger.warning(
            "Budget %s (%s) in school %s at %s%% utilization, threshold %s%%: %s",
            alert.budget_id,
            alert.budget_name,
            alert.school_id,
            alert.utilization_rate,
            alert.threshold,
            alert.kind.value,
        )
