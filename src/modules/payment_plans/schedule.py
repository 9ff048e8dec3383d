"""Deterministic installment schedule generation. No I/O."""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_DOWN, Decimal

from src.modules.payment_plans.models import PlanFrequency
from src.shared.utils.money import round_money

_DAY_STEPS = {
    PlanFrequency.WEEKLY: 7,
    PlanFrequency.BI_WEEKLY: 14,
}
_MONTH_STEPS = {
    PlanFrequency.MONTHLY: 1,
    PlanFrequency.QUARTERLY: 3,
}


@dataclass(frozen=True)
class ScheduledInstallment:
    installment_number: int
    amount: Decimal
    due_date: date
    grace_period_end: date


def add_months(start: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the end of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def split_amount(total_amount: Decimal, number_of_installments: int) -> Decimal:
    """
    Even per-installment amount, rounded down to the cent.

    Rounding down leaves the last installment with the remainder, which is
    never smaller than the other installments.
    """
    return (Decimal(total_amount) / number_of_installments).quantize(
        Decimal("0.01"), rounding=ROUND_DOWN
    )


def due_date_for(start_date: date, frequency: PlanFrequency, index: int) -> date:
    """Due date of the installment `index` steps (0-based) after start_date."""
    frequency = PlanFrequency(frequency)
    if frequency in _DAY_STEPS:
        return start_date + timedelta(days=_DAY_STEPS[frequency] * index)
    # Months are stepped from the start date so 31 Jan -> 29 Feb -> 31 Mar.
    return add_months(start_date, _MONTH_STEPS[frequency] * index)


def generate_installments(
    start_date: date,
    number_of_installments: int,
    installment_amount: Decimal,
    frequency: PlanFrequency | str,
    grace_period_days: int,
    total_amount: Decimal | None = None,
) -> list[ScheduledInstallment]:
    """
    Build the schedule: one installment per step starting at start_date.

    Every installment is `installment_amount`. When `total_amount` is given
    the last installment takes whatever is left, so rounding never leaves the
    schedule short of or over the total.
    """
    if number_of_installments < 1:
        raise ValueError("number_of_installments must be at least 1")
    if grace_period_days < 0:
        raise ValueError("grace_period_days cannot be negative")

    amount = round_money(installment_amount)
    if amount <= 0:
        raise ValueError("installment_amount must be positive")
    schedule: list[ScheduledInstallment] = []
    for index in range(number_of_installments):
        number = index + 1
        this_amount = amount
        if total_amount is not None and number == number_of_installments:
            this_amount = round_money(total_amount - amount * (number_of_installments - 1))
            if this_amount <= 0:
                raise ValueError(
                    f"{number_of_installments} installments of {amount} exceed the total {total_amount}"
                )
        due = due_date_for(start_date, frequency, index)
        schedule.append(
            ScheduledInstallment(
                installment_number=number,
                amount=this_amount,
                due_date=due,
                grace_period_end=due + timedelta(days=grace_period_days),
            )
        )
    return schedule
