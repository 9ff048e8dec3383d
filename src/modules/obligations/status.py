"""Pure balance and status derivation for obligations."""

from datetime import date
from decimal import Decimal

from src.modules.obligations.models import ObligationStatus
from src.shared.utils.money import ZERO, round_money


def obligation_balance(final_amount: Decimal, amount_paid: Decimal) -> Decimal:
    """Remaining balance, clamped at zero."""
    balance = round_money(final_amount - amount_paid)
    return balance if balance > 0 else ZERO


def derive_obligation_status(final_amount: Decimal, amount_paid: Decimal) -> ObligationStatus:
    """
    Map (final_amount, amount_paid) to a status.

        balance == 0                    -> paid
        0 < amount_paid < final_amount  -> partial
        otherwise                       -> pending
    """
    if obligation_balance(final_amount, amount_paid) == 0:
        return ObligationStatus.PAID
    if 0 < amount_paid < final_amount:
        return ObligationStatus.PARTIAL
    return ObligationStatus.PENDING


def final_amount_for(
    original_amount: Decimal, discount_amount: Decimal, additional_charges: Decimal
) -> Decimal:
    final = round_money(original_amount - discount_amount + additional_charges)
    return final if final > 0 else ZERO


def allocation_priority(obligation) -> tuple:
    """
    Sort key for applying payments: overdue first, then earliest due date
    (undated last), then creation order and id for determinism.
    """
    return (
        not obligation.is_overdue,
        obligation.due_date is None,
        obligation.due_date or date.max,
        obligation.created_at,
        obligation.id,
    )
