from src.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    DuplicateError,
    ObligationNotFound,
    PlanNotFound,
    InstallmentNotFound,
    PaymentNotFound,
    BudgetNotFound,
    ExpenseNotFound,
    StudentNotFound,
    InvalidAmount,
    ConcurrentModificationConflict,
    DuplicatePaymentReference,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "DuplicateError",
    "ObligationNotFound",
    "PlanNotFound",
    "InstallmentNotFound",
    "PaymentNotFound",
    "BudgetNotFound",
    "ExpenseNotFound",
    "StudentNotFound",
    "InvalidAmount",
    "ConcurrentModificationConflict",
    "DuplicatePaymentReference",
]
