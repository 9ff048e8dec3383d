from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class DuplicateError(AppException):
    """Duplicate resource."""

    def __init__(self, resource: str, field: str, value: Any):
        message = f"{resource} with {field}={value} already exists"
        super().__init__(message=message, status_code=409, details={"field": field, "value": value})


# --- Ledger errors ---


class ObligationNotFound(NotFoundError):
    def __init__(self, obligation_id: Any = None):
        super().__init__("Obligation", obligation_id)


class PlanNotFound(NotFoundError):
    def __init__(self, plan_id: Any = None):
        super().__init__("Payment plan", plan_id)


class InstallmentNotFound(NotFoundError):
    def __init__(self, installment_id: Any = None):
        super().__init__("Installment", installment_id)


class PaymentNotFound(NotFoundError):
    def __init__(self, payment_id: Any = None):
        super().__init__("Payment", payment_id)


class BudgetNotFound(NotFoundError):
    def __init__(self, budget_id: Any = None):
        super().__init__("Budget", budget_id)


class ExpenseNotFound(NotFoundError):
    def __init__(self, expense_id: Any = None):
        super().__init__("Expense", expense_id)


class StudentNotFound(NotFoundError):
    def __init__(self, student_id: Any = None):
        super().__init__("Student", student_id)


class InvalidAmount(ValidationError):
    """Amount is non-numeric or not strictly positive."""

    def __init__(self, value: Any = None):
        super().__init__(f"Invalid amount: {value!r}. Amount must be a positive number", field="amount")


class ConcurrentModificationConflict(AppException):
    """A balance row changed underneath us; the whole operation may be retried."""

    def __init__(self, message: str = "Record was modified concurrently, retry the operation"):
        super().__init__(message=message, status_code=409)


class DuplicatePaymentReference(DuplicateError):
    """A payment with this gateway transaction reference already exists for the school."""

    def __init__(self, transaction_reference: str):
        self.transaction_reference = transaction_reference
        super().__init__("Payment", "transaction_reference", transaction_reference)
