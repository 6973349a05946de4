"""Custom exception hierarchy for the lending engine."""

from decimal import Decimal
from typing import List, Optional


class LendingEngineError(Exception):
    """Base exception for all lending engine errors."""


class InvalidInputError(LendingEngineError, ValueError):
    """Raised when loan terms or call arguments are rejected before calculation."""

    def __init__(self, errors: List[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class OverAllocationError(LendingEngineError, ValueError):
    """Raised when a payment exceeds the outstanding balance it would be allocated to."""

    def __init__(self, amount: Decimal, total_outstanding: Decimal):
        self.amount = amount
        self.total_outstanding = total_outstanding
        super().__init__(
            f"Payment amount {amount} exceeds outstanding balance {total_outstanding}"
        )


class InvalidPenaltyTargetError(LendingEngineError, ValueError):
    """Raised when a penalty is requested against an installment that is not overdue."""

    def __init__(self, installment_number: int, status: str):
        self.installment_number = installment_number
        self.status = status
        super().__init__(
            f"Installment {installment_number} is {status}, penalties apply only to overdue installments"
        )


class ScheduleIntegrityError(LendingEngineError, AssertionError):
    """
    Raised when a generated schedule does not sum to the total repayable.

    This is a programming defect, not a user error. It is never caught
    inside the engine.
    """

    def __init__(self, scheduled_total: Decimal, expected_total: Decimal):
        self.scheduled_total = scheduled_total
        self.expected_total = expected_total
        super().__init__(
            f"Schedule totals {scheduled_total} but {expected_total} is repayable"
        )


class LoanNotFoundError(LendingEngineError, KeyError):
    """Raised when a referenced loan does not exist."""

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class PaymentNotFoundError(LendingEngineError, KeyError):
    """Raised when a referenced payment does not exist on the loan."""

    def __init__(self, payment_id: str, loan_id: Optional[str] = None):
        self.payment_id = payment_id
        self.loan_id = loan_id
        suffix = f" on loan {loan_id}" if loan_id else ""
        super().__init__(f"Payment {payment_id} not found{suffix}")

    def __str__(self) -> str:
        return self.args[0]


class DuplicatePaymentError(LendingEngineError, ValueError):
    """Raised when a payment id is recorded twice or a payment is reversed twice."""
