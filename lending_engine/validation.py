"""
Validation Module

Business-limit checks applied at the servicing boundary. Structural checks
(positive principal, known frequency, ...) live in the model constructors;
the limits here come from configuration.
"""

from decimal import Decimal
from typing import List, Optional

from .config import EngineConfig, get_config
from .exceptions import InvalidInputError
from .models import LoanTerms, PaymentMethod
from .money import ZERO, to_decimal
from .logging_config import get_logger

logger = get_logger("lending.validation")


def validate_terms(terms: LoanTerms, config: Optional[EngineConfig] = None) -> List[str]:
    """
    Check loan terms against configured business limits

    Returns:
        List of error messages, empty when the terms are acceptable
    """
    config = config or get_config()
    errors = []

    if terms.principal > Decimal(config.max_principal):
        errors.append("Requested amount exceeds maximum limit")

    if terms.term_days > config.max_term_days:
        errors.append(f"Loan term cannot exceed {config.max_term_days} days")

    if terms.annual_interest_rate_percent > Decimal(config.max_annual_rate_percent):
        errors.append(
            f"Interest rate seems unreasonably high (>{config.max_annual_rate_percent}%)"
        )

    if terms.processing_fee_percent > Decimal('100'):
        errors.append("Processing fee percentage must be between 0 and 100")

    if terms.max_penalty_percent > Decimal('100'):
        errors.append("Maximum penalty percentage must be between 0 and 100")

    return errors


def validate_payment_request(
    amount,
    method,
    reference: Optional[str] = None,
    config: Optional[EngineConfig] = None
) -> List[str]:
    """
    Check an incoming payment before it reaches the allocator

    Amounts above the outstanding balance are left to the allocator, which
    rejects them with OverAllocationError.

    Args:
        amount: Payment amount
        method: Payment method name or PaymentMethod
        reference: External reference number
        config: Engine configuration

    Returns:
        List of error messages, empty when the request is acceptable
    """
    config = config or get_config()
    errors = []

    try:
        amount = to_decimal(amount)
    except ValueError:
        errors.append("Payment amount must be a decimal number")
        amount = None

    if amount is not None:
        if amount <= ZERO:
            errors.append("Payment amount must be greater than 0")

    method_name = method.value if isinstance(method, PaymentMethod) else method
    if not method_name:
        errors.append("Payment method is required")
    elif method_name not in config.payment_methods:
        errors.append(
            f"Invalid payment method. Valid methods: {', '.join(config.payment_methods)}"
        )

    if reference and len(reference) > config.max_reference_length:
        errors.append(f"Reference number cannot exceed {config.max_reference_length} characters")

    return errors


def require_valid(errors: List[str], context: str = "") -> None:
    """Raise InvalidInputError when any validation error was collected"""
    if errors:
        logger.warning(f"Validation errors in {context}: {errors}")
        raise InvalidInputError(errors)
