"""
Loan Data Model Module

Enums and dataclasses shared by every calculator: loan terms, installments,
payments, allocations, penalties and the derived balance snapshot. Amounts
are Decimal; records convert to and from plain dicts for the persistence
collaborator.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, List, Optional
from enum import Enum
import math

from .money import ZERO, to_decimal, round_money
from .exceptions import InvalidInputError

DAYS_PER_MONTH = 30


class InterestType(Enum):
    """Interest conventions"""
    FLAT = "flat"            # Simple interest on the original principal
    REDUCING = "reducing"    # Average-balance approximation of declining principal
    COMPOUND = "compound"    # Compounded over the term

    @classmethod
    def from_value(cls, value) -> 'InterestType':
        """Resolve a name; unknown conventions fall back to FLAT"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FLAT

    @classmethod
    def is_known(cls, value) -> bool:
        if isinstance(value, cls):
            return True
        return str(value).strip().lower() in {member.value for member in cls}


class PaymentFrequency(Enum):
    """Installment frequency with its fixed day step"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def step_days(self) -> int:
        """Days between consecutive due dates"""
        return {
            PaymentFrequency.DAILY: 1,
            PaymentFrequency.WEEKLY: 7,
            PaymentFrequency.MONTHLY: DAYS_PER_MONTH
        }[self]

    def installment_count(self, term_days: int) -> int:
        """Number of installments covering the term"""
        return max(1, math.ceil(term_days / self.step_days))


class CompoundingFrequency(Enum):
    """How often compound interest compounds"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"

    @property
    def periods_per_year(self) -> int:
        return {
            CompoundingFrequency.DAILY: 365,
            CompoundingFrequency.WEEKLY: 52,
            CompoundingFrequency.MONTHLY: 12,
            CompoundingFrequency.QUARTERLY: 4,
            CompoundingFrequency.ANNUALLY: 1
        }[self]


class InterestAccrualMethod(Enum):
    """When interest becomes owed"""
    UPFRONT = "upfront"  # Full scheduled interest owed from disbursement
    DAILY = "daily"      # Interest accrues with elapsed days


class LatePenaltyType(Enum):
    """How late_penalty_value is interpreted"""
    PERCENT_PER_DAY = "percent_per_day"  # Percent of installment per effective day
    FIXED_PER_DAY = "fixed_per_day"      # Absolute amount per effective day


class InstallmentStatus(Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentStatus(Enum):
    COMPLETED = "completed"
    REVERSED = "reversed"


class PaymentMethod(Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHECK = "check"
    ONLINE = "online"
    MOBILE_MONEY = "mobile_money"


class AllocationBucket(Enum):
    """Balance buckets a payment can be applied to"""
    PENALTY = "penalty"
    FEE = "fee"
    INTEREST = "interest"
    PRINCIPAL = "principal"


DEFAULT_ALLOCATION_ORDER = (
    AllocationBucket.PENALTY,
    AllocationBucket.FEE,
    AllocationBucket.INTEREST,
    AllocationBucket.PRINCIPAL
)


class PenaltyStatus(Enum):
    ACTIVE = "active"
    WAIVED = "waived"


def _coerce_enum(enum_cls, value, label: str, errors: List[str]):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        errors.append(f"Unknown {label} '{value}'. Valid values: {valid}")
        return None


def _coerce_decimal(value, label: str, errors: List[str]) -> Optional[Decimal]:
    try:
        return to_decimal(value)
    except ValueError:
        errors.append(f"{label} must be a decimal number")
        return None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class LoanTerms:
    """
    Loan terms fixed at disbursement.

    Either term_days or term_months must be given; months convert at 30 days.
    Rates are percentages (18 means 18%). late_penalty_value is a percent of
    the installment per day or an absolute amount per day depending on
    late_penalty_type.
    """
    principal: Decimal
    annual_interest_rate_percent: Decimal
    term_days: Optional[int] = None
    term_months: Optional[int] = None
    interest_type: InterestType = InterestType.FLAT
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    processing_fee_percent: Decimal = ZERO
    platform_fee: Decimal = ZERO
    late_penalty_type: LatePenaltyType = LatePenaltyType.PERCENT_PER_DAY
    late_penalty_value: Decimal = ZERO
    grace_period_days: int = 0
    max_penalty_percent: Decimal = ZERO
    interest_accrual: InterestAccrualMethod = InterestAccrualMethod.UPFRONT
    compounding_frequency: CompoundingFrequency = CompoundingFrequency.ANNUALLY

    def __post_init__(self):
        errors: List[str] = []

        decimals = {
            'principal': 'Principal',
            'annual_interest_rate_percent': 'Annual interest rate',
            'processing_fee_percent': 'Processing fee percent',
            'platform_fee': 'Platform fee',
            'late_penalty_value': 'Late penalty value',
            'max_penalty_percent': 'Maximum penalty percent'
        }
        for name, label in decimals.items():
            value = _coerce_decimal(getattr(self, name), label, errors)
            if value is not None:
                object.__setattr__(self, name, value)

        # Unknown interest conventions are a documented fallback, not an error
        object.__setattr__(self, 'interest_type', InterestType.from_value(self.interest_type))

        enums = {
            'payment_frequency': (PaymentFrequency, 'payment frequency'),
            'late_penalty_type': (LatePenaltyType, 'late penalty type'),
            'interest_accrual': (InterestAccrualMethod, 'interest accrual method'),
            'compounding_frequency': (CompoundingFrequency, 'compounding frequency')
        }
        for name, (enum_cls, label) in enums.items():
            value = _coerce_enum(enum_cls, getattr(self, name), label, errors)
            if value is not None:
                object.__setattr__(self, name, value)

        # Resolve term length
        if self.term_days is None and self.term_months is None:
            errors.append("Either term_days or term_months is required")
        elif self.term_days is None:
            if not _is_int(self.term_months) or self.term_months <= 0:
                errors.append("Loan term must be greater than 0 months")
            else:
                object.__setattr__(self, 'term_days', self.term_months * DAYS_PER_MONTH)
        elif not _is_int(self.term_days) or self.term_days <= 0:
            errors.append("Loan term must be greater than 0 days")
        elif self.term_months is not None and self.term_months * DAYS_PER_MONTH != self.term_days:
            errors.append("term_days and term_months disagree")

        if not _is_int(self.grace_period_days) or self.grace_period_days < 0:
            errors.append("Grace period days cannot be negative")

        if isinstance(self.principal, Decimal) and self.principal <= ZERO:
            errors.append("Principal must be greater than 0")
        for name, label in decimals.items():
            value = getattr(self, name)
            if name != 'principal' and isinstance(value, Decimal) and value < ZERO:
                errors.append(f"{label} cannot be negative")
        for name, label in (('principal', 'Principal'), ('platform_fee', 'Platform fee')):
            value = getattr(self, name)
            if isinstance(value, Decimal) and round_money(value) != value:
                errors.append(f"{label} cannot have more than 2 decimal places")

        if errors:
            raise InvalidInputError(errors)

    @property
    def late_penalty_percent_per_day(self) -> Decimal:
        """Daily penalty rate when the penalty is percentage based"""
        if self.late_penalty_type == LatePenaltyType.PERCENT_PER_DAY:
            return self.late_penalty_value
        return ZERO

    @property
    def installment_count(self) -> int:
        return self.payment_frequency.installment_count(self.term_days)

    def to_dict(self) -> Dict[str, Any]:
        """Convert terms to dictionary for storage"""
        return {
            'principal': str(self.principal),
            'annual_interest_rate_percent': str(self.annual_interest_rate_percent),
            'term_days': self.term_days,
            'interest_type': self.interest_type.value,
            'payment_frequency': self.payment_frequency.value,
            'processing_fee_percent': str(self.processing_fee_percent),
            'platform_fee': str(self.platform_fee),
            'late_penalty_type': self.late_penalty_type.value,
            'late_penalty_value': str(self.late_penalty_value),
            'grace_period_days': self.grace_period_days,
            'max_penalty_percent': str(self.max_penalty_percent),
            'interest_accrual': self.interest_accrual.value,
            'compounding_frequency': self.compounding_frequency.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanTerms':
        """Rebuild terms from a storage dictionary"""
        return cls(
            principal=Decimal(data['principal']),
            annual_interest_rate_percent=Decimal(data['annual_interest_rate_percent']),
            term_days=data['term_days'],
            interest_type=InterestType.from_value(data['interest_type']),
            payment_frequency=PaymentFrequency(data['payment_frequency']),
            processing_fee_percent=Decimal(data['processing_fee_percent']),
            platform_fee=Decimal(data['platform_fee']),
            late_penalty_type=LatePenaltyType(data['late_penalty_type']),
            late_penalty_value=Decimal(data['late_penalty_value']),
            grace_period_days=data['grace_period_days'],
            max_penalty_percent=Decimal(data['max_penalty_percent']),
            interest_accrual=InterestAccrualMethod(data['interest_accrual']),
            compounding_frequency=CompoundingFrequency(data['compounding_frequency'])
        )


@dataclass
class Installment:
    """Single entry in a repayment schedule"""
    installment_number: int
    due_date: date
    principal_due: Decimal
    interest_due: Decimal
    fee_due: Decimal = ZERO
    amount_paid: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.PENDING

    @property
    def total_due(self) -> Decimal:
        return self.principal_due + self.interest_due + self.fee_due

    @property
    def amount_outstanding(self) -> Decimal:
        return max(ZERO, self.total_due - self.amount_paid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'installment_number': self.installment_number,
            'due_date': self.due_date.isoformat(),
            'principal_due': str(self.principal_due),
            'interest_due': str(self.interest_due),
            'fee_due': str(self.fee_due),
            'amount_paid': str(self.amount_paid),
            'status': self.status.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            installment_number=data['installment_number'],
            due_date=date.fromisoformat(data['due_date']),
            principal_due=Decimal(data['principal_due']),
            interest_due=Decimal(data['interest_due']),
            fee_due=Decimal(data.get('fee_due', '0')),
            amount_paid=Decimal(data.get('amount_paid', '0')),
            status=InstallmentStatus(data.get('status', InstallmentStatus.PENDING.value))
        )


@dataclass(frozen=True)
class Payment:
    """Record of money received against a loan"""
    id: str
    loan_id: str
    amount: Decimal
    method: PaymentMethod
    paid_at: datetime
    status: PaymentStatus = PaymentStatus.COMPLETED
    reference: Optional[str] = None

    def __post_init__(self):
        errors: List[str] = []
        amount = _coerce_decimal(self.amount, "Payment amount", errors)
        method = _coerce_enum(PaymentMethod, self.method, "payment method", errors)
        status = _coerce_enum(PaymentStatus, self.status, "payment status", errors)
        if amount is not None:
            if amount <= ZERO:
                errors.append("Payment amount must be greater than 0")
            elif round_money(amount) != amount:
                errors.append("Payment amount cannot have more than 2 decimal places")
        if errors:
            raise InvalidInputError(errors)
        object.__setattr__(self, 'amount', amount)
        object.__setattr__(self, 'method', method)
        object.__setattr__(self, 'status', status)

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def reversed(self) -> 'Payment':
        """Copy of this payment marked reversed"""
        return replace(self, status=PaymentStatus.REVERSED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'amount': str(self.amount),
            'method': self.method.value,
            'paid_at': self.paid_at.isoformat(),
            'status': self.status.value,
            'reference': self.reference
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        return cls(
            id=data['id'],
            loan_id=data['loan_id'],
            amount=Decimal(data['amount']),
            method=PaymentMethod(data['method']),
            paid_at=datetime.fromisoformat(data['paid_at']),
            status=PaymentStatus(data['status']),
            reference=data.get('reference')
        )


@dataclass(frozen=True)
class PaymentReversal:
    """Reversal event; the original payment history is never rewritten"""
    id: str
    loan_id: str
    payment_id: str
    reason: str
    reversed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['reversed_at'] = self.reversed_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentReversal':
        return cls(
            id=data['id'],
            loan_id=data['loan_id'],
            payment_id=data['payment_id'],
            reason=data['reason'],
            reversed_at=datetime.fromisoformat(data['reversed_at'])
        )


@dataclass(frozen=True)
class Allocation:
    """Portion of one payment applied to one bucket"""
    payment_id: str
    bucket: AllocationBucket
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'payment_id': self.payment_id,
            'bucket': self.bucket.value,
            'amount': str(self.amount)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Allocation':
        return cls(
            payment_id=data['payment_id'],
            bucket=AllocationBucket(data['bucket']),
            amount=Decimal(data['amount'])
        )


@dataclass
class Penalty:
    """Late-payment penalty posted against one overdue installment"""
    id: str
    loan_id: str
    installment_number: int
    amount: Decimal
    days_overdue: int
    created_at: datetime
    status: PenaltyStatus = PenaltyStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == PenaltyStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'loan_id': self.loan_id,
            'installment_number': self.installment_number,
            'amount': str(self.amount),
            'days_overdue': self.days_overdue,
            'created_at': self.created_at.isoformat(),
            'status': self.status.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Penalty':
        return cls(
            id=data['id'],
            loan_id=data['loan_id'],
            installment_number=data['installment_number'],
            amount=Decimal(data['amount']),
            days_overdue=data['days_overdue'],
            created_at=datetime.fromisoformat(data['created_at']),
            status=PenaltyStatus(data['status'])
        )


@dataclass(frozen=True)
class BalanceSnapshot:
    """Outstanding balance per bucket; derived, never persisted"""
    outstanding_principal: Decimal
    outstanding_interest: Decimal
    outstanding_fees: Decimal
    outstanding_penalties: Decimal
    as_of: Optional[date] = None

    def __post_init__(self):
        for name in ('outstanding_principal', 'outstanding_interest',
                     'outstanding_fees', 'outstanding_penalties'):
            value = to_decimal(getattr(self, name))
            if value < ZERO:
                raise ValueError(f"{name} cannot be negative")
            object.__setattr__(self, name, value)

    @property
    def total_outstanding(self) -> Decimal:
        return (self.outstanding_principal + self.outstanding_interest +
                self.outstanding_fees + self.outstanding_penalties)

    def bucket_balance(self, bucket: AllocationBucket) -> Decimal:
        """Balance of a single allocation bucket"""
        return {
            AllocationBucket.PENALTY: self.outstanding_penalties,
            AllocationBucket.FEE: self.outstanding_fees,
            AllocationBucket.INTEREST: self.outstanding_interest,
            AllocationBucket.PRINCIPAL: self.outstanding_principal
        }[bucket]

    @property
    def is_settled(self) -> bool:
        return self.total_outstanding == ZERO


@dataclass
class Loan:
    """Disbursed loan: immutable terms plus the schedule written at disbursement"""
    id: str
    terms: LoanTerms
    disbursement_date: date
    schedule: List[Installment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'terms': self.terms.to_dict(),
            'disbursement_date': self.disbursement_date.isoformat(),
            'schedule': [installment.to_dict() for installment in self.schedule]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            terms=LoanTerms.from_dict(data['terms']),
            disbursement_date=date.fromisoformat(data['disbursement_date']),
            schedule=[Installment.from_dict(item) for item in data.get('schedule', [])]
        )
