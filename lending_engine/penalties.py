"""
Late Penalty Module

Computes late-payment penalties for overdue installments and re-evaluates
them during an overdue sweep. Penalties accrue per day past the grace
period and are capped at a percentage of the installment.
"""

from decimal import Decimal
from datetime import date, datetime, time, timezone
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .money import ZERO, to_decimal, round_money, percent_of
from .exceptions import InvalidInputError, InvalidPenaltyTargetError
from .models import (
    LoanTerms, Installment, InstallmentStatus, LatePenaltyType, Penalty, PenaltyStatus
)
from .logging_config import get_logger


def penalty_id_for(loan_id: str, installment_number: int) -> str:
    """Stable penalty id; re-evaluation of an installment replaces its penalty"""
    return f"PEN-{loan_id}-{installment_number}"


@dataclass
class PenaltySweepResult:
    """Outcome of re-evaluating one loan's overdue installments"""
    posted: List[Penalty] = field(default_factory=list)     # New or increased penalties
    unchanged: List[Penalty] = field(default_factory=list)  # Already posted at this amount

    @property
    def total_posted(self) -> Decimal:
        return sum((penalty.amount for penalty in self.posted), ZERO)


class PenaltyCalculator:
    """Stateless late penalty calculations"""

    def __init__(self):
        self.logger = get_logger("lending.penalties")

    def penalty(
        self,
        installment_amount,
        days_overdue: int,
        daily_rate_percent,
        grace_period_days: int,
        max_penalty_percent
    ) -> Decimal:
        """
        Percentage-based late penalty

        effective_days = max(0, days_overdue - grace_period_days)
        penalty = installment * min(effective_days * daily_rate, max_percent) / 100
        """
        installment_amount, daily_rate, max_percent = self._validated(
            installment_amount, days_overdue, daily_rate_percent,
            grace_period_days, max_penalty_percent
        )
        effective_days = self.effective_days(days_overdue, grace_period_days)
        raw_percent = Decimal(effective_days) * daily_rate
        capped_percent = min(raw_percent, max_percent)
        return round_money(percent_of(installment_amount, capped_percent))

    def fixed_penalty(
        self,
        installment_amount,
        days_overdue: int,
        daily_amount,
        grace_period_days: int,
        max_penalty_percent
    ) -> Decimal:
        """Flat amount per effective day, under the same percentage cap"""
        installment_amount, daily_amount, max_percent = self._validated(
            installment_amount, days_overdue, daily_amount,
            grace_period_days, max_penalty_percent
        )
        effective_days = self.effective_days(days_overdue, grace_period_days)
        raw_amount = Decimal(effective_days) * daily_amount
        cap = percent_of(installment_amount, max_percent)
        return round_money(min(raw_amount, cap))

    def for_terms(self, terms: LoanTerms, installment_amount, days_overdue: int) -> Decimal:
        """Penalty for an installment under a loan's penalty terms"""
        if terms.late_penalty_type == LatePenaltyType.FIXED_PER_DAY:
            return self.fixed_penalty(
                installment_amount, days_overdue, terms.late_penalty_value,
                terms.grace_period_days, terms.max_penalty_percent
            )
        return self.penalty(
            installment_amount, days_overdue, terms.late_penalty_percent_per_day,
            terms.grace_period_days, terms.max_penalty_percent
        )

    @staticmethod
    def effective_days(days_overdue: int, grace_period_days: int) -> int:
        return max(0, days_overdue - grace_period_days)

    @staticmethod
    def days_overdue(due_date: date, today: date) -> int:
        return max(0, (today - due_date).days)

    def assess(
        self,
        loan_id: str,
        installment: Installment,
        terms: LoanTerms,
        today: date,
        created_at: Optional[datetime] = None
    ) -> Optional[Penalty]:
        """
        Build the penalty for one overdue installment

        Args:
            loan_id: Loan the installment belongs to
            installment: Installment with its status already derived
            terms: Loan terms carrying the penalty configuration
            today: Caller-supplied evaluation date
            created_at: Timestamp for the record (defaults to start of today, UTC)

        Returns:
            Penalty, or None while still inside the grace period

        Raises:
            InvalidPenaltyTargetError: If the installment is not overdue
        """
        if installment.status != InstallmentStatus.OVERDUE:
            raise InvalidPenaltyTargetError(installment.installment_number, installment.status.value)

        days = self.days_overdue(installment.due_date, today)
        amount = self.for_terms(terms, installment.total_due, days)
        if amount <= ZERO:
            return None

        return Penalty(
            id=penalty_id_for(loan_id, installment.installment_number),
            loan_id=loan_id,
            installment_number=installment.installment_number,
            amount=amount,
            days_overdue=days,
            created_at=created_at or datetime.combine(today, time.min, tzinfo=timezone.utc)
        )

    def sweep(
        self,
        loan_id: str,
        installments: Iterable[Installment],
        terms: LoanTerms,
        existing: Iterable[Penalty],
        today: date
    ) -> PenaltySweepResult:
        """
        Re-evaluate penalties for every overdue installment of a loan

        At most one penalty exists per installment: a re-evaluated penalty
        reuses the id of the one it replaces. Waived penalties are never
        re-posted.
        """
        by_installment: Dict[int, Penalty] = {
            penalty.installment_number: penalty for penalty in existing
        }
        result = PenaltySweepResult()

        for installment in installments:
            if installment.status != InstallmentStatus.OVERDUE:
                continue

            current = by_installment.get(installment.installment_number)
            if current and current.status == PenaltyStatus.WAIVED:
                continue

            penalty = self.assess(loan_id, installment, terms, today)
            if penalty is None:
                continue

            if current and current.amount == penalty.amount:
                result.unchanged.append(current)
            else:
                result.posted.append(penalty)

        if result.posted:
            self.logger.debug(
                f"Loan {loan_id}: {len(result.posted)} penalties posted totalling {result.total_posted}"
            )
        return result

    def _validated(self, installment_amount, days_overdue, rate_or_amount,
                   grace_period_days, max_penalty_percent):
        errors = []
        values = []
        for label, value in (("Installment amount", installment_amount),
                             ("Daily penalty", rate_or_amount),
                             ("Maximum penalty percent", max_penalty_percent)):
            try:
                value = to_decimal(value)
                if value < ZERO:
                    errors.append(f"{label} cannot be negative")
                values.append(value)
            except ValueError:
                errors.append(f"{label} must be a decimal number")
        for label, value in (("Days overdue", days_overdue), ("Grace period days", grace_period_days)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(f"{label} must be a non-negative integer")
        if errors:
            raise InvalidInputError(errors)
        return tuple(values)
