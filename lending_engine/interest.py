"""
Interest Calculator Module

Computes loan interest under flat, reducing-balance (average balance
approximation) and compound conventions, plus the supporting calculations
used when quoting products: true declining-balance interest, tiered rates,
EMI and effective annual rate. Intermediate math is unrounded; every
returned amount is rounded to cents with ROUND_HALF_UP.
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional, Sequence, Tuple, Union

from .money import ZERO, HUNDRED, to_decimal, round_money
from .exceptions import InvalidInputError
from .models import (
    LoanTerms, InterestType, InterestAccrualMethod, CompoundingFrequency,
    PaymentFrequency
)
from .logging_config import get_logger

DAYS_IN_YEAR = 365

# (days, annual rate percent) pairs applied in order
RateTier = Tuple[int, Decimal]


class InterestCalculator:
    """
    Stateless interest calculations.

    Holds no per-loan state; a single instance can be shared freely across
    threads.
    """

    def __init__(self, days_in_year: int = DAYS_IN_YEAR):
        self.days_in_year = Decimal(days_in_year)
        self.logger = get_logger("lending.interest")

    def flat_interest(self, principal, rate_percent, term_days: int) -> Decimal:
        """
        Simple interest on the original principal for the full term

        Formula: principal * rate * days / (365 * 100)
        """
        principal, rate, days = self._validated(principal, rate_percent, term_days)
        return round_money(self._flat_raw(principal, rate, days))

    def reducing_interest(self, principal, rate_percent, term_days: int) -> Decimal:
        """
        Reducing-balance interest approximated on the average outstanding
        balance (principal / 2). Not recomputed per installment.
        """
        principal, rate, days = self._validated(principal, rate_percent, term_days)
        return round_money(self._flat_raw(principal / Decimal('2'), rate, days))

    def compound_interest(
        self,
        principal,
        rate_percent,
        term_days: int,
        compounding_frequency: CompoundingFrequency = CompoundingFrequency.ANNUALLY
    ) -> Decimal:
        """
        Compound interest over the term

        Formula: principal * ((1 + r/n) ^ (n * days/365) - 1)
        With annual compounding (n = 1) this is principal * ((1 + r)^(days/365) - 1).
        """
        principal, rate, days = self._validated(principal, rate_percent, term_days)
        return round_money(self._compound_raw(principal, rate, days, compounding_frequency))

    def interest_for(
        self,
        interest_type: Union[InterestType, str],
        principal,
        rate_percent,
        term_days: int,
        compounding_frequency: CompoundingFrequency = CompoundingFrequency.ANNUALLY
    ) -> Decimal:
        """
        Dispatch on the interest convention.

        Unknown conventions fall back to flat interest; callers that need
        strict typing validate upstream.
        """
        if not InterestType.is_known(interest_type):
            self.logger.warning(f"Unknown interest type '{interest_type}', falling back to flat")
        resolved = InterestType.from_value(interest_type)

        if resolved == InterestType.REDUCING:
            return self.reducing_interest(principal, rate_percent, term_days)
        if resolved == InterestType.COMPOUND:
            return self.compound_interest(principal, rate_percent, term_days, compounding_frequency)
        return self.flat_interest(principal, rate_percent, term_days)

    def total_interest(self, terms: LoanTerms) -> Decimal:
        """Full-term interest for a set of loan terms"""
        return self.interest_for(
            terms.interest_type,
            terms.principal,
            terms.annual_interest_rate_percent,
            terms.term_days,
            terms.compounding_frequency
        )

    def accrued_interest(
        self,
        terms: LoanTerms,
        disbursement_date: Optional[date],
        as_of: date
    ) -> Decimal:
        """
        Interest owed as of a date under the terms' accrual convention

        UPFRONT loans owe the full scheduled interest from disbursement.
        DAILY loans accrue on elapsed days, capped at the full term.
        """
        full_interest = self.total_interest(terms)
        if terms.interest_accrual == InterestAccrualMethod.UPFRONT:
            return full_interest

        if disbursement_date is None:
            raise InvalidInputError("Disbursement date is required for daily interest accrual")

        elapsed = (as_of - disbursement_date).days
        elapsed = max(0, min(elapsed, terms.term_days))
        if elapsed == 0:
            return ZERO

        accrued = self.interest_for(
            terms.interest_type,
            terms.principal,
            terms.annual_interest_rate_percent,
            elapsed,
            terms.compounding_frequency
        )
        return min(accrued, full_interest)

    def declining_balance_interest(
        self,
        principal,
        rate_percent,
        term_days: int,
        payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    ) -> Decimal:
        """
        True declining-balance interest: each period charges interest on the
        principal still outstanding, which falls by an equal share per period.
        """
        principal, rate, days = self._validated(principal, rate_percent, term_days)
        step = payment_frequency.step_days
        periods = payment_frequency.installment_count(days)
        principal_per_period = principal / Decimal(periods)

        balance = principal
        total = ZERO
        for period in range(periods):
            if period == periods - 1:
                period_days = days - period * step
            else:
                period_days = step
            total += self._flat_raw(balance, rate, period_days)
            balance = max(ZERO, balance - principal_per_period)

        return round_money(total)

    def tiered_interest(
        self,
        principal,
        base_rate_percent,
        term_days: int,
        tiers: Optional[Sequence[RateTier]] = None
    ) -> Decimal:
        """
        Variable interest where rate tiers apply to consecutive day ranges

        Days not covered by any tier are charged at the base rate. Without
        tiers this is flat interest at the base rate.
        """
        principal, base_rate, days = self._validated(principal, base_rate_percent, term_days)
        if not tiers:
            return round_money(self._flat_raw(principal, base_rate, days))

        total = ZERO
        processed = 0
        for tier_days, tier_rate in tiers:
            if processed >= days:
                break
            tier_rate = to_decimal(tier_rate)
            if tier_days <= 0 or tier_rate < ZERO:
                raise InvalidInputError("Rate tiers need positive days and non-negative rates")
            days_in_tier = min(tier_days, days - processed)
            total += self._flat_raw(principal, tier_rate, days_in_tier)
            processed += days_in_tier

        if processed < days:
            total += self._flat_raw(principal, base_rate, days - processed)

        return round_money(total)

    def tier_breakdown(
        self,
        principal,
        base_rate_percent,
        term_days: int,
        tiers: Sequence[RateTier]
    ) -> List[dict]:
        """Per-tier days, rate and rounded interest for display"""
        principal, base_rate, days = self._validated(principal, base_rate_percent, term_days)
        breakdown = []
        processed = 0
        for tier_days, tier_rate in tiers:
            if processed >= days:
                break
            days_in_tier = min(tier_days, days - processed)
            rate = to_decimal(tier_rate)
            breakdown.append({
                "tier": len(breakdown) + 1,
                "days": days_in_tier,
                "rate": rate,
                "interest": round_money(self._flat_raw(principal, rate, days_in_tier))
            })
            processed += days_in_tier
        return breakdown

    def emi(self, principal, annual_rate_percent, months: int) -> Decimal:
        """
        Equated monthly installment

        Formula: P * r(1+r)^n / ((1+r)^n - 1) with r the monthly rate
        """
        if not isinstance(months, int) or months <= 0:
            raise InvalidInputError("Number of monthly payments must be greater than 0")
        principal, rate, _ = self._validated(principal, annual_rate_percent, months)

        monthly_rate = rate / Decimal('12') / HUNDRED
        if monthly_rate == ZERO:
            return round_money(principal / Decimal(months))

        factor = (Decimal('1') + monthly_rate) ** months
        return round_money(principal * (monthly_rate * factor) / (factor - Decimal('1')))

    def effective_annual_rate(
        self,
        nominal_rate_percent,
        compounding_frequency: CompoundingFrequency = CompoundingFrequency.ANNUALLY
    ) -> Decimal:
        """Effective annual rate in percent, rounded to 2 places"""
        rate = to_decimal(nominal_rate_percent)
        if rate < ZERO:
            raise InvalidInputError("Interest rate cannot be negative")
        n = Decimal(compounding_frequency.periods_per_year)
        effective = (Decimal('1') + rate / HUNDRED / n) ** compounding_frequency.periods_per_year - Decimal('1')
        return round_money(effective * HUNDRED)

    def _flat_raw(self, principal: Decimal, rate: Decimal, days: int) -> Decimal:
        return principal * rate * Decimal(days) / (self.days_in_year * HUNDRED)

    def _compound_raw(
        self,
        principal: Decimal,
        rate: Decimal,
        days: int,
        compounding_frequency: CompoundingFrequency
    ) -> Decimal:
        if rate == ZERO:
            return ZERO
        n = Decimal(compounding_frequency.periods_per_year)
        years = Decimal(days) / self.days_in_year
        growth = (Decimal('1') + rate / HUNDRED / n) ** (n * years)
        return principal * (growth - Decimal('1'))

    def _validated(self, principal, rate_percent, term_days) -> Tuple[Decimal, Decimal, int]:
        errors = []
        try:
            principal = to_decimal(principal)
            if principal <= ZERO:
                errors.append("Principal must be greater than 0")
        except ValueError:
            errors.append("Principal must be a decimal number")
        try:
            rate_percent = to_decimal(rate_percent)
            if rate_percent < ZERO:
                errors.append("Interest rate cannot be negative")
        except ValueError:
            errors.append("Interest rate must be a decimal number")
        if not isinstance(term_days, int) or isinstance(term_days, bool) or term_days <= 0:
            errors.append("Loan term must be greater than 0 days")
        if errors:
            raise InvalidInputError(errors)
        return principal, rate_percent, term_days
