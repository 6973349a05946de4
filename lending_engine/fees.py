"""
Fee Calculator Module

Processing fee, platform fee, net proceeds and total repayable, plus the
loan quote that combines them with interest for a set of terms.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Optional

from .money import ZERO, to_decimal, round_money, percent_of
from .exceptions import InvalidInputError
from .models import LoanTerms
from .interest import InterestCalculator


@dataclass(frozen=True)
class LoanQuote:
    """Amounts a borrower is quoted before disbursement"""
    principal: Decimal
    interest: Decimal
    processing_fee: Decimal
    platform_fee: Decimal
    net_proceeds: Decimal
    total_repayable: Decimal
    installment_count: int
    installment_amount: Decimal

    @property
    def total_fees(self) -> Decimal:
        return self.processing_fee + self.platform_fee


class FeeCalculator:
    """Stateless fee calculations"""

    def processing_fee(self, principal, fee_percent) -> Decimal:
        """Processing fee as a percentage of principal"""
        principal = self._non_negative(principal, "Principal")
        fee_percent = self._non_negative(fee_percent, "Processing fee percent")
        return round_money(percent_of(principal, fee_percent))

    def platform_fee(self, configured_fee) -> Decimal:
        """Flat platform fee as configured on the product"""
        return round_money(self._non_negative(configured_fee, "Platform fee"))

    def net_proceeds(self, principal, interest, processing_fee, platform_fee) -> Decimal:
        """
        Amount disbursed to the borrower

        Interest is not netted out: it is collected through the repayment
        schedule, not deducted upfront.
        """
        principal = self._non_negative(principal, "Principal")
        self._non_negative(interest, "Interest")
        processing_fee = self._non_negative(processing_fee, "Processing fee")
        platform_fee = self._non_negative(platform_fee, "Platform fee")

        proceeds = principal - processing_fee - platform_fee
        if proceeds < ZERO:
            raise InvalidInputError("Fees exceed the principal; net proceeds would be negative")
        return round_money(proceeds)

    def total_repayable(self, principal, interest, platform_fee) -> Decimal:
        """Principal plus interest plus platform fee"""
        principal = self._non_negative(principal, "Principal")
        interest = self._non_negative(interest, "Interest")
        platform_fee = self._non_negative(platform_fee, "Platform fee")
        return round_money(principal + interest + platform_fee)

    def scheduled_fees(self, terms: LoanTerms) -> Decimal:
        """Fees repaid through the schedule rather than withheld at disbursement"""
        return self.platform_fee(terms.platform_fee)

    def quote(self, terms: LoanTerms,
              interest_calculator: Optional[InterestCalculator] = None) -> LoanQuote:
        """Price a set of loan terms"""
        interest_calculator = interest_calculator or InterestCalculator()

        interest = interest_calculator.total_interest(terms)
        processing_fee = self.processing_fee(terms.principal, terms.processing_fee_percent)
        platform_fee = self.platform_fee(terms.platform_fee)
        total_repayable = self.total_repayable(terms.principal, interest, platform_fee)
        count = terms.installment_count

        return LoanQuote(
            principal=round_money(terms.principal),
            interest=interest,
            processing_fee=processing_fee,
            platform_fee=platform_fee,
            net_proceeds=self.net_proceeds(terms.principal, interest, processing_fee, platform_fee),
            total_repayable=total_repayable,
            installment_count=count,
            installment_amount=round_money(total_repayable / Decimal(count))
        )

    def _non_negative(self, value, label: str) -> Decimal:
        try:
            value = to_decimal(value)
        except ValueError:
            raise InvalidInputError(f"{label} must be a decimal number")
        if value < ZERO:
            raise InvalidInputError(f"{label} cannot be negative")
        return value
