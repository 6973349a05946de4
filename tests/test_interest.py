"""
Test suite for interest calculations

Flat, reducing and compound interest plus the supporting product
calculations. All results must be exact to the cent.
"""

import pytest
from decimal import Decimal
from datetime import date, timedelta

from lending_engine.exceptions import InvalidInputError
from lending_engine.interest import InterestCalculator
from lending_engine.models import (
    LoanTerms, InterestType, CompoundingFrequency, PaymentFrequency, InterestAccrualMethod
)


class TestCoreConventions:
    """Test flat, reducing and compound interest"""

    def setup_method(self):
        self.calculator = InterestCalculator()

    def test_flat_interest(self):
        """Test 10,000 at 18% for a year is 1,800.00"""
        assert self.calculator.flat_interest(Decimal('10000'), Decimal('18'), 365) == Decimal('1800.00')

    def test_reducing_interest_uses_average_balance(self):
        """Test reducing balance interest"""
        assert self.calculator.reducing_interest(Decimal('10000'), Decimal('18'), 365) == Decimal('900.00')

    def test_compound_interest_annual(self):
        """Test annual compounding over one year matches flat interest"""
        assert self.calculator.compound_interest(Decimal('10000'), Decimal('18'), 365) == Decimal('1800.00')

    def test_compound_interest_monthly(self):
        """Test monthly compounding"""
        result = self.calculator.compound_interest(
            Decimal('10000'), Decimal('18'), 365, CompoundingFrequency.MONTHLY
        )
        assert result == Decimal('1956.18')

    def test_partial_year_flat(self):
        """Test flat interest over part of a year"""
        assert self.calculator.flat_interest(Decimal('10000'), Decimal('18'), 90) == Decimal('443.84')

    def test_zero_rate(self):
        """Test a zero rate yields zero interest"""
        assert self.calculator.flat_interest(Decimal('10000'), Decimal('0'), 365) == Decimal('0.00')
        assert self.calculator.compound_interest(Decimal('10000'), Decimal('0'), 365) == Decimal('0.00')

    def test_results_are_rounded_to_cents(self):
        """Test interest results are rounded to cents"""
        result = self.calculator.flat_interest(Decimal('333.33'), Decimal('7.77'), 17)
        assert result.as_tuple().exponent == -2

    def test_invalid_inputs(self):
        """Test invalid interest inputs are rejected"""
        with pytest.raises(InvalidInputError, match="Principal must be greater than 0"):
            self.calculator.flat_interest(Decimal('0'), Decimal('18'), 365)
        with pytest.raises(InvalidInputError, match="cannot be negative"):
            self.calculator.flat_interest(Decimal('100'), Decimal('-1'), 365)
        with pytest.raises(InvalidInputError, match="greater than 0 days"):
            self.calculator.flat_interest(Decimal('100'), Decimal('18'), 0)

    def test_float_inputs_rejected(self):
        """Test float inputs are rejected"""
        with pytest.raises(InvalidInputError, match="decimal number"):
            self.calculator.flat_interest(10000.0, Decimal('18'), 365)


class TestDispatch:
    """Test interest type dispatch"""

    def setup_method(self):
        self.calculator = InterestCalculator()

    def test_each_type(self):
        """Test dispatch to each interest type"""
        args = (Decimal('10000'), Decimal('18'), 365)
        assert self.calculator.interest_for(InterestType.FLAT, *args) == Decimal('1800.00')
        assert self.calculator.interest_for('reducing', *args) == Decimal('900.00')
        assert self.calculator.interest_for('compound', *args) == Decimal('1800.00')

    def test_unknown_type_falls_back_to_flat(self):
        """Test unknown interest types use flat interest"""
        result = self.calculator.interest_for('balloon', Decimal('10000'), Decimal('18'), 365)
        assert result == Decimal('1800.00')

    def test_total_interest_from_terms(self, annual_terms):
        """Test total interest computed from loan terms"""
        assert self.calculator.total_interest(annual_terms) == Decimal('1800.00')


class TestAccruedInterest:
    """Test interest owed as of a date"""

    def setup_method(self):
        self.calculator = InterestCalculator()
        self.disbursed = date(2024, 1, 1)

    def test_upfront_owes_full_interest(self, annual_terms):
        """Test upfront accrual owes all interest on day one"""
        assert self.calculator.accrued_interest(annual_terms, self.disbursed, self.disbursed) == Decimal('1800.00')

    def test_daily_accrual(self):
        """Test interest accrued by elapsed days"""
        terms = LoanTerms(
            principal=Decimal('10000'), annual_interest_rate_percent=Decimal('18'),
            term_days=365, interest_accrual=InterestAccrualMethod.DAILY
        )

        assert self.calculator.accrued_interest(terms, self.disbursed, self.disbursed) == Decimal('0')
        assert self.calculator.accrued_interest(
            terms, self.disbursed, self.disbursed + timedelta(days=100)
        ) == Decimal('493.15')
        # Capped at the full term
        assert self.calculator.accrued_interest(
            terms, self.disbursed, self.disbursed + timedelta(days=500)
        ) == Decimal('1800.00')

    def test_daily_accrual_needs_disbursement_date(self):
        """Test daily accrual requires a disbursement date"""
        terms = LoanTerms(
            principal=Decimal('10000'), annual_interest_rate_percent=Decimal('18'),
            term_days=365, interest_accrual='daily'
        )
        with pytest.raises(InvalidInputError, match="Disbursement date"):
            self.calculator.accrued_interest(terms, None, self.disbursed)


class TestProductCalculations:
    """Test declining balance, tiers, EMI and effective rate"""

    def setup_method(self):
        self.calculator = InterestCalculator()

    def test_declining_balance_interest(self):
        """Test each 30-day period charges interest on the principal still owed"""
        result = self.calculator.declining_balance_interest(
            Decimal('12000'), Decimal('12'), 360, PaymentFrequency.MONTHLY
        )
        assert result == Decimal('769.32')

    def test_declining_balance_is_below_flat(self):
        """Test declining balance interest is below flat"""
        declining = self.calculator.declining_balance_interest(Decimal('12000'), Decimal('12'), 360)
        flat = self.calculator.flat_interest(Decimal('12000'), Decimal('12'), 360)
        assert declining < flat

    def test_tiered_interest(self):
        """Test tiered rates applied per band"""
        tiers = [(30, Decimal('12')), (60, Decimal('15'))]
        result = self.calculator.tiered_interest(Decimal('10000'), Decimal('10'), 365, tiers)
        assert result == Decimal('1098.63')

    def test_tiered_without_tiers_is_flat(self):
        """Test tiered interest without tiers is flat"""
        assert self.calculator.tiered_interest(Decimal('10000'), Decimal('18'), 365) == Decimal('1800.00')

    def test_tier_breakdown(self):
        """Test per-tier interest breakdown"""
        tiers = [(30, Decimal('12')), (60, Decimal('15'))]
        breakdown = self.calculator.tier_breakdown(Decimal('10000'), Decimal('10'), 365, tiers)

        assert [row["days"] for row in breakdown] == [30, 60]
        assert breakdown[0]["interest"] == Decimal('98.63')
        assert breakdown[1]["interest"] == Decimal('246.58')

    def test_invalid_tier_rejected(self):
        """Test malformed tiers are rejected"""
        with pytest.raises(InvalidInputError):
            self.calculator.tiered_interest(Decimal('10000'), Decimal('10'), 365, [(0, Decimal('5'))])

    def test_emi(self):
        """Test equated monthly installment"""
        assert self.calculator.emi(Decimal('10000'), Decimal('12'), 12) == Decimal('888.49')

    def test_emi_zero_rate(self):
        """Test EMI with a zero rate"""
        assert self.calculator.emi(Decimal('1200'), Decimal('0'), 12) == Decimal('100.00')

    def test_emi_requires_months(self):
        """Test EMI requires a positive month count"""
        with pytest.raises(InvalidInputError):
            self.calculator.emi(Decimal('1200'), Decimal('12'), 0)

    def test_effective_annual_rate(self):
        """Test effective annual rate from a nominal rate"""
        assert self.calculator.effective_annual_rate(Decimal('12'), CompoundingFrequency.MONTHLY) == Decimal('12.68')
        assert self.calculator.effective_annual_rate(Decimal('12')) == Decimal('12.00')
