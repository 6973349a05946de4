"""
Test suite for fee calculations and loan quotes
"""

import pytest
from decimal import Decimal

from lending_engine.exceptions import InvalidInputError
from lending_engine.fees import FeeCalculator


class TestFeeCalculator:
    """Test individual fee calculations"""

    def setup_method(self):
        self.calculator = FeeCalculator()

    def test_processing_fee(self):
        """Test processing fee as a percentage of principal"""
        assert self.calculator.processing_fee(Decimal('10000'), Decimal('2.5')) == Decimal('250.00')

    def test_processing_fee_rounds_half_up(self):
        """Test processing fee rounding"""
        assert self.calculator.processing_fee(Decimal('333.33'), Decimal('1.5')) == Decimal('5.00')

    def test_platform_fee(self):
        """Test the platform fee is passed through"""
        assert self.calculator.platform_fee(Decimal('49.999')) == Decimal('50.00')

    def test_net_proceeds(self):
        """Test net proceeds after upfront fees"""
        result = self.calculator.net_proceeds(
            Decimal('10000'), Decimal('1800'), Decimal('200'), Decimal('30')
        )
        assert result == Decimal('9770.00')

    def test_negative_net_proceeds_rejected(self):
        """Test fees larger than principal are rejected"""
        with pytest.raises(InvalidInputError, match="net proceeds"):
            self.calculator.net_proceeds(Decimal('1000'), Decimal('0'), Decimal('600'), Decimal('500'))

    def test_total_repayable(self):
        """Test total repayable combines principal, interest and platform fee"""
        result = self.calculator.total_repayable(Decimal('10000'), Decimal('1800'), Decimal('50'))
        assert result == Decimal('11850.00')

    def test_negative_fee_rejected(self):
        """Test negative fee inputs are rejected"""
        with pytest.raises(InvalidInputError, match="cannot be negative"):
            self.calculator.platform_fee(Decimal('-1'))


class TestLoanQuote:
    """Test quoting full loan terms"""

    def setup_method(self):
        self.calculator = FeeCalculator()

    def test_annual_quote(self, annual_terms):
        """Test a full quote for annual terms"""
        quote = self.calculator.quote(annual_terms)

        assert quote.interest == Decimal('1800.00')
        assert quote.total_repayable == Decimal('11800.00')
        assert quote.installment_count == 13
        assert quote.installment_amount == Decimal('907.69')
        assert quote.net_proceeds == Decimal('10000.00')

    def test_quote_with_fees(self, quarter_terms):
        """Test a quote carrying processing and platform fees"""
        quote = self.calculator.quote(quarter_terms)

        assert quote.interest == Decimal('443.84')
        assert quote.processing_fee == Decimal('200.00')
        assert quote.platform_fee == Decimal('30.00')
        assert quote.total_fees == Decimal('230.00')
        assert quote.net_proceeds == Decimal('9770.00')
        assert quote.total_repayable == Decimal('10473.84')
        assert quote.installment_amount == Decimal('3491.28')

    def test_scheduled_fees_are_platform_fee(self, quarter_terms):
        """Test only the platform fee is scheduled"""
        assert self.calculator.scheduled_fees(quarter_terms) == Decimal('30.00')
