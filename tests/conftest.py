"""
Shared fixtures for the lending engine test suite
"""

import pytest
from decimal import Decimal
from datetime import date

from lending_engine.config import EngineConfig
from lending_engine.models import LoanTerms, PaymentFrequency, InterestType
from lending_engine.storage import InMemoryStorage
from lending_engine.servicing import LoanServicer


@pytest.fixture
def disbursement_date():
    return date(2024, 1, 1)


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def servicer(storage, engine_config):
    return LoanServicer(storage, engine_config)


@pytest.fixture
def annual_terms():
    """10,000 at 18% flat over one year, repaid monthly"""
    return LoanTerms(
        principal=Decimal('10000.00'),
        annual_interest_rate_percent=Decimal('18'),
        term_days=365,
        interest_type=InterestType.FLAT,
        payment_frequency=PaymentFrequency.MONTHLY
    )


@pytest.fixture
def quarter_terms():
    """
    10,000 at 18% flat over 90 days in three monthly installments

    Interest 443.84, platform fee 30.00, total repayable 10,473.84,
    three installments of 3,491.28.
    """
    return LoanTerms(
        principal=Decimal('10000.00'),
        annual_interest_rate_percent=Decimal('18'),
        term_days=90,
        payment_frequency=PaymentFrequency.MONTHLY,
        processing_fee_percent=Decimal('2'),
        platform_fee=Decimal('30.00'),
        late_penalty_value=Decimal('1'),
        grace_period_days=3,
        max_penalty_percent=Decimal('10')
    )
