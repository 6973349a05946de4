"""
Lending Engine

Deterministic loan calculation and payment allocation: interest under
several conventions, fees, repayment schedules, late penalties, waterfall
allocation and outstanding balance tracking. All money is Decimal.
"""

__version__ = "1.0.0"
