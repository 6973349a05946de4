"""
Pydantic schemas for the service boundary

The API layer speaks camelCase while storage speaks snake_case; both are
accepted here and converted once into the engine's canonical models.
Monetary values travel as strings.
"""

from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import (
    LoanTerms, Installment, Allocation, BalanceSnapshot, Penalty
)
from .fees import LoanQuote


class BoundaryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoanTermsModel(BoundaryModel):
    principal: str = Field(..., description="Decimal amount as string")
    annual_interest_rate_percent: str = Field(..., description="Annual rate in percent, e.g. 18")
    term_days: Optional[int] = None
    term_months: Optional[int] = None
    interest_type: str = Field("flat", description="flat, reducing or compound")
    payment_frequency: str = Field("monthly", description="daily, weekly or monthly")
    processing_fee_percent: str = "0"
    platform_fee: str = "0"
    late_payment_penalty_type: str = Field("percent_per_day", description="percent_per_day or fixed_per_day")
    late_payment_penalty_value: str = "0"
    grace_period_days: int = 0
    max_penalty_percent: str = "0"
    interest_accrual: str = Field("upfront", description="upfront or daily")
    compounding_frequency: str = "annually"

    def to_terms(self) -> LoanTerms:
        return LoanTerms(
            principal=self.principal,
            annual_interest_rate_percent=self.annual_interest_rate_percent,
            term_days=self.term_days,
            term_months=self.term_months,
            interest_type=self.interest_type,
            payment_frequency=self.payment_frequency,
            processing_fee_percent=self.processing_fee_percent,
            platform_fee=self.platform_fee,
            late_penalty_type=self.late_payment_penalty_type,
            late_penalty_value=self.late_payment_penalty_value,
            grace_period_days=self.grace_period_days,
            max_penalty_percent=self.max_penalty_percent,
            interest_accrual=self.interest_accrual,
            compounding_frequency=self.compounding_frequency
        )


class PaymentRequest(BoundaryModel):
    payment_id: str
    amount: str = Field(..., description="Decimal amount as string")
    payment_method: str = Field(..., description="bank_transfer, cash, check, online or mobile_money")
    paid_at: datetime
    reference_number: Optional[str] = None
    allocation_order: Optional[List[str]] = None


class InstallmentModel(BoundaryModel):
    installment_number: int
    due_date: date
    principal_due: str
    interest_due: str
    fee_due: str
    total_due: str
    amount_paid: str
    status: str

    @classmethod
    def from_installment(cls, installment: Installment) -> 'InstallmentModel':
        return cls(
            installment_number=installment.installment_number,
            due_date=installment.due_date,
            principal_due=str(installment.principal_due),
            interest_due=str(installment.interest_due),
            fee_due=str(installment.fee_due),
            total_due=str(installment.total_due),
            amount_paid=str(installment.amount_paid),
            status=installment.status.value
        )


class AllocationModel(BoundaryModel):
    payment_id: str
    bucket: str
    amount: str

    @classmethod
    def from_allocation(cls, allocation: Allocation) -> 'AllocationModel':
        return cls(
            payment_id=allocation.payment_id,
            bucket=allocation.bucket.value,
            amount=str(allocation.amount)
        )


class PenaltyModel(BoundaryModel):
    id: str
    loan_id: str
    installment_number: int
    amount: str
    days_overdue: int
    created_at: datetime
    status: str

    @classmethod
    def from_penalty(cls, penalty: Penalty) -> 'PenaltyModel':
        return cls(
            id=penalty.id,
            loan_id=penalty.loan_id,
            installment_number=penalty.installment_number,
            amount=str(penalty.amount),
            days_overdue=penalty.days_overdue,
            created_at=penalty.created_at,
            status=penalty.status.value
        )


class BalanceSnapshotModel(BoundaryModel):
    outstanding_principal: str
    outstanding_interest: str
    outstanding_fees: str
    outstanding_penalties: str
    total_outstanding: str
    as_of: Optional[date] = None

    @classmethod
    def from_snapshot(cls, snapshot: BalanceSnapshot) -> 'BalanceSnapshotModel':
        return cls(
            outstanding_principal=str(snapshot.outstanding_principal),
            outstanding_interest=str(snapshot.outstanding_interest),
            outstanding_fees=str(snapshot.outstanding_fees),
            outstanding_penalties=str(snapshot.outstanding_penalties),
            total_outstanding=str(snapshot.total_outstanding),
            as_of=snapshot.as_of
        )


class LoanQuoteModel(BoundaryModel):
    principal: str
    interest: str
    processing_fee: str
    platform_fee: str
    total_fees: str
    net_proceeds: str
    total_repayable: str
    installment_count: int
    installment_amount: str

    @classmethod
    def from_quote(cls, quote: LoanQuote) -> 'LoanQuoteModel':
        return cls(
            principal=str(quote.principal),
            interest=str(quote.interest),
            processing_fee=str(quote.processing_fee),
            platform_fee=str(quote.platform_fee),
            total_fees=str(quote.total_fees),
            net_proceeds=str(quote.net_proceeds),
            total_repayable=str(quote.total_repayable),
            installment_count=quote.installment_count,
            installment_amount=str(quote.installment_amount)
        )
