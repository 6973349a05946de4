"""
Balance Tracking Module

Derives a loan's outstanding balance per bucket from its terms, schedule,
recorded payments with their allocation records, and posted penalties.
Pure and idempotent: identical inputs always give an identical snapshot.
"""

from decimal import Decimal
from datetime import date
from typing import Dict, Iterable, List, Optional

from .money import ZERO, sum_money
from .models import (
    LoanTerms, Installment, Payment, Allocation, AllocationBucket, Penalty,
    BalanceSnapshot
)
from .interest import InterestCalculator
from .schedule import apply_payment_status, scheduled_amount_paid


class BalanceTracker:
    """
    Computes BalanceSnapshots.

    Paid-to-date amounts come from persisted Allocation records of
    completed payments; reversed payments and their allocations are
    ignored.
    """

    def __init__(self, interest_calculator: Optional[InterestCalculator] = None):
        self.interest_calculator = interest_calculator or InterestCalculator()

    def snapshot(
        self,
        terms: LoanTerms,
        schedule: List[Installment],
        payments: Iterable[Payment],
        allocations: Iterable[Allocation],
        penalties: Iterable[Penalty],
        today: date,
        disbursement_date: Optional[date] = None
    ) -> BalanceSnapshot:
        """
        Outstanding balance as of today

        Args:
            terms: Loan terms
            schedule: Installments written at disbursement
            payments: Recorded payments (any status)
            allocations: Allocation records for those payments
            penalties: Posted penalties (any status)
            today: Caller-supplied evaluation date
            disbursement_date: Required when interest accrues daily

        Returns:
            BalanceSnapshot with every bucket floored at zero
        """
        paid = self.paid_to_date(payments, allocations)

        scheduled_interest = sum_money(item.interest_due for item in schedule)
        total_fees = sum_money(item.fee_due for item in schedule)
        accrued_interest = self.interest_calculator.accrued_interest(terms, disbursement_date, today)
        if schedule:
            # Never owe more interest than the fixed plan carries
            accrued_interest = min(accrued_interest, scheduled_interest)

        active_penalties = sum_money(penalty.amount for penalty in penalties if penalty.is_active)

        return BalanceSnapshot(
            outstanding_principal=max(ZERO, terms.principal - paid[AllocationBucket.PRINCIPAL]),
            outstanding_interest=max(ZERO, accrued_interest - paid[AllocationBucket.INTEREST]),
            outstanding_fees=max(ZERO, total_fees - paid[AllocationBucket.FEE]),
            outstanding_penalties=max(ZERO, active_penalties - paid[AllocationBucket.PENALTY]),
            as_of=today
        )

    def paid_to_date(
        self,
        payments: Iterable[Payment],
        allocations: Iterable[Allocation]
    ) -> Dict[AllocationBucket, Decimal]:
        """Sum of allocations per bucket over completed payments"""
        completed = {payment.id for payment in payments if payment.is_completed}
        paid = {bucket: ZERO for bucket in AllocationBucket}
        for allocation in allocations:
            if allocation.payment_id in completed:
                paid[allocation.bucket] += allocation.amount
        return paid

    def installments(
        self,
        schedule: List[Installment],
        payments: Iterable[Payment],
        allocations: Iterable[Allocation],
        today: date
    ) -> List[Installment]:
        """Schedule with amount paid and status derived as of today"""
        payments = list(payments)
        allocations = list(allocations)
        return apply_payment_status(schedule, scheduled_amount_paid(payments, allocations), today)
