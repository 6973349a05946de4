"""
Repayment Schedule Module

Generates the fixed installment plan written once at disbursement and
derives installment statuses from payments made to date. The plan itself
is never recalculated after creation.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import replace
from typing import Iterable, List, Optional, Union

from .money import ZERO, CENT, to_decimal, round_money, sum_money
from .exceptions import InvalidInputError, ScheduleIntegrityError
from .models import (
    Installment, InstallmentStatus, PaymentFrequency, Allocation, AllocationBucket,
    Payment
)
from .logging_config import get_logger


class ScheduleGenerator:
    """
    Equal-installment schedule generation

    The last installment absorbs every rounding remainder so the schedule
    sums exactly to the total amount.
    """

    def __init__(self, tolerance: Decimal = CENT):
        self.tolerance = to_decimal(tolerance)
        self.logger = get_logger("lending.schedule")

    def generate(
        self,
        principal,
        total_interest,
        total_amount,
        term_days: int,
        payment_frequency: Union[PaymentFrequency, str],
        disbursement_date: date,
        total_fees=ZERO
    ) -> List[Installment]:
        """
        Generate an ordered installment list

        Args:
            principal: Loan principal
            total_interest: Interest for the full term
            total_amount: principal + total_interest + total_fees
            term_days: Loan term in days
            payment_frequency: daily, weekly or monthly
            disbursement_date: Date funds were released
            total_fees: Fees repaid through the schedule

        Returns:
            Installments numbered from 1, due every step days after disbursement

        Raises:
            InvalidInputError: If any input is rejected
            ScheduleIntegrityError: If the generated plan does not sum to total_amount
        """
        principal, total_interest, total_amount, total_fees, frequency = self._validated(
            principal, total_interest, total_amount, term_days, payment_frequency, total_fees
        )

        count = frequency.installment_count(term_days)
        step = frequency.step_days

        installment_amount = round_money(total_amount / Decimal(count))
        if installment_amount <= ZERO or installment_amount * (count - 1) > total_amount:
            raise InvalidInputError(
                f"Total amount {total_amount} is too small for {count} installments"
            )
        schedule = []
        principal_scheduled = ZERO
        interest_scheduled = ZERO
        fees_scheduled = ZERO
        amount_scheduled = ZERO

        for number in range(1, count + 1):
            if number < count:
                amount = installment_amount
                # Principal and fee take the installment's share of the total
                fee_due = min(amount, round_money(amount * total_fees / total_amount),
                              total_fees - fees_scheduled)
                principal_due = min(amount - fee_due, round_money(amount * principal / total_amount),
                                    principal - principal_scheduled)
                interest_due = amount - principal_due - fee_due

                excess = interest_due - (total_interest - interest_scheduled)
                if excess > ZERO:
                    # Interest may not run ahead of its own total
                    shift = min(excess, principal - principal_scheduled - principal_due)
                    principal_due += shift
                    fee_due += excess - shift
                    interest_due -= excess
            else:
                # Final installment takes whatever is left in each component
                amount = total_amount - amount_scheduled
                principal_due = principal - principal_scheduled
                fee_due = total_fees - fees_scheduled
                interest_due = total_interest - interest_scheduled

            if min(amount, principal_due, fee_due, interest_due) < ZERO:
                raise ScheduleIntegrityError(amount_scheduled + amount, total_amount)

            schedule.append(Installment(
                installment_number=number,
                due_date=disbursement_date + timedelta(days=number * step),
                principal_due=principal_due,
                interest_due=interest_due,
                fee_due=fee_due
            ))

            principal_scheduled += principal_due
            interest_scheduled += interest_due
            fees_scheduled += fee_due
            amount_scheduled += amount

        self.verify(schedule, total_amount)

        self.logger.debug(
            f"Generated {count} {frequency.value} installments of {installment_amount} "
            f"totalling {total_amount}"
        )
        return schedule

    def verify(self, schedule: List[Installment], expected_total) -> None:
        """
        Check the schedule sums to the expected total within tolerance

        Raises:
            ScheduleIntegrityError: On any mismatch; this indicates a defect
        """
        expected_total = to_decimal(expected_total)
        scheduled_total = sum_money(installment.total_due for installment in schedule)
        numbers = [installment.installment_number for installment in schedule]

        if numbers != list(range(1, len(schedule) + 1)) or \
                abs(scheduled_total - expected_total) > self.tolerance:
            self.logger.error(
                f"Schedule integrity violation: scheduled {scheduled_total}, "
                f"expected {expected_total}, numbers {numbers}"
            )
            raise ScheduleIntegrityError(scheduled_total, expected_total)

    def _validated(self, principal, total_interest, total_amount, term_days,
                   payment_frequency, total_fees):
        errors = []
        values = {}
        for label, value in (("Principal", principal), ("Total interest", total_interest),
                             ("Total amount", total_amount), ("Total fees", total_fees)):
            try:
                values[label] = round_money(value)
            except ValueError:
                errors.append(f"{label} must be a decimal number")

        if "Principal" in values and values["Principal"] <= ZERO:
            errors.append("Principal must be greater than 0")
        for label in ("Total interest", "Total fees"):
            if label in values and values[label] < ZERO:
                errors.append(f"{label} cannot be negative")

        if not isinstance(term_days, int) or isinstance(term_days, bool) or term_days <= 0:
            errors.append("Loan term must be greater than 0 days")

        frequency = payment_frequency
        if not isinstance(frequency, PaymentFrequency):
            try:
                frequency = PaymentFrequency(str(payment_frequency).strip().lower())
            except ValueError:
                errors.append(f"Unknown payment frequency '{payment_frequency}'")

        if not errors:
            components = values["Principal"] + values["Total interest"] + values["Total fees"]
            if components != values["Total amount"]:
                errors.append(
                    f"Total amount {values['Total amount']} does not equal principal + "
                    f"interest + fees ({components})"
                )

        if errors:
            raise InvalidInputError(errors)

        return (values["Principal"], values["Total interest"], values["Total amount"],
                values["Total fees"], frequency)


def scheduled_amount_paid(payments: Iterable[Payment], allocations: Iterable[Allocation]) -> Decimal:
    """
    Amount of completed payments applied to scheduled buckets

    Penalty allocations are excluded; penalties are not part of the schedule.
    """
    completed = {payment.id for payment in payments if payment.is_completed}
    return sum_money(
        allocation.amount for allocation in allocations
        if allocation.payment_id in completed and allocation.bucket != AllocationBucket.PENALTY
    )


def apply_payment_status(
    schedule: List[Installment],
    amount_paid,
    today: date
) -> List[Installment]:
    """
    Derive per-installment amount paid and status from payments to date

    Payments cover installments in order. An installment is paid when fully
    covered, partial when partly covered, overdue when nothing has been paid
    and its due date has passed, and pending otherwise. Returns new
    Installment objects; the input schedule is not modified.
    """
    remaining = to_decimal(amount_paid)
    result = []
    for installment in sorted(schedule, key=lambda item: item.installment_number):
        covered = min(max(remaining, ZERO), installment.total_due)
        remaining -= covered

        if covered >= installment.total_due:
            status = InstallmentStatus.PAID
        elif covered > ZERO:
            status = InstallmentStatus.PARTIAL
        elif installment.due_date < today:
            status = InstallmentStatus.OVERDUE
        else:
            status = InstallmentStatus.PENDING

        result.append(replace(installment, amount_paid=covered, status=status))
    return result


def next_due_installment(schedule: List[Installment]) -> Optional[Installment]:
    """First installment that is not fully paid"""
    for installment in schedule:
        if installment.status != InstallmentStatus.PAID:
            return installment
    return None
