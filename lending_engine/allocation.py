"""
Payment Allocation Module

Applies a payment to balance buckets in waterfall order. The default
waterfall is penalty, fee, interest, principal; products may pass their
own order. Each bucket receives at most one allocation per payment.
"""

from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union

from .money import ZERO, to_decimal, round_money, sum_money
from .exceptions import InvalidInputError, OverAllocationError
from .models import (
    Allocation, AllocationBucket, BalanceSnapshot, DEFAULT_ALLOCATION_ORDER
)
from .logging_config import get_logger

BucketLike = Union[AllocationBucket, str]


def resolve_order(order: Optional[Sequence[BucketLike]] = None) -> Tuple[AllocationBucket, ...]:
    """
    Normalise an allocation order

    Raises:
        InvalidInputError: On unknown or repeated buckets
    """
    if order is None:
        return DEFAULT_ALLOCATION_ORDER

    resolved = []
    errors = []
    for item in order:
        if isinstance(item, AllocationBucket):
            bucket = item
        else:
            try:
                bucket = AllocationBucket(str(item).strip().lower())
            except ValueError:
                errors.append(f"Unknown allocation bucket '{item}'")
                continue
        if bucket in resolved:
            errors.append(f"Allocation bucket '{bucket.value}' appears more than once")
            continue
        resolved.append(bucket)

    if not resolved and not errors:
        errors.append("Allocation order must name at least one bucket")
    if errors:
        raise InvalidInputError(errors)
    return tuple(resolved)


class PaymentAllocator:
    """
    Waterfall allocation of a payment across a balance snapshot.

    The caller must serialize allocations per loan: the snapshot passed in
    has to be the loan's current balance, and no other allocation for the
    same loan may be in flight.
    """

    def __init__(self, default_order: Optional[Sequence[BucketLike]] = None):
        self.default_order = resolve_order(default_order)
        self.logger = get_logger("lending.allocation")

    def allocate(
        self,
        payment_id: str,
        amount,
        snapshot: BalanceSnapshot,
        order: Optional[Sequence[BucketLike]] = None
    ) -> List[Allocation]:
        """
        Allocate a payment amount across the snapshot's buckets

        Args:
            payment_id: Payment being allocated
            amount: Payment amount, positive with at most 2 decimals
            snapshot: Current balance of the loan
            order: Optional waterfall override

        Returns:
            One Allocation per bucket that received a non-zero amount, in
            waterfall order, summing exactly to amount

        Raises:
            InvalidInputError: On a non-positive amount or a bad order
            OverAllocationError: If the buckets cannot absorb the whole amount
        """
        amount = self._validated_amount(amount)
        waterfall = resolve_order(order) if order is not None else self.default_order

        if amount > snapshot.total_outstanding:
            raise OverAllocationError(amount, snapshot.total_outstanding)

        reachable = sum_money(snapshot.bucket_balance(bucket) for bucket in waterfall)
        if amount > reachable:
            # Override orders may leave buckets out
            raise OverAllocationError(amount, reachable)

        allocations = []
        remaining = amount
        for bucket in waterfall:
            if remaining == ZERO:
                break
            allocated = min(remaining, snapshot.bucket_balance(bucket))
            if allocated > ZERO:
                allocations.append(Allocation(payment_id=payment_id, bucket=bucket, amount=allocated))
                remaining -= allocated

        if remaining != ZERO:
            raise OverAllocationError(amount, amount - remaining)

        self.logger.debug(
            f"Payment {payment_id} of {amount} allocated: "
            + ", ".join(f"{a.bucket.value}={a.amount}" for a in allocations)
        )
        return allocations

    def apply(self, snapshot: BalanceSnapshot, allocations: Sequence[Allocation]) -> BalanceSnapshot:
        """Snapshot after the given allocations are applied"""
        paid = {bucket: ZERO for bucket in AllocationBucket}
        for allocation in allocations:
            paid[allocation.bucket] += allocation.amount

        return BalanceSnapshot(
            outstanding_principal=snapshot.outstanding_principal - paid[AllocationBucket.PRINCIPAL],
            outstanding_interest=snapshot.outstanding_interest - paid[AllocationBucket.INTEREST],
            outstanding_fees=snapshot.outstanding_fees - paid[AllocationBucket.FEE],
            outstanding_penalties=snapshot.outstanding_penalties - paid[AllocationBucket.PENALTY],
            as_of=snapshot.as_of
        )

    def _validated_amount(self, amount) -> Decimal:
        try:
            amount = to_decimal(amount)
        except ValueError:
            raise InvalidInputError("Payment amount must be a decimal number")
        if amount <= ZERO:
            raise InvalidInputError("Payment amount must be greater than 0")
        if round_money(amount) != amount:
            raise InvalidInputError("Payment amount cannot have more than 2 decimal places")
        return amount
