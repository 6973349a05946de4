"""
Loan Servicing Module

Call-site orchestration of the calculators against the persistence
collaborator: disbursement writes the schedule once, each payment is
allocated against a freshly derived balance, reversals are recorded as
separate events, and overdue sweeps post penalties. Every write for one
loan is serialized behind that loan's lock.
"""

from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import threading
import uuid

from .config import EngineConfig, get_config
from .storage import StorageInterface
from .models import (
    Loan, LoanTerms, Installment, Payment, PaymentStatus, PaymentReversal,
    Allocation, AllocationBucket, Penalty, PenaltyStatus, BalanceSnapshot
)
from .exceptions import (
    InvalidInputError, LoanNotFoundError, PaymentNotFoundError, DuplicatePaymentError
)
from .interest import InterestCalculator
from .fees import FeeCalculator, LoanQuote
from .schedule import ScheduleGenerator
from .penalties import PenaltyCalculator
from .allocation import PaymentAllocator
from .balance import BalanceTracker
from .validation import validate_terms, validate_payment_request, require_valid
from .logging_config import get_logger, log_action


class LoanServicer:
    """
    Services disbursed loans

    Holds only the per-loan locks; all loan state lives in storage.
    """

    def __init__(
        self,
        storage: StorageInterface,
        config: Optional[EngineConfig] = None
    ):
        self.storage = storage
        self.config = config or get_config()

        self.interest_calculator = InterestCalculator(days_in_year=self.config.days_in_year)
        self.fee_calculator = FeeCalculator()
        self.schedule_generator = ScheduleGenerator(tolerance=Decimal(self.config.schedule_tolerance))
        self.penalty_calculator = PenaltyCalculator()
        self.allocator = PaymentAllocator(default_order=self.config.allocation_order)
        self.balance_tracker = BalanceTracker(self.interest_calculator)
        self.logger = get_logger("lending.servicing")

        self.loans_table = "loans"
        self.payments_table = "loan_payments"
        self.allocations_table = "payment_allocations"
        self.penalties_table = "loan_penalties"
        self.reversals_table = "payment_reversals"

        # loan_id -> [lock, holders]; entries are dropped once no thread uses them
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def loan_lock(self, loan_id: str):
        """Serialize every read-modify-write on one loan"""
        with self._locks_guard:
            entry = self._locks.setdefault(loan_id, [threading.RLock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[loan_id]

    def quote(self, terms: LoanTerms) -> LoanQuote:
        """Price terms without disbursing"""
        require_valid(validate_terms(terms, self.config), "quote")
        return self.fee_calculator.quote(terms, self.interest_calculator)

    def disburse(self, loan_id: str, terms: LoanTerms, disbursement_date: date) -> Loan:
        """
        Disburse a loan and write its repayment schedule

        Args:
            loan_id: New loan ID
            terms: Loan terms, immutable from here on
            disbursement_date: Date funds were released

        Returns:
            Loan with its schedule
        """
        require_valid(validate_terms(terms, self.config), "disbursement")

        with self.loan_lock(loan_id):
            if self.storage.exists(self.loans_table, loan_id):
                raise InvalidInputError(f"Loan {loan_id} is already disbursed")

            quote = self.fee_calculator.quote(terms, self.interest_calculator)
            schedule = self.schedule_generator.generate(
                principal=terms.principal,
                total_interest=quote.interest,
                total_amount=quote.total_repayable,
                term_days=terms.term_days,
                payment_frequency=terms.payment_frequency,
                disbursement_date=disbursement_date,
                total_fees=self.fee_calculator.scheduled_fees(terms)
            )

            loan = Loan(
                id=loan_id,
                terms=terms,
                disbursement_date=disbursement_date,
                schedule=schedule
            )
            self.storage.save(self.loans_table, loan.id, loan.to_dict())

        log_action(
            self.logger, "info", "Loan disbursed",
            loan_id=loan_id, action="disburse_loan", resource=f"loan:{loan_id}",
            extra={
                "principal": str(terms.principal),
                "interest": str(quote.interest),
                "net_proceeds": str(quote.net_proceeds),
                "total_repayable": str(quote.total_repayable),
                "installments": len(schedule)
            }
        )
        return loan

    def get_loan(self, loan_id: str) -> Loan:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if not data:
            raise LoanNotFoundError(loan_id)
        return Loan.from_dict(data)

    def get_payments(self, loan_id: str) -> List[Payment]:
        """Payment history for a loan, oldest first"""
        payments = [Payment.from_dict(data)
                    for data in self.storage.find(self.payments_table, {"loan_id": loan_id})]
        payments.sort(key=lambda payment: (payment.paid_at, payment.id))
        return payments

    def get_allocations(self, loan_id: str) -> List[Allocation]:
        return [Allocation.from_dict(data)
                for data in self.storage.find(self.allocations_table, {"loan_id": loan_id})]

    def get_penalties(self, loan_id: str) -> List[Penalty]:
        penalties = [Penalty.from_dict(data)
                     for data in self.storage.find(self.penalties_table, {"loan_id": loan_id})]
        penalties.sort(key=lambda penalty: penalty.installment_number)
        return penalties

    def get_reversals(self, loan_id: str) -> List[PaymentReversal]:
        return [PaymentReversal.from_dict(data)
                for data in self.storage.find(self.reversals_table, {"loan_id": loan_id})]

    def balance(self, loan_id: str, today: date) -> BalanceSnapshot:
        """Current balance snapshot, recomputed from stored history"""
        loan = self.get_loan(loan_id)
        return self.balance_tracker.snapshot(
            terms=loan.terms,
            schedule=loan.schedule,
            payments=self.get_payments(loan_id),
            allocations=self.get_allocations(loan_id),
            penalties=self.get_penalties(loan_id),
            today=today,
            disbursement_date=loan.disbursement_date
        )

    def installments(self, loan_id: str, today: date) -> List[Installment]:
        """Schedule with statuses derived from payments to date"""
        loan = self.get_loan(loan_id)
        return self.balance_tracker.installments(
            loan.schedule, self.get_payments(loan_id), self.get_allocations(loan_id), today
        )

    def record_payment(
        self,
        loan_id: str,
        payment_id: str,
        amount,
        method,
        paid_at: datetime,
        reference: Optional[str] = None,
        order: Optional[Sequence] = None
    ) -> Tuple[Payment, List[Allocation]]:
        """
        Record a payment and allocate it through the waterfall

        Args:
            loan_id: Loan being paid
            payment_id: Caller-assigned payment ID
            amount: Amount received
            method: Payment method
            paid_at: When the payment was received; its date is the balance date
            reference: External reference number
            order: Optional allocation order override

        Returns:
            The stored Payment and its Allocation records

        Raises:
            OverAllocationError: If amount exceeds the outstanding balance
        """
        require_valid(
            validate_payment_request(amount, method, reference=reference, config=self.config),
            "payment"
        )

        with self.loan_lock(loan_id):
            loan = self.get_loan(loan_id)
            if self.storage.exists(self.payments_table, payment_id):
                raise DuplicatePaymentError(f"Payment {payment_id} is already recorded")

            payment = Payment(
                id=payment_id,
                loan_id=loan.id,
                amount=amount,
                method=method,
                paid_at=paid_at,
                reference=reference
            )
            snapshot = self.balance(loan_id, paid_at.date())
            allocations = self.allocator.allocate(payment.id, payment.amount, snapshot, order)

            with self.storage.atomic():
                self.storage.save(self.payments_table, payment.id, payment.to_dict())
                for allocation in allocations:
                    record = allocation.to_dict()
                    record["loan_id"] = loan_id
                    self.storage.save(
                        self.allocations_table,
                        f"{payment.id}:{allocation.bucket.value}",
                        record
                    )

        log_action(
            self.logger, "info", "Payment allocated",
            loan_id=loan_id, payment_id=payment_id, action="record_payment",
            resource=f"payment:{payment_id}",
            extra={
                "amount": str(payment.amount),
                "method": payment.method.value,
                "allocations": {a.bucket.value: str(a.amount) for a in allocations},
                "outstanding_before": str(snapshot.total_outstanding)
            }
        )
        return payment, allocations

    def reverse_payment(
        self,
        loan_id: str,
        payment_id: str,
        reason: str,
        reversed_at: datetime
    ) -> PaymentReversal:
        """Reverse a completed payment; its allocations stop counting"""
        with self.loan_lock(loan_id):
            self.get_loan(loan_id)
            data = self.storage.load(self.payments_table, payment_id)
            if not data or data["loan_id"] != loan_id:
                raise PaymentNotFoundError(payment_id, loan_id)

            payment = Payment.from_dict(data)
            if payment.status == PaymentStatus.REVERSED:
                raise DuplicatePaymentError(f"Payment {payment_id} is already reversed")

            reversal = PaymentReversal(
                id=str(uuid.uuid4()),
                loan_id=loan_id,
                payment_id=payment_id,
                reason=reason,
                reversed_at=reversed_at
            )
            with self.storage.atomic():
                self.storage.save(self.reversals_table, reversal.id, reversal.to_dict())
                self.storage.save(self.payments_table, payment.id, payment.reversed().to_dict())

        log_action(
            self.logger, "info", "Payment reversed",
            loan_id=loan_id, payment_id=payment_id, action="reverse_payment",
            resource=f"payment:{payment_id}",
            extra={"amount": str(payment.amount), "reason": reason}
        )
        return reversal

    def assess_penalties(self, loan_id: str, today: date) -> List[Penalty]:
        """
        Re-evaluate late penalties for one loan

        Returns:
            Penalties posted or increased by this evaluation
        """
        with self.loan_lock(loan_id):
            loan = self.get_loan(loan_id)
            installments = self.balance_tracker.installments(
                loan.schedule, self.get_payments(loan_id), self.get_allocations(loan_id), today
            )
            result = self.penalty_calculator.sweep(
                loan_id, installments, loan.terms, self.get_penalties(loan_id), today
            )
            with self.storage.atomic():
                for penalty in result.posted:
                    self.storage.save(self.penalties_table, penalty.id, penalty.to_dict())

        if result.posted:
            log_action(
                self.logger, "info", "Late penalties posted",
                loan_id=loan_id, action="assess_penalties", resource=f"loan:{loan_id}",
                extra={
                    "penalties": {p.installment_number: str(p.amount) for p in result.posted},
                    "total": str(result.total_posted)
                }
            )
        return result.posted

    def run_penalty_sweep(
        self,
        today: date,
        loan_ids: Optional[Iterable[str]] = None,
        max_workers: Optional[int] = None
    ) -> Dict[str, List[Penalty]]:
        """
        Assess penalties across many loans in parallel

        Loans are independent; each loan's writes still go through its lock.
        A failure on one loan propagates after the pool drains.
        """
        if loan_ids is None:
            loan_ids = [data["id"] for data in self.storage.load_all(self.loans_table)]
        loan_ids = sorted(loan_ids)
        workers = max_workers or self.config.sweep_max_workers

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {loan_id: executor.submit(self.assess_penalties, loan_id, today)
                       for loan_id in loan_ids}
            results = {loan_id: future.result() for loan_id, future in futures.items()}

        self.logger.info(
            f"Penalty sweep for {today.isoformat()}: {len(loan_ids)} loans, "
            f"{sum(len(posted) for posted in results.values())} penalties posted"
        )
        return results

    def waive_penalty(self, loan_id: str, penalty_id: str) -> Penalty:
        """Waive an active penalty; it is never re-posted"""
        with self.loan_lock(loan_id):
            data = self.storage.load(self.penalties_table, penalty_id)
            if not data or data["loan_id"] != loan_id:
                raise InvalidInputError(f"Penalty {penalty_id} not found on loan {loan_id}")

            penalty = Penalty.from_dict(data)
            if penalty.status != PenaltyStatus.ACTIVE:
                raise InvalidInputError(f"Penalty {penalty_id} is already {penalty.status.value}")

            # Allocations pay the penalty bucket as a whole; waiving must not
            # leave more paid than the remaining active penalties
            paid = self.balance_tracker.paid_to_date(
                self.get_payments(loan_id), self.get_allocations(loan_id)
            )[AllocationBucket.PENALTY]
            other_active = sum(
                (other.amount for other in self.get_penalties(loan_id)
                 if other.is_active and other.id != penalty.id),
                Decimal('0')
            )
            if paid > other_active:
                raise InvalidInputError(f"Penalty {penalty_id} has already been paid")

            penalty.status = PenaltyStatus.WAIVED
            self.storage.save(self.penalties_table, penalty.id, penalty.to_dict())

        log_action(
            self.logger, "info", "Penalty waived",
            loan_id=loan_id, action="waive_penalty", resource=f"penalty:{penalty_id}",
            extra={"amount": str(penalty.amount)}
        )
        return penalty
