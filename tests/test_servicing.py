"""
Integration tests for loan servicing

Exercise disbursement, payments, reversals and penalty sweeps end to end
against in-memory storage.
"""

import pytest
import threading
from decimal import Decimal
from datetime import datetime, time, timedelta, timezone

from lending_engine.exceptions import (
    InvalidInputError, OverAllocationError, LoanNotFoundError, PaymentNotFoundError,
    DuplicatePaymentError
)
from lending_engine.models import (
    AllocationBucket, InstallmentStatus, PaymentStatus, PenaltyStatus, LoanTerms
)
from lending_engine.money import sum_money
from lending_engine.penalties import penalty_id_for


def at(day, hour=12):
    return datetime.combine(day, time(hour), tzinfo=timezone.utc)


class TestDisbursement:
    """Test loan disbursement"""

    def test_disburse_writes_schedule(self, servicer, quarter_terms, disbursement_date):
        """Test disbursement stores the loan and schedule"""
        loan = servicer.disburse('LN001', quarter_terms, disbursement_date)

        assert len(loan.schedule) == 3
        assert sum_money(item.total_due for item in loan.schedule) == Decimal('10473.84')

        stored = servicer.get_loan('LN001')
        assert stored.schedule == loan.schedule
        assert stored.terms == quarter_terms

    def test_quote(self, servicer, quarter_terms):
        """Test quoting without disbursing"""
        quote = servicer.quote(quarter_terms)
        assert quote.net_proceeds == Decimal('9770.00')
        assert quote.total_repayable == Decimal('10473.84')

    def test_fresh_balance(self, servicer, quarter_terms, disbursement_date):
        """Test balance right after disbursement"""
        servicer.disburse('LN001', quarter_terms, disbursement_date)
        snapshot = servicer.balance('LN001', disbursement_date)

        assert snapshot.outstanding_principal == Decimal('10000.00')
        assert snapshot.outstanding_interest == Decimal('443.84')
        assert snapshot.outstanding_fees == Decimal('30.00')
        assert snapshot.total_outstanding == Decimal('10473.84')

    def test_duplicate_loan_rejected(self, servicer, quarter_terms, disbursement_date):
        """Test a loan id can only be disbursed once"""
        servicer.disburse('LN001', quarter_terms, disbursement_date)
        with pytest.raises(InvalidInputError, match="already disbursed"):
            servicer.disburse('LN001', quarter_terms, disbursement_date)

    def test_business_limits_enforced(self, servicer, disbursement_date):
        """Test business limits apply at disbursement"""
        terms = LoanTerms(principal='20000000', annual_interest_rate_percent='18', term_days=90)
        with pytest.raises(InvalidInputError, match="maximum limit"):
            servicer.disburse('LN001', terms, disbursement_date)

    def test_unknown_loan(self, servicer, disbursement_date):
        """Test unknown loan ids raise"""
        with pytest.raises(LoanNotFoundError):
            servicer.balance('missing', disbursement_date)


class TestPayments:
    """Test recording and reversing payments"""

    @pytest.fixture(autouse=True)
    def loan(self, servicer, quarter_terms, disbursement_date):
        self.servicer = servicer
        self.disbursed = disbursement_date
        return servicer.disburse('LN001', quarter_terms, disbursement_date)

    def test_payment_follows_waterfall(self):
        """Test payments follow the allocation waterfall"""
        payment, allocations = self.servicer.record_payment(
            'LN001', 'PAY001', Decimal('1000.00'), 'bank_transfer', at(self.disbursed + timedelta(days=10))
        )

        assert payment.status == PaymentStatus.COMPLETED
        assert [(a.bucket, a.amount) for a in allocations] == [
            (AllocationBucket.FEE, Decimal('30.00')),
            (AllocationBucket.INTEREST, Decimal('443.84')),
            (AllocationBucket.PRINCIPAL, Decimal('526.16')),
        ]

        snapshot = self.servicer.balance('LN001', self.disbursed + timedelta(days=10))
        assert snapshot.outstanding_principal == Decimal('9473.84')
        assert snapshot.outstanding_interest == Decimal('0.00')
        assert snapshot.outstanding_fees == Decimal('0.00')

    def test_balance_falls_by_exactly_each_payment(self):
        """Test balance drops by exactly each payment"""
        today = self.disbursed + timedelta(days=5)
        before = self.servicer.balance('LN001', today).total_outstanding

        for number, amount in enumerate(['1000.00', '2500.50', '0.01', '333.33'], start=1):
            self.servicer.record_payment('LN001', f'PAY{number}', amount, 'cash', at(today))
            after = self.servicer.balance('LN001', today).total_outstanding
            assert after == before - Decimal(amount)
            before = after

    def test_settles_to_zero(self):
        """Test paying the total settles the loan"""
        today = self.disbursed + timedelta(days=5)
        total = self.servicer.balance('LN001', today).total_outstanding

        self.servicer.record_payment('LN001', 'PAY001', total, 'online', at(today))

        assert self.servicer.balance('LN001', today).is_settled
        statuses = [item.status for item in self.servicer.installments('LN001', today)]
        assert statuses == [InstallmentStatus.PAID] * 3

    def test_over_allocation_writes_nothing(self):
        """Test a rejected overpayment leaves storage unchanged"""
        with pytest.raises(OverAllocationError):
            self.servicer.record_payment('LN001', 'PAY001', '20000.00', 'cash', at(self.disbursed))

        assert self.servicer.get_payments('LN001') == []
        assert self.servicer.get_allocations('LN001') == []

    def test_duplicate_payment_id(self):
        """Test payment ids are unique"""
        self.servicer.record_payment('LN001', 'PAY001', '100.00', 'cash', at(self.disbursed))
        with pytest.raises(DuplicatePaymentError):
            self.servicer.record_payment('LN001', 'PAY001', '100.00', 'cash', at(self.disbursed))

    def test_invalid_payment_request(self):
        """Test invalid payment requests are rejected"""
        with pytest.raises(InvalidInputError, match="Invalid payment method"):
            self.servicer.record_payment('LN001', 'PAY001', '100.00', 'bitcoin', at(self.disbursed))
        with pytest.raises(InvalidInputError, match="Reference number"):
            self.servicer.record_payment('LN001', 'PAY001', '100.00', 'cash', at(self.disbursed),
                                         reference='X' * 51)

    def test_order_override(self):
        """Test a per-payment allocation order"""
        _, allocations = self.servicer.record_payment(
            'LN001', 'PAY001', '500.00', 'cash', at(self.disbursed),
            order=['principal', 'interest', 'fee', 'penalty']
        )
        assert [(a.bucket, a.amount) for a in allocations] == [
            (AllocationBucket.PRINCIPAL, Decimal('500.00'))
        ]

    def test_reversal_restores_balance(self):
        """Test reversing a payment restores the balance"""
        today = self.disbursed + timedelta(days=5)
        self.servicer.record_payment('LN001', 'PAY001', '1000.00', 'cash', at(today))

        reversal = self.servicer.reverse_payment('LN001', 'PAY001', 'Bounced transfer', at(today, 15))

        assert reversal.payment_id == 'PAY001'
        assert self.servicer.balance('LN001', today).total_outstanding == Decimal('10473.84')
        assert self.servicer.get_payments('LN001')[0].status == PaymentStatus.REVERSED
        assert len(self.servicer.get_reversals('LN001')) == 1

    def test_reversal_errors(self):
        """Test reversal error cases"""
        with pytest.raises(PaymentNotFoundError):
            self.servicer.reverse_payment('LN001', 'missing', 'n/a', at(self.disbursed))

        self.servicer.record_payment('LN001', 'PAY001', '100.00', 'cash', at(self.disbursed))
        self.servicer.reverse_payment('LN001', 'PAY001', 'duplicate', at(self.disbursed))
        with pytest.raises(DuplicatePaymentError):
            self.servicer.reverse_payment('LN001', 'PAY001', 'duplicate', at(self.disbursed))

    def test_concurrent_payments_serialize(self):
        """Test concurrent payments on one loan serialize"""
        today = self.disbursed + timedelta(days=5)
        errors = []

        def pay(number):
            try:
                self.servicer.record_payment('LN001', f'PAY{number:03d}', '100.00', 'cash', at(today))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=pay, args=(n,)) for n in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert self.servicer.balance('LN001', today).total_outstanding == Decimal('9473.84')
        allocated = sum_money(a.amount for a in self.servicer.get_allocations('LN001'))
        assert allocated == Decimal('1000.00')

    def test_idle_loan_locks_released(self):
        """Test per-loan locks are dropped once no operation holds them"""
        today = self.disbursed + timedelta(days=5)
        self.servicer.record_payment('LN001', 'PAY001', '100.00', 'cash', at(today))
        self.servicer.reverse_payment('LN001', 'PAY001', 'duplicate', at(today))

        assert self.servicer._locks == {}

        with self.servicer.loan_lock('LN001'):
            with self.servicer.loan_lock('LN001'):
                assert self.servicer._locks['LN001'][1] == 2
        assert self.servicer._locks == {}


class TestPenalties:
    """Test penalty assessment through the servicer"""

    @pytest.fixture(autouse=True)
    def loan(self, servicer, quarter_terms, disbursement_date):
        self.servicer = servicer
        self.disbursed = disbursement_date
        return servicer.disburse('LN001', quarter_terms, disbursement_date)

    def test_overdue_installment_penalized(self):
        """Test overdue installments are penalized"""
        today = self.disbursed + timedelta(days=40)
        posted = self.servicer.assess_penalties('LN001', today)

        assert len(posted) == 1
        assert posted[0].id == penalty_id_for('LN001', 1)
        assert posted[0].amount == Decimal('244.39')
        assert self.servicer.balance('LN001', today).outstanding_penalties == Decimal('244.39')

    def test_reassessment_replaces_penalty(self):
        """Test reassessment replaces the penalty amount"""
        self.servicer.assess_penalties('LN001', self.disbursed + timedelta(days=40))
        assert self.servicer.assess_penalties('LN001', self.disbursed + timedelta(days=40)) == []

        self.servicer.assess_penalties('LN001', self.disbursed + timedelta(days=50))
        penalties = self.servicer.get_penalties('LN001')
        assert len(penalties) == 1
        assert penalties[0].amount == Decimal('349.13')

    def test_payment_clears_penalty_first(self):
        """Test payments clear penalties first"""
        today = self.disbursed + timedelta(days=40)
        self.servicer.assess_penalties('LN001', today)

        _, allocations = self.servicer.record_payment('LN001', 'PAY001', '300.00', 'cash', at(today))

        assert [(a.bucket, a.amount) for a in allocations] == [
            (AllocationBucket.PENALTY, Decimal('244.39')),
            (AllocationBucket.FEE, Decimal('30.00')),
            (AllocationBucket.INTEREST, Decimal('25.61')),
        ]

    def test_waived_penalty_is_not_reposted(self):
        """Test waived penalties are not posted again"""
        self.servicer.assess_penalties('LN001', self.disbursed + timedelta(days=40))
        waived = self.servicer.waive_penalty('LN001', penalty_id_for('LN001', 1))

        assert waived.status == PenaltyStatus.WAIVED
        assert self.servicer.assess_penalties('LN001', self.disbursed + timedelta(days=50)) == []
        snapshot = self.servicer.balance('LN001', self.disbursed + timedelta(days=50))
        assert snapshot.outstanding_penalties == Decimal('0')

    def test_waive_unknown_penalty(self):
        """Test waiving an unknown penalty raises"""
        with pytest.raises(InvalidInputError, match="not found"):
            self.servicer.waive_penalty('LN001', 'PEN-missing')

    def test_waive_twice_rejected(self):
        """Test a waived penalty cannot be waived again"""
        self.servicer.assess_penalties('LN001', self.disbursed + timedelta(days=40))
        self.servicer.waive_penalty('LN001', penalty_id_for('LN001', 1))

        with pytest.raises(InvalidInputError, match="already waived"):
            self.servicer.waive_penalty('LN001', penalty_id_for('LN001', 1))

    def test_waive_paid_penalty_rejected(self):
        """Test a penalty already covered by a payment cannot be waived"""
        today = self.disbursed + timedelta(days=40)
        self.servicer.assess_penalties('LN001', today)
        self.servicer.record_payment('LN001', 'PAY001', '300.00', 'cash', at(today))

        with pytest.raises(InvalidInputError, match="already been paid"):
            self.servicer.waive_penalty('LN001', penalty_id_for('LN001', 1))

        penalties = self.servicer.get_penalties('LN001')
        assert [p.status for p in penalties] == [PenaltyStatus.ACTIVE]
        assert self.servicer.balance('LN001', today).outstanding_penalties == Decimal('0')

    def test_sweep_across_loans(self, quarter_terms):
        """Test penalty sweep across loans"""
        self.servicer.disburse('LN002', quarter_terms, self.disbursed + timedelta(days=20))

        results = self.servicer.run_penalty_sweep(self.disbursed + timedelta(days=40), max_workers=2)

        assert sorted(results) == ['LN001', 'LN002']
        assert [p.amount for p in results['LN001']] == [Decimal('244.39')]
        assert results['LN002'] == []
