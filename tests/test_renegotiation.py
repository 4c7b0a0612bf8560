"""
Test suite for loan renegotiation

The new principal is the sum of what is still owed on the selected loans;
their unpaid installments are frozen and can no longer be paid.
"""

import pytest
from decimal import Decimal
from datetime import date

from lending_core.audit import AuditTrail, AuditEventType
from lending_core.clients import ClientManager
from lending_core.currency import Money, Currency
from lending_core.dates import FixedClock
from lending_core.exceptions import InvalidScheduleInput, LoanClosed, RenegotiationError
from lending_core.ledger import InstallmentLedger
from lending_core.loans import LoanManager, LoanStatus
from lending_core.payments import PaymentAllocator
from lending_core.renegotiation import RenegotiationEngine
from lending_core.storage import InMemoryStorage


class TestRenegotiation:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.clock = FixedClock(date(2024, 1, 1))
        self.audit = AuditTrail(self.storage)
        self.ledger = InstallmentLedger(self.storage, self.clock)
        self.clients = ClientManager(self.storage, self.audit, self.clock)
        self.loans = LoanManager(self.storage, self.ledger, self.audit, self.clock, client_manager=self.clients)
        self.allocator = PaymentAllocator(self.storage, self.ledger, self.loans, self.audit, self.clock)
        self.engine = RenegotiationEngine(self.storage, self.loans, self.ledger, self.audit, self.clock)

        self.client = self.clients.create_client("João Lima")
        # 500 owed each; 100 paid on the first loan leaves 900 outstanding in total
        self.loan_a = self.loans.create_loan(self.client.id, "500", "0", "WEEKLY", 5, date(2024, 1, 1))
        self.loan_b = self.loans.create_loan(self.client.id, "400", "25", "WEEKLY", 5, date(2024, 1, 1))
        self.allocator.apply_payment(f"{self.loan_a.id}_1", payment_type="FULL")

    def renegotiate(self, loan_ids=None, **overrides):
        terms = dict(interest_rate="10", frequency="MONTHLY", installment_count=3, start_date="2024-02-01")
        terms.update(overrides)
        if loan_ids is None:
            loan_ids = [self.loan_a.id, self.loan_b.id]
        return self.engine.renegotiate(self.client.id, loan_ids, **terms)

    def test_principal_is_outstanding_balance(self):
        new_loan = self.renegotiate(created_by="op-1")

        assert new_loan.principal == Money(Decimal('900.00'))
        assert new_loan.total_amount == Money(Decimal('990.00'))
        assert new_loan.status == LoanStatus.ACTIVE
        assert set(new_loan.renegotiated_from) == {self.loan_a.id, self.loan_b.id}
        assert len(self.ledger.get_loan_installments(new_loan.id)) == 3

    def test_sources_closed_and_frozen(self):
        new_loan = self.renegotiate()

        for source_id in (self.loan_a.id, self.loan_b.id):
            source = self.loans.get_loan(source_id)
            assert source.status == LoanStatus.RENEGOTIATED
            assert source.renegotiated_into == new_loan.id

        installments_a = self.ledger.get_loan_installments(self.loan_a.id)
        assert not installments_a[0].frozen
        assert all(i.frozen for i in installments_a[1:])
        assert self.ledger.outstanding_balance(self.loan_a.id) == Money.zero()

    def test_frozen_installments_not_payable(self):
        self.renegotiate()
        with pytest.raises(LoanClosed):
            self.allocator.apply_payment(f"{self.loan_b.id}_1", payment_type="FULL")

    def test_debt_not_double_counted(self):
        self.renegotiate()
        open_installments = self.ledger.get_client_installments(self.client.id)
        total = sum(i.remaining.amount for i in open_installments)
        assert total == Decimal('990.00')

    def test_audit_event(self):
        new_loan = self.renegotiate(created_by="op-1")
        events = self.audit.get_events_by_type(AuditEventType.LOAN_RENEGOTIATED)

        assert len(events) == 1
        assert events[0].entity_id == new_loan.id
        assert events[0].metadata["consolidated_principal"] == "900.00"
        assert events[0].metadata["frozen_installments"] == 9
        assert self.audit.verify_integrity()['valid'] is True

    def test_duplicate_ids_counted_once(self):
        new_loan = self.renegotiate([self.loan_b.id, self.loan_b.id])
        assert new_loan.principal == Money(Decimal('500.00'))

    def test_preview_writes_nothing(self):
        events_before = self.audit.count_events()
        preview = self.engine.preview(
            self.client.id, [self.loan_a.id, self.loan_b.id], "10", "MONTHLY", 3, "2024-02-01"
        )

        assert preview.principal == Money(Decimal('900.00'))
        assert preview.total_amount == Money(Decimal('990.00'))
        assert [row.amount.amount for row in preview.schedule] == [
            Decimal('330.00'), Decimal('330.00'), Decimal('330.00')
        ]
        assert self.audit.count_events() == events_before
        assert len(self.loans.list_loans()) == 2
        assert self.loans.get_loan(self.loan_a.id).status == LoanStatus.ACTIVE

    def test_empty_selection(self):
        with pytest.raises(RenegotiationError):
            self.renegotiate([])

    def test_unknown_loan(self):
        with pytest.raises(RenegotiationError):
            self.renegotiate([self.loan_a.id, "missing"])

    def test_loan_of_another_client(self):
        other = self.clients.create_client("Ana Paula")
        other_loan = self.loans.create_loan(other.id, "100", "0", "WEEKLY", 1, date(2024, 1, 1))
        with pytest.raises(RenegotiationError):
            self.renegotiate([self.loan_a.id, other_loan.id])

    def test_already_renegotiated_loan(self):
        self.renegotiate([self.loan_a.id])
        with pytest.raises(RenegotiationError):
            self.renegotiate([self.loan_a.id])

    def test_paid_loan(self):
        for installment in self.ledger.get_loan_installments(self.loan_a.id)[1:]:
            self.allocator.apply_payment(installment.id, payment_type="FULL")
        with pytest.raises(RenegotiationError):
            self.renegotiate([self.loan_a.id])

    def test_mixed_currencies(self):
        usd_loan = self.loans.create_loan(
            self.client.id, "100", "0", "WEEKLY", 1, date(2024, 1, 1), currency=Currency.USD
        )
        with pytest.raises(RenegotiationError):
            self.renegotiate([self.loan_a.id, usd_loan.id])

    def test_invalid_terms_leave_sources_untouched(self):
        with pytest.raises(InvalidScheduleInput):
            self.renegotiate(installment_count=0)

        assert self.loans.get_loan(self.loan_a.id).status == LoanStatus.ACTIVE
        assert not any(i.frozen for i in self.ledger.get_loan_installments(self.loan_b.id))
        assert len(self.loans.list_loans()) == 2

    def test_failure_mid_way_rolls_back(self, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(self.ledger, "freeze_unpaid", fail)
        with pytest.raises(RuntimeError):
            self.renegotiate()

        assert len(self.loans.list_loans()) == 2
        assert self.loans.get_loan(self.loan_b.id).status == LoanStatus.ACTIVE
        assert self.audit.get_events_by_type(AuditEventType.LOAN_RENEGOTIATED) == []
