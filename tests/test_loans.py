"""
Test suite for loans module

Tests loan creation, schedule persistence, client checks and the audit
events written alongside. All financial math must be precise.
"""

import pytest
from decimal import Decimal
from datetime import date

from lending_core.audit import AuditTrail, AuditEventType
from lending_core.clients import ClientManager
from lending_core.currency import Money, Currency
from lending_core.dates import FixedClock
from lending_core.exceptions import ClientNotFound, InvalidScheduleInput, LoanNotFound
from lending_core.ledger import InstallmentLedger
from lending_core.loans import Loan, LoanManager, LoanStatus
from lending_core.schedule import PaymentFrequency
from lending_core.storage import InMemoryStorage


class TestLoanCreation:
    """Test loan creation and its schedule"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.clock = FixedClock(date(2024, 1, 1))
        self.audit = AuditTrail(self.storage)
        self.ledger = InstallmentLedger(self.storage, self.clock)
        self.loan_manager = LoanManager(self.storage, self.ledger, self.audit, self.clock)

    def test_create_loan(self):
        """1000 at 10% daily in 10 installments"""
        loan = self.loan_manager.create_loan(
            client_id="c1",
            principal="1000",
            interest_rate="10",
            frequency="DAILY",
            installment_count=10,
            start_date="2024-01-01",
            created_by="op-1"
        )

        assert loan.status == LoanStatus.ACTIVE
        assert loan.principal == Money(Decimal('1000.00'))
        assert loan.total_amount == Money(Decimal('1100.00'))
        assert loan.interest_total == Money(Decimal('100.00'))
        assert loan.payment_frequency == PaymentFrequency.DAILY
        assert loan.currency == Currency.BRL
        assert loan.late_fee_enabled is True
        assert loan.late_fee_rate == Decimal('1')

        installments = self.loan_manager.get_installments(loan.id)
        assert len(installments) == 10
        assert all(i.amount == Money(Decimal('110.00')) for i in installments)
        assert self.ledger.outstanding_balance(loan.id) == loan.total_amount

    def test_loan_round_trip(self):
        loan = self.loan_manager.create_loan("c1", "250.50", "12.5", "MONTHLY", 4, date(2024, 1, 31))
        stored = self.loan_manager.get_loan(loan.id)

        assert stored == loan
        assert Loan.from_dict(loan.to_dict()) == loan

    def test_usd_loan(self):
        loan = self.loan_manager.create_loan("c1", "100", "0", "WEEKLY", 2, date(2024, 1, 1), currency=Currency.USD)
        assert loan.currency == Currency.USD
        assert self.ledger.outstanding_balance(loan.id, Currency.USD) == Money(Decimal('100'), Currency.USD)

    def test_custom_late_fee(self):
        loan = self.loan_manager.create_loan(
            "c1", "100", "0", "WEEKLY", 2, date(2024, 1, 1), late_fee_enabled=False, late_fee_rate="2,5"
        )
        assert loan.late_fee_enabled is False
        assert loan.late_fee_rate == Decimal('2.5')

    @pytest.mark.parametrize("rate", ["-1", "abc"])
    def test_invalid_late_fee_rate(self, rate):
        with pytest.raises(InvalidScheduleInput):
            self.loan_manager.create_loan("c1", "100", "0", "WEEKLY", 2, date(2024, 1, 1), late_fee_rate=rate)

    def test_invalid_terms_write_nothing(self):
        with pytest.raises(InvalidScheduleInput):
            self.loan_manager.create_loan("c1", "0", "10", "DAILY", 10, date(2024, 1, 1))

        assert self.loan_manager.list_loans() == []
        assert self.ledger.all_installments() == []
        assert self.audit.count_events() == 0

    def test_audit_event(self):
        loan = self.loan_manager.create_loan("c1", "1000", "10", "DAILY", 10, date(2024, 1, 1), created_by="op-1")
        events = self.audit.get_events_for_entity("loan", loan.id)

        assert len(events) == 1
        assert events[0].event_type == AuditEventType.LOAN_CREATED
        assert events[0].metadata["total_amount"] == "1100.00"
        assert events[0].user_id == "op-1"

    def test_failure_after_schedule_rolls_back(self, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("audit unavailable")

        monkeypatch.setattr(self.audit, "log_event", fail)
        with pytest.raises(RuntimeError):
            self.loan_manager.create_loan("c1", "1000", "10", "DAILY", 10, date(2024, 1, 1))

        assert self.loan_manager.list_loans() == []
        assert self.ledger.all_installments() == []


class TestLoanQueries:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.clock = FixedClock(date(2024, 1, 1))
        self.audit = AuditTrail(self.storage)
        self.ledger = InstallmentLedger(self.storage, self.clock)
        self.loan_manager = LoanManager(self.storage, self.ledger, self.audit, self.clock)

    def test_require_loan(self):
        assert self.loan_manager.get_loan("missing") is None
        with pytest.raises(LoanNotFound):
            self.loan_manager.require_loan("missing")
        with pytest.raises(LoanNotFound):
            self.loan_manager.get_installments("missing")

    def test_client_loans_and_status_filter(self):
        first = self.loan_manager.create_loan("c1", "100", "0", "WEEKLY", 1, date(2024, 1, 1))
        second = self.loan_manager.create_loan("c1", "200", "0", "WEEKLY", 1, date(2024, 1, 1))
        other = self.loan_manager.create_loan("c2", "300", "0", "WEEKLY", 1, date(2024, 1, 1))

        second.status = LoanStatus.PAID
        self.loan_manager.save_loan(second)

        assert {l.id for l in self.loan_manager.get_client_loans("c1")} == {first.id, second.id}
        assert [l.id for l in self.loan_manager.get_client_loans("c1", LoanStatus.ACTIVE)] == [first.id]
        assert {l.id for l in self.loan_manager.list_loans(LoanStatus.ACTIVE)} == {first.id, other.id}
        assert len(self.loan_manager.list_loans()) == 3

    def test_mark_paid_only_when_settled(self):
        loan = self.loan_manager.create_loan("c1", "200", "0", "WEEKLY", 2, date(2024, 1, 1))
        first, second = self.ledger.get_loan_installments(loan.id)

        first.paid_amount = first.amount
        self.ledger.save_installment(first)
        assert self.loan_manager.mark_paid_if_settled(loan) is False

        second.paid_amount = second.amount
        self.ledger.save_installment(second)
        assert self.loan_manager.mark_paid_if_settled(loan) is True
        assert self.loan_manager.get_loan(loan.id).status == LoanStatus.PAID
        assert self.loan_manager.mark_paid_if_settled(loan) is False


class TestLoanClientCheck:

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.clock = FixedClock(date(2024, 1, 1))
        self.audit = AuditTrail(self.storage)
        self.ledger = InstallmentLedger(self.storage, self.clock)
        self.clients = ClientManager(self.storage, self.audit, self.clock)
        self.loan_manager = LoanManager(
            self.storage, self.ledger, self.audit, self.clock, client_manager=self.clients
        )

    def test_unknown_client_rejected(self):
        with pytest.raises(ClientNotFound):
            self.loan_manager.create_loan("ghost", "100", "10", "DAILY", 2, date(2024, 1, 1))

    def test_known_client_accepted(self):
        client = self.clients.create_client("Maria Souza")
        loan = self.loan_manager.create_loan(client.id, "100", "10", "DAILY", 2, date(2024, 1, 1))
        assert loan.client_id == client.id
