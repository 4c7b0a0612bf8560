"""
Test suite for the risk classifier
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from lending_core.currency import Money, Currency
from lending_core.ledger import Installment
from lending_core.risk import RiskLevel, classify, risk_level_for


def installment(number, due_date, amount="100", paid="0", frozen=False, currency=Currency.BRL):
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    total = Money(Decimal(amount), currency)
    return Installment(
        id=f"loan_{number}", created_at=now, updated_at=now,
        loan_id="loan", client_id="client", number=number, due_date=due_date,
        amount=total, capital_amount=total, interest_amount=Money.zero(currency),
        paid_amount=Money(Decimal(paid), currency), frozen=frozen
    )


class TestRiskLevel:

    @pytest.mark.parametrize("days,expected", [
        (0, RiskLevel.NORMAL),
        (6, RiskLevel.NORMAL),
        (7, RiskLevel.WARNING),
        (29, RiskLevel.WARNING),
        (30, RiskLevel.CRITICAL),
        (365, RiskLevel.CRITICAL),
    ])
    def test_default_thresholds(self, days, expected):
        assert risk_level_for(days) == expected

    def test_custom_thresholds(self):
        assert risk_level_for(3, warning_days=2, critical_days=5) == RiskLevel.WARNING
        assert risk_level_for(5, warning_days=2, critical_days=5) == RiskLevel.CRITICAL


class TestClassify:
    """Aggregation over a client's installments"""

    today = date(2024, 3, 31)

    def test_no_installments(self):
        summary = classify([], self.today)
        assert summary.total_pending == Money.zero()
        assert summary.open_count == 0
        assert summary.oldest_due_date is None
        assert summary.days_late == 0
        assert summary.risk_level == RiskLevel.NORMAL

    def test_oldest_unpaid_drives_risk(self):
        summary = classify([
            installment(1, date(2024, 3, 1), paid="100"),   # paid, ignored
            installment(2, date(2024, 3, 21), paid="40"),   # 10 days late
            installment(3, date(2024, 3, 28)),              # 3 days late
            installment(4, date(2024, 4, 5)),               # not yet due
        ], self.today)

        assert summary.total_pending == Money(Decimal('260'))
        assert summary.late_count == 2
        assert summary.open_count == 3
        assert summary.oldest_due_date == date(2024, 3, 21)
        assert summary.days_late == 10
        assert summary.risk_level == RiskLevel.WARNING

    def test_critical(self):
        summary = classify([installment(1, date(2024, 3, 1))], self.today)
        assert summary.days_late == 30
        assert summary.risk_level == RiskLevel.CRITICAL

    def test_frozen_installments_ignored(self):
        summary = classify([
            installment(1, date(2023, 1, 1), frozen=True),
            installment(2, date(2024, 4, 30)),
        ], self.today)

        assert summary.total_pending == Money(Decimal('100'))
        assert summary.late_count == 0
        assert summary.risk_level == RiskLevel.NORMAL

    def test_upcoming_only_is_normal(self):
        summary = classify([installment(1, date(2024, 4, 1))], self.today)
        assert summary.open_count == 1
        assert summary.days_late == 0
        assert summary.risk_level == RiskLevel.NORMAL

    def test_other_currencies_skipped(self):
        summary = classify([
            installment(1, date(2024, 3, 1), currency=Currency.USD),
            installment(2, date(2024, 3, 28)),
        ], self.today)

        assert summary.total_pending == Money(Decimal('100'))
        assert summary.open_count == 1
        assert summary.days_late == 3

    def test_classify_in_dollars(self):
        summary = classify([
            installment(1, date(2024, 3, 1), currency=Currency.USD),
            installment(2, date(2024, 3, 28)),
        ], self.today, currency=Currency.USD)

        assert summary.total_pending == Money(Decimal('100'), Currency.USD)
        assert summary.risk_level == RiskLevel.CRITICAL
