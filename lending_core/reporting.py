"""
Reporting Engine Module

Read-only operational reports for the shop: today's dashboard, the daily
collection list, the late-payment summary per client and the portfolio
report. Everything is derived from loans, installments and payments as of
the injected clock's today.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional

from .currency import Money, Currency, sum_money
from .dates import Clock
from .ledger import InstallmentLedger, InstallmentStatus, Installment, Payment
from .loans import Loan, LoanManager, LoanStatus
from .clients import ClientManager
from .risk import RiskLevel, risk_level_for, DEFAULT_WARNING_DAYS, DEFAULT_CRITICAL_DAYS


@dataclass(frozen=True)
class DashboardSummary:
    today: date
    expected_today: Money
    received_today: Money
    late_amount: Money
    total_loaned: Money
    total_received: Money
    total_open: Money
    projected_profit: Money
    active_clients: int
    late_clients: int
    loan_count: int


@dataclass(frozen=True)
class CollectionItem:
    """One installment on the collector's list for the day"""
    installment_id: str
    loan_id: str
    client_id: str
    client_name: str
    client_phone: Optional[str]
    client_address: Optional[str]
    number: int
    due_date: date
    amount: Money
    paid_amount: Money
    pending: Money
    status: InstallmentStatus
    days_late: int


@dataclass(frozen=True)
class LatePaymentRow:
    client_id: str
    client_name: str
    client_phone: Optional[str]
    late_count: int
    total_late: Money
    oldest_due_date: date
    days_late: int
    risk_level: RiskLevel
    last_payment_date: Optional[date]


@dataclass(frozen=True)
class ClientAmount:
    client_id: str
    client_name: str
    amount: Money


@dataclass(frozen=True)
class PortfolioReport:
    total_loaned: Money
    total_received: Money
    capital_received: Money
    interest_received: Money
    top_debtors: List[ClientAmount] = field(default_factory=list)
    top_earners: List[ClientAmount] = field(default_factory=list)


@dataclass(frozen=True)
class CashFlowDay:
    day: date
    received: Money


class ReportingEngine:
    """
    Builds operational reports over the loan book
    """

    def __init__(
        self,
        loan_manager: LoanManager,
        ledger: InstallmentLedger,
        client_manager: ClientManager,
        clock: Clock,
        warning_days: int = DEFAULT_WARNING_DAYS,
        critical_days: int = DEFAULT_CRITICAL_DAYS,
        currency: Currency = Currency.BRL
    ):
        self.loan_manager = loan_manager
        self.ledger = ledger
        self.client_manager = client_manager
        self.clock = clock
        self.warning_days = warning_days
        self.critical_days = critical_days
        self.currency = currency

    def _sum(self, values) -> Money:
        return sum_money(values, self.currency)

    # Reports cover the engine's currency only; money in other currencies is
    # never summed into its totals.
    def _installments(self) -> List[Installment]:
        return [i for i in self.ledger.all_installments() if i.currency == self.currency]

    def _payments(self) -> List[Payment]:
        return [p for p in self.ledger.all_payments() if p.amount.currency == self.currency]

    def _loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        return [loan for loan in self.loan_manager.list_loans(status) if loan.currency == self.currency]

    def _client_names(self) -> Dict[str, str]:
        return {client.id: client.name for client in self.client_manager.list_clients()}

    def dashboard(self) -> DashboardSummary:
        """Headline figures for today and for the open portfolio"""
        today = self.clock.today()
        installments = self._installments()
        payments = self._payments()
        active_loans = self._loans(LoanStatus.ACTIVE)
        active_ids = {loan.id for loan in active_loans}

        late = [i for i in installments if i.status_on(today) == InstallmentStatus.LATE]

        return DashboardSummary(
            today=today,
            expected_today=self._sum(i.amount for i in installments if i.due_date == today),
            received_today=self._sum(p.amount for p in payments if p.payment_date == today),
            late_amount=self._sum(i.remaining for i in late),
            total_loaned=self._sum(loan.principal for loan in active_loans),
            total_received=self._sum(p.amount for p in payments),
            total_open=self._sum(i.remaining for i in installments if i.loan_id in active_ids),
            projected_profit=self._sum(loan.interest_total for loan in active_loans),
            active_clients=len({loan.client_id for loan in active_loans}),
            late_clients=len({i.client_id for i in late}),
            loan_count=len(active_loans)
        )

    def daily_collections(self) -> List[CollectionItem]:
        """Open installments due today or earlier, oldest first"""
        today = self.clock.today()
        clients = {client.id: client for client in self.client_manager.list_clients()}

        items = []
        for installment in self._installments():
            if installment.is_paid or installment.due_date > today:
                continue
            client = clients.get(installment.client_id)
            items.append(CollectionItem(
                installment_id=installment.id,
                loan_id=installment.loan_id,
                client_id=installment.client_id,
                client_name=client.name if client else "",
                client_phone=client.phone if client else None,
                client_address=client.address if client else None,
                number=installment.number,
                due_date=installment.due_date,
                amount=installment.amount,
                paid_amount=installment.paid_amount,
                pending=installment.remaining,
                status=installment.status_on(today),
                days_late=installment.days_late(today)
            ))

        items.sort(key=lambda item: (item.due_date, item.client_name, item.number))
        return items

    def late_payments(self, min_days_late: int = 0) -> List[LatePaymentRow]:
        """
        One row per client with late installments, most overdue first

        Args:
            min_days_late: Only clients whose oldest late installment is at
                least this many days overdue
        """
        today = self.clock.today()
        by_client: Dict[str, List[Installment]] = {}
        for installment in self._installments():
            if installment.status_on(today) == InstallmentStatus.LATE:
                by_client.setdefault(installment.client_id, []).append(installment)

        last_payment: Dict[str, date] = {}
        for payment in self._payments():
            if payment.client_id in by_client:
                previous = last_payment.get(payment.client_id)
                if previous is None or payment.payment_date > previous:
                    last_payment[payment.client_id] = payment.payment_date

        rows = []
        for client_id, late in by_client.items():
            oldest = min(i.due_date for i in late)
            days = (today - oldest).days
            if days < min_days_late:
                continue
            client = self.client_manager.get_client(client_id)
            rows.append(LatePaymentRow(
                client_id=client_id,
                client_name=client.name if client else "",
                client_phone=client.phone if client else None,
                late_count=len(late),
                total_late=self._sum(i.remaining for i in late),
                oldest_due_date=oldest,
                days_late=days,
                risk_level=risk_level_for(days, self.warning_days, self.critical_days),
                last_payment_date=last_payment.get(client_id)
            ))

        rows.sort(key=lambda row: (-row.days_late, row.client_name))
        return rows

    def portfolio_report(self, top: int = 5) -> PortfolioReport:
        """Money lent and collected, with the largest debtors and earners"""
        loans = [
            loan for loan in self._loans()
            if loan.status != LoanStatus.RENEGOTIATED
        ]
        active_ids = {loan.id for loan in loans if loan.status == LoanStatus.ACTIVE}
        payments = self._payments()
        names = self._client_names()

        debt: Dict[str, Money] = {}
        for installment in self._installments():
            if installment.loan_id in active_ids and not installment.is_paid:
                debt[installment.client_id] = debt.get(installment.client_id, Money.zero(self.currency)) + installment.remaining

        earned: Dict[str, Money] = {}
        for payment in payments:
            if payment.interest_portion.is_positive():
                earned[payment.client_id] = earned.get(payment.client_id, Money.zero(self.currency)) + payment.interest_portion

        def ranking(amounts: Dict[str, Money]) -> List[ClientAmount]:
            ranked = sorted(amounts.items(), key=lambda item: item[1].amount, reverse=True)[:top]
            return [ClientAmount(client_id=cid, client_name=names.get(cid, ""), amount=amount) for cid, amount in ranked]

        return PortfolioReport(
            total_loaned=self._sum(loan.principal for loan in loans),
            total_received=self._sum(p.amount for p in payments),
            capital_received=self._sum(p.capital_portion for p in payments),
            interest_received=self._sum(p.interest_portion for p in payments),
            top_debtors=ranking(debt),
            top_earners=ranking(earned)
        )

    def cash_flow(self, days: int = 7) -> List[CashFlowDay]:
        """Amount received on each of the last `days` days, oldest first"""
        if days < 1:
            raise ValueError("days must be at least 1")
        today = self.clock.today()
        first = today - timedelta(days=days - 1)

        received: Dict[date, Money] = {}
        for payment in self._payments():
            if first <= payment.payment_date <= today:
                received[payment.payment_date] = received.get(payment.payment_date, Money.zero(self.currency)) + payment.amount

        return [
            CashFlowDay(day=day, received=received.get(day, Money.zero(self.currency)))
            for day in (first + timedelta(days=offset) for offset in range(days))
        ]
