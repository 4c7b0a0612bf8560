"""
Installment Ledger

Stores installments and the append-only payments applied to them, and
derives each installment's status. Status is never persisted: it is
recomputed from (amount, paid_amount, due_date, today) on every read, so it
cannot drift from the money actually received.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .currency import Money, Currency, sum_money
from .dates import Clock, days_late as days_late_between
from .exceptions import InstallmentNotFound, LedgerIntegrityError
from .schedule import ScheduledInstallment
from .storage import StorageInterface, StorageRecord

if TYPE_CHECKING:
    from .loans import Loan


class InstallmentStatus(Enum):
    """Derived lifecycle state of an installment"""
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    LATE = "LATE"
    PAID = "PAID"


class PaymentType(Enum):
    FULL = "FULL"          # settles the remaining balance exactly
    PARTIAL = "PARTIAL"    # caller-chosen amount up to the remaining balance
    INTEREST = "INTEREST"  # interest-only, does not reduce capital


class PaymentMethod(Enum):
    PIX = "PIX"
    CASH = "CASH"


def compute_status(amount: Money, paid_amount: Money, due_date: date, today: date) -> InstallmentStatus:
    """
    Pure status rule, checked in this order:

    PAID     paid_amount >= amount
    LATE     due_date < today (any unpaid balance past due, partial or not)
    PARTIAL  0 < paid_amount, not yet past due
    PENDING  nothing paid, not yet past due
    """
    if paid_amount >= amount:
        return InstallmentStatus.PAID
    if due_date < today:
        return InstallmentStatus.LATE
    if paid_amount.is_positive():
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING


def _money_fields(data: Dict[str, Any], names, currency: Currency) -> Dict[str, Money]:
    return {name: Money(Decimal(data[name]), currency) for name in names}


@dataclass
class Installment(StorageRecord):
    """One scheduled repayment unit of a loan"""
    loan_id: str
    client_id: str
    number: int
    due_date: date
    amount: Money
    capital_amount: Money
    interest_amount: Money
    paid_amount: Money = None
    frozen: bool = False

    def __post_init__(self):
        if self.paid_amount is None:
            self.paid_amount = Money.zero(self.amount.currency)
        if self.capital_amount + self.interest_amount != self.amount:
            raise ValueError(
                f"Installment {self.number}: capital {self.capital_amount.to_string()} + "
                f"interest {self.interest_amount.to_string()} != amount {self.amount.to_string()}"
            )

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def remaining(self) -> Money:
        """Unpaid balance (never negative)"""
        remaining = self.amount - self.paid_amount
        return remaining if remaining.is_positive() else Money.zero(self.currency)

    @property
    def is_paid(self) -> bool:
        return self.paid_amount >= self.amount

    def status_on(self, today: date) -> InstallmentStatus:
        return compute_status(self.amount, self.paid_amount, self.due_date, today)

    def days_late(self, today: date) -> int:
        """Days past due; 0 when paid or not yet due"""
        if self.is_paid:
            return 0
        return days_late_between(self.due_date, today)

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'loan_id': self.loan_id,
            'client_id': self.client_id,
            'number': self.number,
            'due_date': self.due_date.isoformat(),
            'currency': self.currency.code,
            'amount': str(self.amount.amount),
            'capital_amount': str(self.capital_amount.amount),
            'interest_amount': str(self.interest_amount.amount),
            'paid_amount': str(self.paid_amount.amount),
            'frozen': self.frozen
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            **cls._parse_timestamps(data),
            loan_id=data['loan_id'],
            client_id=data['client_id'],
            number=data['number'],
            due_date=date.fromisoformat(data['due_date']),
            **_money_fields(data, ('amount', 'capital_amount', 'interest_amount', 'paid_amount'), currency),
            frozen=data.get('frozen', False)
        )


@dataclass
class Payment(StorageRecord):
    """Immutable record of money applied to one installment"""
    installment_id: str
    loan_id: str
    client_id: str
    amount: Money
    capital_portion: Money
    interest_portion: Money
    payment_date: date
    payment_type: PaymentType
    method: PaymentMethod
    idempotency_key: Optional[str] = None
    created_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'installment_id': self.installment_id,
            'loan_id': self.loan_id,
            'client_id': self.client_id,
            'currency': self.amount.currency.code,
            'amount': str(self.amount.amount),
            'capital_portion': str(self.capital_portion.amount),
            'interest_portion': str(self.interest_portion.amount),
            'payment_date': self.payment_date.isoformat(),
            'payment_type': self.payment_type.value,
            'method': self.method.value,
            'idempotency_key': self.idempotency_key,
            'created_by': self.created_by
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            **cls._parse_timestamps(data),
            installment_id=data['installment_id'],
            loan_id=data['loan_id'],
            client_id=data['client_id'],
            **_money_fields(data, ('amount', 'capital_portion', 'interest_portion'), currency),
            payment_date=date.fromisoformat(data['payment_date']),
            payment_type=PaymentType(data['payment_type']),
            method=PaymentMethod(data['method']),
            idempotency_key=data.get('idempotency_key'),
            created_by=data.get('created_by')
        )


class InstallmentLedger:
    """
    Owner of installment and payment records.

    The ledger is the only writer of paid_amount; the payment allocator calls
    `save_installment` and `record_payment` inside one storage transaction.
    """

    installments_table = "installments"
    payments_table = "payments"

    def __init__(self, storage: StorageInterface, clock: Clock):
        self.storage = storage
        self.clock = clock

    def add_installments(self, loan: 'Loan', schedule: List[ScheduledInstallment]) -> List[Installment]:
        """Persist a generated schedule for a loan (caller provides the transaction)"""
        now = self.clock.now()
        installments = []
        for row in schedule:
            installment = Installment(
                id=f"{loan.id}_{row.number}",
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                client_id=loan.client_id,
                number=row.number,
                due_date=row.due_date,
                amount=row.amount,
                capital_amount=row.capital_amount,
                interest_amount=row.interest_amount
            )
            self.save_installment(installment)
            installments.append(installment)
        return installments

    def save_installment(self, installment: Installment) -> None:
        self.storage.save(self.installments_table, installment.id, installment.to_dict())

    def get_installment(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.installments_table, installment_id)
        return Installment.from_dict(data) if data else None

    def require_installment(self, installment_id: str) -> Installment:
        installment = self.get_installment(installment_id)
        if installment is None:
            raise InstallmentNotFound(installment_id)
        return installment

    def get_loan_installments(self, loan_id: str) -> List[Installment]:
        """All installments of a loan ordered by number"""
        installments = [
            Installment.from_dict(data)
            for data in self.storage.find(self.installments_table, {'loan_id': loan_id})
        ]
        installments.sort(key=lambda i: i.number)
        return installments

    def get_client_installments(
        self,
        client_id: str,
        include_paid: bool = False,
        include_frozen: bool = False
    ) -> List[Installment]:
        """Client installments ordered by due date (open ones only by default)"""
        installments = [
            Installment.from_dict(data)
            for data in self.storage.find(self.installments_table, {'client_id': client_id})
        ]
        installments = [
            i for i in installments
            if (include_paid or not i.is_paid) and (include_frozen or not i.frozen)
        ]
        installments.sort(key=lambda i: (i.due_date, i.loan_id, i.number))
        return installments

    def all_installments(self, include_frozen: bool = False) -> List[Installment]:
        installments = [Installment.from_dict(data) for data in self.storage.load_all(self.installments_table)]
        return [i for i in installments if include_frozen or not i.frozen]

    def status_of(self, installment: Installment) -> InstallmentStatus:
        """Status as of the injected clock's today"""
        return installment.status_on(self.clock.today())

    def record_payment(self, payment: Payment) -> None:
        """Append a payment; existing payments are never rewritten"""
        if self.storage.exists(self.payments_table, payment.id):
            raise LedgerIntegrityError(f"Payment {payment.id} already recorded", {"payment_id": payment.id})
        self.storage.save(self.payments_table, payment.id, payment.to_dict())

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        data = self.storage.load(self.payments_table, payment_id)
        return Payment.from_dict(data) if data else None

    def get_payments(self, installment_id: str) -> List[Payment]:
        return self._sorted_payments(self.storage.find(self.payments_table, {'installment_id': installment_id}))

    def get_loan_payments(self, loan_id: str) -> List[Payment]:
        return self._sorted_payments(self.storage.find(self.payments_table, {'loan_id': loan_id}))

    def get_client_payments(self, client_id: str) -> List[Payment]:
        return self._sorted_payments(self.storage.find(self.payments_table, {'client_id': client_id}))

    def all_payments(self) -> List[Payment]:
        return self._sorted_payments(self.storage.load_all(self.payments_table))

    @staticmethod
    def _sorted_payments(rows: List[Dict[str, Any]]) -> List[Payment]:
        payments = [Payment.from_dict(data) for data in rows]
        payments.sort(key=lambda p: (p.payment_date, p.created_at))
        return payments

    def freeze_unpaid(self, loan_id: str) -> List[Installment]:
        """Freeze every unpaid installment of a loan (caller provides the transaction)"""
        frozen = []
        now = self.clock.now()
        for installment in self.get_loan_installments(loan_id):
            if installment.is_paid or installment.frozen:
                continue
            installment.frozen = True
            installment.updated_at = now
            self.save_installment(installment)
            frozen.append(installment)
        return frozen

    def outstanding_balance(self, loan_id: str, currency: Currency = Currency.BRL) -> Money:
        """Sum of unpaid balances of a loan's non-frozen installments"""
        installments = [i for i in self.get_loan_installments(loan_id) if not i.frozen]
        if installments:
            currency = installments[0].currency
        return sum_money((i.remaining for i in installments), currency)

    def paid_portions(self, installment_id: str, currency: Currency) -> Dict[str, Money]:
        """Capital and interest already received for an installment"""
        payments = self.get_payments(installment_id)
        return {
            'capital': sum_money((p.capital_portion for p in payments), currency),
            'interest': sum_money((p.interest_portion for p in payments), currency)
        }

    def reconcile(self, installment_id: str) -> Installment:
        """
        Check that paid_amount equals the sum of the installment's payments

        Raises:
            LedgerIntegrityError: When the stored paid_amount has drifted
        """
        installment = self.require_installment(installment_id)
        paid = sum_money((p.amount for p in self.get_payments(installment_id)), installment.currency)
        if paid != installment.paid_amount:
            raise LedgerIntegrityError(
                f"Installment {installment_id} paid_amount does not match its payments",
                {"paid_amount": str(installment.paid_amount.amount), "payments_total": str(paid.amount)}
            )
        return installment

    def late_fee_estimate(self, installment: Installment, loan: 'Loan', today: Optional[date] = None) -> Money:
        """
        Late fee accrued so far: remaining * late_fee_rate% * days late.

        Informational only. The fee is never added to the installment, so
        schedule totals and paid_amount invariants are unaffected.
        """
        today = today or self.clock.today()
        if not loan.late_fee_enabled or installment.frozen:
            return Money.zero(installment.currency)
        days = installment.days_late(today)
        if days == 0:
            return Money.zero(installment.currency)
        return installment.remaining * (loan.late_fee_rate / Decimal('100') * days)
