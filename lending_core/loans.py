"""
Loan Module

Loan records and their lifecycle: creation (schedule generated and stored in
the same transaction), payoff and renegotiation status changes.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from enum import Enum
import uuid

from .currency import Money, Currency, to_decimal
from .dates import Clock
from .schedule import PaymentFrequency, ScheduleTerms, build_schedule, validate_terms
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .ledger import InstallmentLedger, Installment
from .exceptions import InvalidScheduleInput, LoanNotFound
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .clients import ClientManager

logger = get_logger(__name__)


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "ACTIVE"              # Installments still open
    PAID = "PAID"                  # Every installment paid
    RENEGOTIATED = "RENEGOTIATED"  # Balance moved into a new loan


@dataclass
class Loan(StorageRecord):
    """A flat-rate loan and its fixed terms"""
    client_id: str
    principal: Money
    interest_rate: Decimal
    payment_frequency: PaymentFrequency
    installment_count: int
    start_date: date
    total_amount: Money
    late_fee_enabled: bool = True
    late_fee_rate: Decimal = Decimal('1')
    status: LoanStatus = LoanStatus.ACTIVE
    renegotiated_from: List[str] = field(default_factory=list)
    renegotiated_into: Optional[str] = None

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def interest_total(self) -> Money:
        """Interest charged over the whole loan"""
        return self.total_amount - self.principal

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'client_id': self.client_id,
            'currency': self.currency.code,
            'principal': str(self.principal.amount),
            'interest_rate': str(self.interest_rate),
            'payment_frequency': self.payment_frequency.value,
            'installment_count': self.installment_count,
            'start_date': self.start_date.isoformat(),
            'total_amount': str(self.total_amount.amount),
            'late_fee_enabled': self.late_fee_enabled,
            'late_fee_rate': str(self.late_fee_rate),
            'status': self.status.value,
            'renegotiated_from': list(self.renegotiated_from),
            'renegotiated_into': self.renegotiated_into
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            **cls._parse_timestamps(data),
            client_id=data['client_id'],
            principal=Money(Decimal(data['principal']), currency),
            interest_rate=Decimal(data['interest_rate']),
            payment_frequency=PaymentFrequency(data['payment_frequency']),
            installment_count=data['installment_count'],
            start_date=date.fromisoformat(data['start_date']),
            total_amount=Money(Decimal(data['total_amount']), currency),
            late_fee_enabled=data.get('late_fee_enabled', True),
            late_fee_rate=Decimal(data.get('late_fee_rate', '1')),
            status=LoanStatus(data['status']),
            renegotiated_from=data.get('renegotiated_from') or [],
            renegotiated_into=data.get('renegotiated_into')
        )


class LoanManager:
    """
    Manages loan records from creation through payoff or renegotiation
    """

    loans_table = "loans"

    def __init__(
        self,
        storage: StorageInterface,
        ledger: InstallmentLedger,
        audit_trail: AuditTrail,
        clock: Clock,
        client_manager: Optional['ClientManager'] = None,
        default_late_fee_rate: Decimal = Decimal('1')
    ):
        self.storage = storage
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.clock = clock
        self.client_manager = client_manager
        self.default_late_fee_rate = default_late_fee_rate

    def create_loan(
        self,
        client_id: str,
        principal: Any,
        interest_rate: Any,
        frequency: Any,
        installment_count: Any,
        start_date: Any,
        late_fee_enabled: bool = True,
        late_fee_rate: Any = None,
        currency: Currency = Currency.BRL,
        created_by: Optional[str] = None
    ) -> Loan:
        """
        Create a loan and persist its installment schedule

        Args:
            client_id: Borrower client ID
            principal: Amount lent
            interest_rate: Flat percentage charged once over the whole term
            frequency: DAILY, WEEKLY or MONTHLY
            installment_count: Number of installments
            start_date: Due date of the first installment
            late_fee_enabled: Whether late fees are estimated for this loan
            late_fee_rate: Percent of the remaining balance per day late
            currency: Loan currency when principal is not Money
            created_by: Operator recorded on the audit event

        Returns:
            Created Loan

        Raises:
            ClientNotFound: When a client registry is attached and the client is unknown
            InvalidScheduleInput: When the terms cannot produce a schedule
        """
        if self.client_manager is not None:
            self.client_manager.require_client(client_id)

        terms = validate_terms(principal, interest_rate, frequency, installment_count, start_date, currency)
        fee_rate = self.parse_late_fee_rate(late_fee_rate)

        with self.storage.atomic():
            loan = self.create_from_terms(
                client_id=client_id,
                terms=terms,
                late_fee_enabled=late_fee_enabled,
                late_fee_rate=fee_rate,
                created_by=created_by
            )

        log_action(
            logger, "info", "Loan created",
            user_id=created_by,
            action="loan.created",
            resource=f"loan:{loan.id}",
            extra={
                "client_id": client_id,
                "principal": str(loan.principal.amount),
                "total_amount": str(loan.total_amount.amount),
                "installment_count": loan.installment_count,
                "frequency": loan.payment_frequency.value
            }
        )
        return loan

    def parse_late_fee_rate(self, late_fee_rate: Any) -> Decimal:
        if late_fee_rate is None:
            return self.default_late_fee_rate
        try:
            rate = to_decimal(late_fee_rate)
        except ValueError:
            raise InvalidScheduleInput("Invalid late fee rate", {"late_fee_rate": str(late_fee_rate)})
        if rate < 0:
            raise InvalidScheduleInput("Late fee rate cannot be negative", {"late_fee_rate": str(late_fee_rate)})
        return rate

    def create_from_terms(
        self,
        client_id: str,
        terms: ScheduleTerms,
        late_fee_enabled: bool,
        late_fee_rate: Decimal,
        renegotiated_from: Optional[List[str]] = None,
        created_by: Optional[str] = None
    ) -> Loan:
        """Persist a loan for validated terms (caller provides the transaction)"""
        now = self.clock.now()
        schedule = build_schedule(terms)

        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            client_id=client_id,
            principal=terms.principal,
            interest_rate=terms.interest_rate,
            payment_frequency=terms.frequency,
            installment_count=terms.installment_count,
            start_date=terms.start_date,
            total_amount=terms.total_amount,
            late_fee_enabled=late_fee_enabled,
            late_fee_rate=late_fee_rate,
            renegotiated_from=list(renegotiated_from or [])
        )

        self.save_loan(loan)
        self.ledger.add_installments(loan, schedule)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_CREATED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "client_id": client_id,
                "principal": str(loan.principal.amount),
                "interest_rate": str(loan.interest_rate),
                "total_amount": str(loan.total_amount.amount),
                "frequency": loan.payment_frequency.value,
                "installment_count": loan.installment_count,
                "start_date": loan.start_date.isoformat(),
                "renegotiated_from": loan.renegotiated_from
            },
            user_id=created_by
        )
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        return Loan.from_dict(data) if data else None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    def get_client_loans(self, client_id: str, status: Optional[LoanStatus] = None) -> List[Loan]:
        """Loans of one client, oldest first"""
        filters = {'client_id': client_id}
        if status is not None:
            filters['status'] = status.value
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda l: l.created_at)
        return loans

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        if status is None:
            rows = self.storage.load_all(self.loans_table)
        else:
            rows = self.storage.find(self.loans_table, {'status': status.value})
        return [Loan.from_dict(data) for data in rows]

    def get_installments(self, loan_id: str) -> List[Installment]:
        self.require_loan(loan_id)
        return self.ledger.get_loan_installments(loan_id)

    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def mark_paid_if_settled(self, loan: Loan, created_by: Optional[str] = None) -> bool:
        """
        Flip an ACTIVE loan to PAID once every installment is paid
        (caller provides the transaction)

        Returns:
            True if the loan status changed
        """
        if loan.status != LoanStatus.ACTIVE:
            return False
        installments = self.ledger.get_loan_installments(loan.id)
        if not installments or not all(i.is_paid for i in installments):
            return False

        loan.status = LoanStatus.PAID
        loan.updated_at = self.clock.now()
        self.save_loan(loan)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_PAID_OFF,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "client_id": loan.client_id,
                "total_amount": str(loan.total_amount.amount)
            },
            user_id=created_by
        )
        return True
