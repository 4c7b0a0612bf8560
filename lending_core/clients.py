"""
Client Registry Module

Borrower profiles and the aggregates derived for them on demand (amount lent,
outstanding debt, collection risk). Aggregates are never stored.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import re
import uuid

from .currency import Money, Currency, sum_money
from .dates import Clock
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .ledger import InstallmentLedger
from .loans import LoanManager, LoanStatus
from .risk import RiskSummary, classify, DEFAULT_WARNING_DAYS, DEFAULT_CRITICAL_DAYS
from .exceptions import ClientNotFound, InvalidClientData
from .logging_config import get_logger, log_action

logger = get_logger(__name__)

DEFAULT_SCORE = 100


class ClientStatus(Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"   # no new loans should be granted
    PENDING = "PENDING"   # registration not yet reviewed


@dataclass
class Client(StorageRecord):
    """Borrower profile"""
    name: str
    phone: Optional[str] = None
    cpf: Optional[str] = None
    address: Optional[str] = None
    notes: str = ""
    score: int = DEFAULT_SCORE
    status: ClientStatus = ClientStatus.ACTIVE
    created_by: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise InvalidClientData("Client name is required")
        self.name = self.name.strip()
        if self.cpf:
            self.cpf = normalize_cpf(self.cpf)

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'name': self.name,
            'phone': self.phone,
            'cpf': self.cpf,
            'address': self.address,
            'notes': self.notes,
            'score': self.score,
            'status': self.status.value,
            'created_by': self.created_by
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Client':
        return cls(
            id=data['id'],
            **cls._parse_timestamps(data),
            name=data['name'],
            phone=data.get('phone'),
            cpf=data.get('cpf'),
            address=data.get('address'),
            notes=data.get('notes') or "",
            score=data.get('score', DEFAULT_SCORE),
            status=ClientStatus(data.get('status', ClientStatus.ACTIVE.value)),
            created_by=data.get('created_by')
        )


def normalize_cpf(cpf: str) -> str:
    """
    Strip formatting from a CPF ('123.456.789-09' -> '12345678909')

    Raises:
        InvalidClientData: If the CPF does not have 11 digits
    """
    digits = re.sub(r'\D', '', cpf)
    if len(digits) != 11:
        raise InvalidClientData("CPF must have 11 digits", {"cpf": cpf})
    return digits


@dataclass(frozen=True)
class ClientSummary:
    client: Client
    total_loaned: Money
    total_debt: Money
    active_loans: int
    risk: RiskSummary


class ClientManager:
    """
    Manages the client registry
    """

    table_name = "clients"

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, clock: Clock):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock

    def create_client(
        self,
        name: str,
        phone: Optional[str] = None,
        cpf: Optional[str] = None,
        address: Optional[str] = None,
        notes: str = "",
        status: ClientStatus = ClientStatus.ACTIVE,
        created_by: Optional[str] = None
    ) -> Client:
        """
        Register a new client

        Raises:
            InvalidClientData: If the name is blank or the CPF is malformed
        """
        now = self.clock.now()
        client = Client(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            phone=phone,
            cpf=cpf,
            address=address,
            notes=notes or "",
            status=status,
            created_by=created_by
        )

        with self.storage.atomic():
            self._save_client(client)
            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_CREATED,
                entity_type="client",
                entity_id=client.id,
                metadata={"name": client.name, "status": client.status.value},
                user_id=created_by
            )

        log_action(
            logger, "info", "Client created",
            user_id=created_by,
            action="client.created",
            resource=f"client:{client.id}"
        )
        return client

    def get_client(self, client_id: str) -> Optional[Client]:
        data = self.storage.load(self.table_name, client_id)
        return Client.from_dict(data) if data else None

    def require_client(self, client_id: str) -> Client:
        client = self.get_client(client_id)
        if client is None:
            raise ClientNotFound(client_id)
        return client

    def list_clients(self, status: Optional[ClientStatus] = None) -> List[Client]:
        """Clients ordered by name"""
        if status is None:
            rows = self.storage.load_all(self.table_name)
        else:
            rows = self.storage.find(self.table_name, {'status': status.value})
        clients = [Client.from_dict(data) for data in rows]
        clients.sort(key=lambda c: c.name.lower())
        return clients

    def update_status(self, client_id: str, status: ClientStatus, changed_by: Optional[str] = None) -> Client:
        with self.storage.atomic():
            client = self.require_client(client_id)
            if client.status == status:
                return client
            old_status = client.status
            client.status = status
            client.updated_at = self.clock.now()
            self._save_client(client)
            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_STATUS_CHANGED,
                entity_type="client",
                entity_id=client.id,
                metadata={"old_status": old_status.value, "new_status": status.value},
                user_id=changed_by
            )
        return client

    def _save_client(self, client: Client) -> None:
        self.storage.save(self.table_name, client.id, client.to_dict())


class ClientPortfolio:
    """
    Derived per-client aggregates over loans and installments
    """

    def __init__(
        self,
        client_manager: ClientManager,
        loan_manager: LoanManager,
        ledger: InstallmentLedger,
        clock: Clock,
        warning_days: int = DEFAULT_WARNING_DAYS,
        critical_days: int = DEFAULT_CRITICAL_DAYS,
        currency: Currency = Currency.BRL
    ):
        self.client_manager = client_manager
        self.loan_manager = loan_manager
        self.ledger = ledger
        self.clock = clock
        self.warning_days = warning_days
        self.critical_days = critical_days
        self.currency = currency

    def risk(self, client_id: str) -> RiskSummary:
        return classify(
            self.ledger.get_client_installments(client_id),
            self.clock.today(),
            currency=self.currency,
            warning_days=self.warning_days,
            critical_days=self.critical_days
        )

    def summary(self, client_id: str) -> ClientSummary:
        """
        Total lent, open debt and risk for a client

        Renegotiated loans are left out of total_loaned because their balance
        reappears as the principal of the consolidating loan. Only loans in
        the portfolio currency are counted.
        """
        client = self.client_manager.require_client(client_id)
        loans = [
            loan for loan in self.loan_manager.get_client_loans(client_id)
            if loan.currency == self.currency
        ]
        active = [loan for loan in loans if loan.status == LoanStatus.ACTIVE]

        return ClientSummary(
            client=client,
            total_loaned=sum_money(
                (loan.principal for loan in loans if loan.status != LoanStatus.RENEGOTIATED),
                self.currency
            ),
            total_debt=sum_money(
                (self.ledger.outstanding_balance(loan.id, self.currency) for loan in active),
                self.currency
            ),
            active_loans=len(active),
            risk=self.risk(client_id)
        )
