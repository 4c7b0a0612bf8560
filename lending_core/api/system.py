"""
Component wiring for the HTTP layer
"""

from typing import Optional

from ..audit import AuditTrail
from ..clients import ClientManager, ClientPortfolio
from ..config import LendingConfig, get_config
from ..currency import Currency
from ..dates import Clock, SystemClock
from ..ledger import InstallmentLedger
from ..loans import LoanManager
from ..payments import PaymentAllocator
from ..renegotiation import RenegotiationEngine
from ..reporting import ReportingEngine
from ..storage import StorageInterface, create_storage


class LendingSystem:
    """Lending core with all components initialized over one storage backend"""

    def __init__(
        self,
        config: Optional[LendingConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or SystemClock()
        self.currency = Currency[self.config.default_currency.upper()]

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.ledger = InstallmentLedger(self.storage, self.clock)
        self.client_manager = ClientManager(self.storage, self.audit_trail, self.clock)
        self.loan_manager = LoanManager(
            self.storage, self.ledger, self.audit_trail, self.clock,
            client_manager=self.client_manager,
            default_late_fee_rate=self.config.default_late_fee_rate
        )
        self.payment_allocator = PaymentAllocator(
            self.storage, self.ledger, self.loan_manager, self.audit_trail, self.clock,
            cap_interest_payments=self.config.cap_interest_payments
        )
        self.renegotiation_engine = RenegotiationEngine(
            self.storage, self.loan_manager, self.ledger, self.audit_trail, self.clock
        )
        self.client_portfolio = ClientPortfolio(
            self.client_manager, self.loan_manager, self.ledger, self.clock,
            warning_days=self.config.risk_warning_days,
            critical_days=self.config.risk_critical_days,
            currency=self.currency
        )
        self.reporting_engine = ReportingEngine(
            self.loan_manager, self.ledger, self.client_manager, self.clock,
            warning_days=self.config.risk_warning_days,
            critical_days=self.config.risk_critical_days,
            currency=self.currency
        )

    def close(self) -> None:
        self.storage.close()


# Created on first request so importing the API never opens a database
_lending_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    global _lending_system
    if _lending_system is None:
        _lending_system = LendingSystem()
    return _lending_system
