"""
Renegotiation Engine

Consolidates the outstanding balance of one or more ACTIVE loans of a client
into a single new loan with fresh terms. The source loans are closed
(RENEGOTIATED) and their unpaid installments frozen in the same transaction
that creates the new loan.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from .currency import Money, sum_money
from .dates import Clock
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .ledger import InstallmentLedger
from .loans import Loan, LoanManager, LoanStatus
from .schedule import ScheduledInstallment, build_schedule, validate_terms
from .exceptions import RenegotiationError
from .logging_config import get_logger, log_action

logger = get_logger(__name__)


@dataclass(frozen=True)
class RenegotiationPreview:
    """What a renegotiation would produce, without writing anything"""
    source_loan_ids: List[str]
    principal: Money
    total_amount: Money
    schedule: List[ScheduledInstallment]


class RenegotiationEngine:
    """
    Replaces a client's open loans with one consolidated loan
    """

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        ledger: InstallmentLedger,
        audit_trail: AuditTrail,
        clock: Clock
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.clock = clock

    def _source_loans(self, client_id: str, loan_ids: Sequence[str]) -> List[Loan]:
        if not loan_ids:
            raise RenegotiationError("At least one loan must be selected for renegotiation")

        loans = []
        for loan_id in dict.fromkeys(loan_ids):
            loan = self.loan_manager.get_loan(loan_id)
            if loan is None:
                raise RenegotiationError(f"Loan '{loan_id}' not found", {"loan_id": loan_id})
            if loan.client_id != client_id:
                raise RenegotiationError(
                    f"Loan '{loan_id}' does not belong to client '{client_id}'",
                    {"loan_id": loan_id, "client_id": client_id}
                )
            if loan.status != LoanStatus.ACTIVE:
                raise RenegotiationError(
                    f"Loan '{loan_id}' is {loan.status.value} and cannot be renegotiated",
                    {"loan_id": loan_id, "status": loan.status.value}
                )
            loans.append(loan)

        currencies = {loan.currency for loan in loans}
        if len(currencies) > 1:
            raise RenegotiationError("Loans in different currencies cannot be consolidated")
        return loans

    def _outstanding(self, loans: List[Loan]) -> Money:
        principal = sum_money(
            (self.ledger.outstanding_balance(loan.id, loan.currency) for loan in loans),
            loans[0].currency
        )
        if not principal.is_positive():
            raise RenegotiationError(
                "Selected loans have no outstanding balance",
                {"loan_ids": [loan.id for loan in loans]}
            )
        return principal

    def preview(
        self,
        client_id: str,
        loan_ids: Sequence[str],
        interest_rate: Any,
        frequency: Any,
        installment_count: Any,
        start_date: Any
    ) -> RenegotiationPreview:
        """Consolidated principal and the new schedule, with no writes"""
        loans = self._source_loans(client_id, loan_ids)
        principal = self._outstanding(loans)
        terms = validate_terms(principal, interest_rate, frequency, installment_count, start_date)
        return RenegotiationPreview(
            source_loan_ids=[loan.id for loan in loans],
            principal=principal,
            total_amount=terms.total_amount,
            schedule=build_schedule(terms)
        )

    def renegotiate(
        self,
        client_id: str,
        loan_ids: Sequence[str],
        interest_rate: Any,
        frequency: Any,
        installment_count: Any,
        start_date: Any,
        late_fee_enabled: bool = True,
        late_fee_rate: Any = Decimal('1'),
        created_by: Optional[str] = None
    ) -> Loan:
        """
        Consolidate the selected loans into a new loan

        The new principal is the sum of the remaining balances of the
        selected loans, not their original principals.

        Returns:
            The new loan

        Raises:
            RenegotiationError: When the selection cannot be renegotiated
            InvalidScheduleInput: When the new terms are invalid
        """
        with self.storage.atomic():
            loans = self._source_loans(client_id, loan_ids)
            principal = self._outstanding(loans)
            terms = validate_terms(principal, interest_rate, frequency, installment_count, start_date)
            fee_rate = self.loan_manager.parse_late_fee_rate(late_fee_rate)

            source_ids = [loan.id for loan in loans]
            new_loan = self.loan_manager.create_from_terms(
                client_id=client_id,
                terms=terms,
                late_fee_enabled=late_fee_enabled,
                late_fee_rate=fee_rate,
                renegotiated_from=source_ids,
                created_by=created_by
            )

            now = self.clock.now()
            frozen_count = 0
            for loan in loans:
                frozen_count += len(self.ledger.freeze_unpaid(loan.id))
                loan.status = LoanStatus.RENEGOTIATED
                loan.renegotiated_into = new_loan.id
                loan.updated_at = now
                self.loan_manager.save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_RENEGOTIATED,
                entity_type="loan",
                entity_id=new_loan.id,
                metadata={
                    "client_id": client_id,
                    "source_loan_ids": source_ids,
                    "consolidated_principal": str(principal.amount),
                    "frozen_installments": frozen_count
                },
                user_id=created_by
            )

        log_action(
            logger, "info", "Loans renegotiated",
            user_id=created_by,
            action="loan.renegotiated",
            resource=f"loan:{new_loan.id}",
            extra={
                "client_id": client_id,
                "source_loan_ids": source_ids,
                "principal": str(principal.amount),
                "installment_count": new_loan.installment_count
            }
        )
        return new_loan
