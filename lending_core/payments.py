"""
Payment Allocator

Applies a collection event (FULL, PARTIAL or INTEREST payment) to a single
installment. Validation, the payment record, the paid_amount update, the
idempotency key, the loan payoff flip and the audit event all happen inside
one storage transaction: either every effect is visible or none is.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Union
import uuid

from .currency import Money, parse_amount
from .dates import Clock, parse_date
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .ledger import InstallmentLedger, Installment, Payment, PaymentMethod, PaymentType
from .loans import Loan, LoanManager, LoanStatus
from .exceptions import (
    AlreadySettled,
    IdempotencyConflict,
    InterestCapExceeded,
    InvalidPaymentAmount,
    LoanClosed,
    OverpaymentRejected,
    PaymentError,
)
from .logging_config import get_logger, log_action

logger = get_logger(__name__)

__all__ = [
    "AppliedPayment",
    "PaymentAllocator",
    "PaymentMethod",
    "PaymentType",
    "parse_payment_method",
    "parse_payment_type",
]


@dataclass
class AppliedPayment:
    """Outcome of apply_payment"""
    installment: Installment
    payment: Payment
    loan: Loan
    replayed: bool = False


def parse_payment_type(value: Union[PaymentType, str]) -> PaymentType:
    if isinstance(value, PaymentType):
        return value
    try:
        return PaymentType(str(value).strip().upper())
    except ValueError:
        raise PaymentError(
            f"Unknown payment type '{value}'",
            {"allowed": [t.value for t in PaymentType]}
        )


def parse_payment_method(value: Union[PaymentMethod, str]) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError:
        raise PaymentError(
            f"Unknown payment method '{value}'",
            {"allowed": [m.value for m in PaymentMethod]}
        )


def _normalized_amount(amount: Any) -> Optional[str]:
    if amount is None:
        return None
    try:
        return str(Money(parse_amount(amount)).amount)
    except ValueError:
        return str(amount)


class PaymentAllocator:
    """
    Applies payments to installments and keeps loans' payoff status current
    """

    keys_table = "payment_keys"

    def __init__(
        self,
        storage: StorageInterface,
        ledger: InstallmentLedger,
        loan_manager: LoanManager,
        audit_trail: AuditTrail,
        clock: Clock,
        cap_interest_payments: bool = True
    ):
        self.storage = storage
        self.ledger = ledger
        self.loan_manager = loan_manager
        self.audit_trail = audit_trail
        self.clock = clock
        self.cap_interest_payments = cap_interest_payments

    def apply_payment(
        self,
        installment_id: str,
        amount: Any = None,
        payment_type: Union[PaymentType, str] = PaymentType.PARTIAL,
        method: Union[PaymentMethod, str] = PaymentMethod.PIX,
        payment_date: Optional[Union[date, str]] = None,
        idempotency_key: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> AppliedPayment:
        """
        Apply a payment to one installment

        Args:
            installment_id: Target installment
            amount: Amount received; ignored for FULL payments, which always
                settle exactly the remaining balance
            payment_type: FULL, PARTIAL or INTEREST
            method: PIX or CASH
            payment_date: Date the money was received (defaults to today)
            idempotency_key: Client-supplied key; a retry with the same key
                and parameters returns the original result unchanged
            created_by: Operator recorded on the payment and audit event

        Returns:
            AppliedPayment with the updated installment, the payment and the loan

        Raises:
            InstallmentNotFound, LoanClosed, AlreadySettled, InvalidPaymentAmount,
            OverpaymentRejected, InterestCapExceeded, IdempotencyConflict
        """
        ptype = parse_payment_type(payment_type)
        pmethod = parse_payment_method(method)
        try:
            explicit_date = parse_date(payment_date) if payment_date is not None else None
        except ValueError as e:
            raise PaymentError(f"Invalid payment date: {e}", {"payment_date": str(payment_date)})

        fingerprint = {
            'installment_id': installment_id,
            'payment_type': ptype.value,
            'method': pmethod.value,
            'amount': None if ptype == PaymentType.FULL else _normalized_amount(amount),
            'payment_date': explicit_date.isoformat() if explicit_date else None
        }

        try:
            with self.storage.atomic():
                if idempotency_key:
                    replay = self._replay(idempotency_key, fingerprint)
                    if replay is not None:
                        return replay

                installment, loan = self._load_payable(installment_id)
                pay_amount = self._resolve_amount(installment, ptype, amount)
                capital_portion, interest_portion = self._split(installment, ptype, pay_amount)

                result = self._record(
                    installment=installment,
                    loan=loan,
                    ptype=ptype,
                    method=pmethod,
                    pay_amount=pay_amount,
                    capital_portion=capital_portion,
                    interest_portion=interest_portion,
                    payment_date=explicit_date or self.clock.today(),
                    idempotency_key=idempotency_key,
                    fingerprint=fingerprint,
                    created_by=created_by
                )
        except PaymentError as e:
            log_action(
                logger, "warning", f"Payment rejected: {e.message}",
                user_id=created_by,
                action="payment.rejected",
                resource=f"installment:{installment_id}",
                correlation_id=idempotency_key,
                extra={"error": type(e).__name__, **{k: str(v) for k, v in e.details.items()}}
            )
            raise

        log_action(
            logger, "info", "Payment applied",
            user_id=created_by,
            action="payment.applied",
            resource=f"installment:{installment_id}",
            correlation_id=idempotency_key,
            extra={
                "payment_id": result.payment.id,
                "loan_id": result.loan.id,
                "type": ptype.value,
                "amount": str(result.payment.amount.amount),
                "loan_status": result.loan.status.value
            }
        )
        return result

    def _replay(self, key: str, fingerprint: Dict[str, Any]) -> Optional[AppliedPayment]:
        record = self.storage.load(self.keys_table, key)
        if record is None:
            return None
        if record['fingerprint'] != fingerprint:
            raise IdempotencyConflict(key)

        payment = self.ledger.get_payment(record['payment_id'])
        installment = self.ledger.require_installment(payment.installment_id)
        loan = self.loan_manager.require_loan(payment.loan_id)
        log_action(
            logger, "warning", "Idempotent payment replayed",
            action="payment.replayed",
            resource=f"installment:{installment.id}",
            correlation_id=key,
            extra={"payment_id": payment.id}
        )
        return AppliedPayment(installment=installment, payment=payment, loan=loan, replayed=True)

    def _load_payable(self, installment_id: str):
        installment = self.ledger.require_installment(installment_id)
        loan = self.loan_manager.require_loan(installment.loan_id)

        if loan.status == LoanStatus.RENEGOTIATED or installment.frozen:
            raise LoanClosed(loan.id, LoanStatus.RENEGOTIATED.value)
        if installment.is_paid:
            raise AlreadySettled(installment.id)
        if loan.status == LoanStatus.PAID:
            raise LoanClosed(loan.id, loan.status.value)
        return installment, loan

    def _resolve_amount(self, installment: Installment, ptype: PaymentType, amount: Any) -> Money:
        remaining = installment.remaining
        if ptype == PaymentType.FULL:
            return remaining

        if amount is None:
            raise InvalidPaymentAmount("Payment amount is required", {"payment_type": ptype.value})
        try:
            value = amount.amount if isinstance(amount, Money) else parse_amount(amount)
        except ValueError as e:
            raise InvalidPaymentAmount(f"Invalid payment amount: {e}", {"amount": str(amount)})

        if value != value.quantize(installment.currency.quantum):
            raise InvalidPaymentAmount(
                f"Payment amount has more than {installment.currency.precision} decimal places",
                {"amount": str(value)}
            )
        pay_amount = Money(value, installment.currency)
        if not pay_amount.is_positive():
            raise InvalidPaymentAmount(
                "Payment amount must be positive",
                {"amount": str(value)}
            )
        if pay_amount > remaining:
            raise OverpaymentRejected(installment.id, str(pay_amount.amount), str(remaining.amount))
        return pay_amount

    def _split(self, installment: Installment, ptype: PaymentType, pay_amount: Money):
        """Return (capital_portion, interest_portion) for a validated amount"""
        currency = installment.currency
        zero = Money.zero(currency)
        paid = self.ledger.paid_portions(installment.id, currency)
        remaining_interest = max(installment.interest_amount - paid['interest'], zero)
        remaining_capital = max(installment.capital_amount - paid['capital'], zero)

        if ptype == PaymentType.INTEREST and self.cap_interest_payments:
            if pay_amount > remaining_interest:
                raise InterestCapExceeded(installment.id, str(pay_amount.amount), str(remaining_interest.amount))
            return zero, pay_amount

        if pay_amount >= remaining_capital + remaining_interest:
            return remaining_capital, remaining_interest

        share = installment.interest_amount.amount / installment.amount.amount
        interest = Money(pay_amount.amount * share, currency)
        # Keep both portions within what is still owed
        interest = min(max(interest, pay_amount - remaining_capital), remaining_interest)
        return pay_amount - interest, interest

    def _record(
        self,
        installment: Installment,
        loan: Loan,
        ptype: PaymentType,
        method: PaymentMethod,
        pay_amount: Money,
        capital_portion: Money,
        interest_portion: Money,
        payment_date: date,
        idempotency_key: Optional[str],
        fingerprint: Dict[str, Any],
        created_by: Optional[str]
    ) -> AppliedPayment:
        now = self.clock.now()
        payment = Payment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            installment_id=installment.id,
            loan_id=loan.id,
            client_id=loan.client_id,
            amount=pay_amount,
            capital_portion=capital_portion,
            interest_portion=interest_portion,
            payment_date=payment_date,
            payment_type=ptype,
            method=method,
            idempotency_key=idempotency_key,
            created_by=created_by
        )
        self.ledger.record_payment(payment)

        installment.paid_amount = installment.paid_amount + pay_amount
        installment.updated_at = now
        self.ledger.save_installment(installment)

        if idempotency_key:
            self.storage.save(self.keys_table, idempotency_key, {
                'id': idempotency_key,
                'payment_id': payment.id,
                'fingerprint': fingerprint,
                'created_at': now.isoformat()
            })

        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="installment",
            entity_id=installment.id,
            metadata={
                "payment_id": payment.id,
                "loan_id": loan.id,
                "payment_type": ptype.value,
                "method": method.value,
                "amount": str(pay_amount.amount),
                "capital_portion": str(capital_portion.amount),
                "interest_portion": str(interest_portion.amount),
                "paid_amount": str(installment.paid_amount.amount),
                "payment_date": payment_date.isoformat()
            },
            user_id=created_by
        )

        self.loan_manager.mark_paid_if_settled(loan, created_by=created_by)
        return AppliedPayment(installment=installment, payment=payment, loan=loan)
