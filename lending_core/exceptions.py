"""
Typed error hierarchy for the lending core.

Every failure the core reports to its caller is one of these. Validation
always happens before any write, so catching one of these means nothing was
persisted for the failed operation.
"""

from typing import Any, Dict, Optional


class LendingError(Exception):
    """Base exception for all lending core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidScheduleInput(LendingError):
    """Raised when loan terms cannot produce a valid installment schedule."""


class InvalidClientData(LendingError):
    """Raised when client registration data is incomplete or malformed."""


class LedgerIntegrityError(LendingError):
    """Raised when an installment's paid amount disagrees with its payments."""


# Payment errors

class PaymentError(LendingError):
    """Base class for rejected payment submissions."""


class AlreadySettled(PaymentError):
    """Raised when a payment targets an installment that is already paid."""

    def __init__(self, installment_id: str):
        super().__init__(
            f"Installment {installment_id} is already settled",
            {"installment_id": installment_id}
        )


class OverpaymentRejected(PaymentError):
    """Raised when a payment would push paid_amount above the installment amount."""

    def __init__(self, installment_id: str, amount: str, remaining: str):
        super().__init__(
            f"Payment of {amount} exceeds remaining balance {remaining}",
            {"installment_id": installment_id, "amount": amount, "remaining": remaining}
        )


class InterestCapExceeded(PaymentError):
    """Raised when an interest-only payment exceeds the unpaid interest."""

    def __init__(self, installment_id: str, amount: str, remaining_interest: str):
        super().__init__(
            f"Interest payment of {amount} exceeds unpaid interest {remaining_interest}",
            {
                "installment_id": installment_id,
                "amount": amount,
                "remaining_interest": remaining_interest
            }
        )


class LoanClosed(PaymentError):
    """Raised when a payment targets a renegotiated or settled loan."""

    def __init__(self, loan_id: str, status: str):
        super().__init__(
            f"Loan {loan_id} is {status} and accepts no further payments",
            {"loan_id": loan_id, "status": status}
        )


class InvalidPaymentAmount(PaymentError):
    """Raised when a payment amount is missing, unparsable or not positive."""


class IdempotencyConflict(PaymentError):
    """Raised when an idempotency key is reused for a different payment."""

    def __init__(self, key: str):
        super().__init__(
            f"Idempotency key '{key}' was already used for a different payment",
            {"idempotency_key": key}
        )


class RenegotiationError(LendingError):
    """Raised when a renegotiation request is not acceptable."""


# Lookup errors

class NotFoundError(LendingError):
    """Raised when a referenced record does not exist."""


class LoanNotFound(NotFoundError):
    def __init__(self, loan_id: str):
        super().__init__(f"Loan '{loan_id}' not found", {"loan_id": loan_id})


class InstallmentNotFound(NotFoundError):
    def __init__(self, installment_id: str):
        super().__init__(
            f"Installment '{installment_id}' not found",
            {"installment_id": installment_id}
        )


class ClientNotFound(NotFoundError):
    def __init__(self, client_id: str):
        super().__init__(f"Client '{client_id}' not found", {"client_id": client_id})
