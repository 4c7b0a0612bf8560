"""
Installment and payment endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Response, status

from .errors import http_error
from .schemas import PaymentRequest, applied_payment_response, installment_response, payment_response
from .system import LendingSystem, get_lending_system
from ..exceptions import LendingError


router = APIRouter()


@router.get("/{installment_id}")
async def get_installment(
    installment_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Installment state and the payments applied to it"""
    try:
        installment = system.ledger.require_installment(installment_id)
        loan = system.loan_manager.require_loan(installment.loan_id)
    except LendingError as e:
        raise http_error(e)
    today = system.clock.today()
    result = installment_response(installment, today, system.ledger.late_fee_estimate(installment, loan, today))
    result["payments"] = [payment_response(p) for p in system.ledger.get_payments(installment_id)]
    return result


@router.post("/{installment_id}/payments", status_code=status.HTTP_201_CREATED)
async def apply_payment(
    installment_id: str,
    request: PaymentRequest,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    system: LendingSystem = Depends(get_lending_system)
):
    """
    Apply a FULL, PARTIAL or INTEREST payment

    Retrying with the same Idempotency-Key returns the original payment
    with 200 instead of applying it again.
    """
    try:
        result = system.payment_allocator.apply_payment(
            installment_id=installment_id,
            amount=request.amount,
            payment_type=request.payment_type,
            method=request.method,
            payment_date=request.payment_date,
            idempotency_key=idempotency_key,
            created_by=request.created_by
        )
    except LendingError as e:
        raise http_error(e)

    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return applied_payment_response(result, system.clock.today())
