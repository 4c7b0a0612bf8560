"""
Loan endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .errors import http_error
from .schemas import (
    CreateLoanRequest,
    LoanTermsRequest,
    installment_response,
    loan_response,
    money,
    scheduled_installment_response,
)
from .system import LendingSystem, get_lending_system
from ..exceptions import LendingError
from ..loans import LoanStatus
from ..schedule import generate_schedule, schedule_total


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a loan and its installment schedule"""
    try:
        loan = system.loan_manager.create_loan(
            client_id=request.client_id,
            principal=request.principal,
            interest_rate=request.interest_rate if request.interest_rate is not None else system.config.default_interest_rate,
            frequency=request.frequency,
            installment_count=request.installment_count,
            start_date=request.start_date,
            late_fee_enabled=request.late_fee_enabled,
            late_fee_rate=request.late_fee_rate,
            currency=system.currency,
            created_by=request.created_by
        )
    except LendingError as e:
        raise http_error(e)

    today = system.clock.today()
    result = loan_response(loan, loan.total_amount)
    result["installments"] = [
        installment_response(i, today) for i in system.ledger.get_loan_installments(loan.id)
    ]
    return result


@router.post("/preview")
async def preview_loan(
    request: LoanTermsRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Schedule a loan would get, without creating it"""
    try:
        schedule = generate_schedule(
            principal=request.principal,
            interest_rate=request.interest_rate if request.interest_rate is not None else system.config.default_interest_rate,
            frequency=request.frequency,
            installment_count=request.installment_count,
            start_date=request.start_date,
            currency=system.currency
        )
    except LendingError as e:
        raise http_error(e)
    return {
        "total_amount": money(schedule_total(schedule)),
        "schedule": [scheduled_installment_response(row) for row in schedule]
    }


@router.get("")
async def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    system: LendingSystem = Depends(get_lending_system)
):
    loans = system.loan_manager.list_loans(status_filter)
    return {"loans": [loan_response(loan) for loan in loans]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Loan terms, status and remaining balance"""
    try:
        loan = system.loan_manager.require_loan(loan_id)
    except LendingError as e:
        raise http_error(e)
    return loan_response(loan, system.ledger.outstanding_balance(loan.id, loan.currency))


@router.get("/{loan_id}/installments")
async def get_loan_installments(
    loan_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Installments of a loan with derived status and late fee estimate"""
    try:
        loan = system.loan_manager.require_loan(loan_id)
    except LendingError as e:
        raise http_error(e)
    today = system.clock.today()
    return {
        "loan_id": loan.id,
        "installments": [
            installment_response(i, today, system.ledger.late_fee_estimate(i, loan, today))
            for i in system.ledger.get_loan_installments(loan.id)
        ]
    }
