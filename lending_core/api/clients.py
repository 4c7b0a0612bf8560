"""
Client endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .errors import http_error
from .schemas import (
    CreateClientRequest,
    RenegotiateRequest,
    UpdateClientStatusRequest,
    client_response,
    client_summary_response,
    installment_response,
    loan_response,
    renegotiation_preview_response,
)
from .system import LendingSystem, get_lending_system
from ..clients import ClientStatus
from ..exceptions import LendingError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_client(
    request: CreateClientRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a new client"""
    try:
        client = system.client_manager.create_client(
            name=request.name,
            phone=request.phone,
            cpf=request.cpf,
            address=request.address,
            notes=request.notes,
            created_by=request.created_by
        )
    except LendingError as e:
        raise http_error(e)
    return client_response(client)


@router.get("")
async def list_clients(
    status_filter: Optional[ClientStatus] = Query(None, alias="status"),
    system: LendingSystem = Depends(get_lending_system)
):
    """List clients, optionally by status"""
    return {"clients": [client_response(c) for c in system.client_manager.list_clients(status_filter)]}


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        client = system.client_manager.require_client(client_id)
    except LendingError as e:
        raise http_error(e)
    return client_response(client)


@router.patch("/{client_id}/status")
async def update_client_status(
    client_id: str,
    request: UpdateClientStatusRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        client = system.client_manager.update_status(client_id, request.status, changed_by=request.changed_by)
    except LendingError as e:
        raise http_error(e)
    return client_response(client)


@router.get("/{client_id}/summary")
async def get_client_summary(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Total lent, open debt and collection risk"""
    try:
        summary = system.client_portfolio.summary(client_id)
    except LendingError as e:
        raise http_error(e)
    return client_summary_response(summary)


@router.get("/{client_id}/loans")
async def get_client_loans(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        system.client_manager.require_client(client_id)
    except LendingError as e:
        raise http_error(e)
    loans = system.loan_manager.get_client_loans(client_id)
    return {
        "loans": [loan_response(loan, system.ledger.outstanding_balance(loan.id, loan.currency)) for loan in loans]
    }


@router.get("/{client_id}/installments")
async def get_client_installments(
    client_id: str,
    include_paid: bool = False,
    include_frozen: bool = False,
    system: LendingSystem = Depends(get_lending_system)
):
    """Installments of a client ordered by due date (open ones by default)"""
    try:
        system.client_manager.require_client(client_id)
    except LendingError as e:
        raise http_error(e)
    today = system.clock.today()
    installments = system.ledger.get_client_installments(
        client_id, include_paid=include_paid, include_frozen=include_frozen
    )
    return {"installments": [installment_response(i, today) for i in installments]}


@router.post("/{client_id}/renegotiate/preview")
async def preview_renegotiation(
    client_id: str,
    request: RenegotiateRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Consolidated balance and new schedule, nothing is written"""
    try:
        preview = system.renegotiation_engine.preview(
            client_id=client_id,
            loan_ids=request.loan_ids,
            interest_rate=_rate(request, system),
            frequency=request.frequency,
            installment_count=request.installment_count,
            start_date=request.start_date
        )
    except LendingError as e:
        raise http_error(e)
    return renegotiation_preview_response(preview)


@router.post("/{client_id}/renegotiate", status_code=status.HTTP_201_CREATED)
async def renegotiate(
    client_id: str,
    request: RenegotiateRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Replace the selected loans with one consolidated loan"""
    try:
        system.client_manager.require_client(client_id)
        loan = system.renegotiation_engine.renegotiate(
            client_id=client_id,
            loan_ids=request.loan_ids,
            interest_rate=_rate(request, system),
            frequency=request.frequency,
            installment_count=request.installment_count,
            start_date=request.start_date,
            late_fee_enabled=request.late_fee_enabled,
            late_fee_rate=request.late_fee_rate if request.late_fee_rate is not None else system.config.default_late_fee_rate,
            created_by=request.created_by
        )
    except LendingError as e:
        raise http_error(e)
    return loan_response(loan, system.ledger.outstanding_balance(loan.id, loan.currency))


def _rate(request: RenegotiateRequest, system: LendingSystem):
    return request.interest_rate if request.interest_rate is not None else system.config.default_interest_rate
