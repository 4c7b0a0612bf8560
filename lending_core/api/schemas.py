"""
Pydantic schemas for API requests and responses

Amounts travel as decimal strings ("110.00"); requests also accept JSON
numbers and Brazilian-formatted strings ("R$ 1.234,56").
"""

from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..currency import Money
from ..clients import Client, ClientStatus, ClientSummary
from ..ledger import Installment, Payment
from ..loans import Loan
from ..payments import AppliedPayment
from ..renegotiation import RenegotiationPreview
from ..risk import RiskSummary
from ..schedule import ScheduledInstallment

AmountInput = Union[int, float, str]


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (BRL, USD, EUR)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


def money(value: Money) -> Dict[str, str]:
    return MoneyModel.from_money(value).model_dump()


# Client schemas
class CreateClientRequest(BaseModel):
    name: str
    phone: Optional[str] = None
    cpf: Optional[str] = None
    address: Optional[str] = None
    notes: str = ""
    created_by: Optional[str] = None


class UpdateClientStatusRequest(BaseModel):
    status: ClientStatus
    changed_by: Optional[str] = None


# Loan schemas
class LoanTermsRequest(BaseModel):
    principal: AmountInput
    interest_rate: Optional[AmountInput] = None  # config default when omitted
    frequency: str = Field(..., description="DAILY, WEEKLY or MONTHLY")
    installment_count: Union[int, str]
    start_date: str = Field(..., description="ISO date of the first installment")


class CreateLoanRequest(LoanTermsRequest):
    client_id: str
    late_fee_enabled: bool = True
    late_fee_rate: Optional[AmountInput] = None
    created_by: Optional[str] = None


class PaymentRequest(BaseModel):
    payment_type: str = Field("PARTIAL", description="FULL, PARTIAL or INTEREST")
    amount: Optional[AmountInput] = Field(None, description="Ignored for FULL payments")
    method: str = Field("PIX", description="PIX or CASH")
    payment_date: Optional[str] = None
    created_by: Optional[str] = None


class RenegotiateRequest(BaseModel):
    loan_ids: List[str]
    interest_rate: Optional[AmountInput] = None
    frequency: str
    installment_count: Union[int, str]
    start_date: str
    late_fee_enabled: bool = True
    late_fee_rate: Optional[AmountInput] = None
    created_by: Optional[str] = None


# Response builders
def client_response(client: Client) -> Dict[str, Any]:
    return {
        "id": client.id,
        "name": client.name,
        "phone": client.phone,
        "cpf": client.cpf,
        "address": client.address,
        "notes": client.notes,
        "score": client.score,
        "status": client.status.value,
        "created_at": client.created_at.isoformat()
    }


def risk_response(risk: RiskSummary) -> Dict[str, Any]:
    return {
        "total_pending": money(risk.total_pending),
        "late_count": risk.late_count,
        "open_count": risk.open_count,
        "oldest_due_date": risk.oldest_due_date.isoformat() if risk.oldest_due_date else None,
        "days_late": risk.days_late,
        "risk_level": risk.risk_level.value
    }


def client_summary_response(summary: ClientSummary) -> Dict[str, Any]:
    return {
        "client": client_response(summary.client),
        "total_loaned": money(summary.total_loaned),
        "total_debt": money(summary.total_debt),
        "active_loans": summary.active_loans,
        "risk": risk_response(summary.risk)
    }


def loan_response(loan: Loan, outstanding: Optional[Money] = None) -> Dict[str, Any]:
    result = {
        "id": loan.id,
        "client_id": loan.client_id,
        "principal": money(loan.principal),
        "interest_rate": str(loan.interest_rate),
        "total_amount": money(loan.total_amount),
        "payment_frequency": loan.payment_frequency.value,
        "installment_count": loan.installment_count,
        "start_date": loan.start_date.isoformat(),
        "late_fee_enabled": loan.late_fee_enabled,
        "late_fee_rate": str(loan.late_fee_rate),
        "status": loan.status.value,
        "renegotiated_from": loan.renegotiated_from,
        "renegotiated_into": loan.renegotiated_into,
        "created_at": loan.created_at.isoformat()
    }
    if outstanding is not None:
        result["outstanding"] = money(outstanding)
    return result


def installment_response(
    installment: Installment,
    today: date,
    late_fee: Optional[Money] = None
) -> Dict[str, Any]:
    result = {
        "id": installment.id,
        "loan_id": installment.loan_id,
        "client_id": installment.client_id,
        "number": installment.number,
        "due_date": installment.due_date.isoformat(),
        "amount": money(installment.amount),
        "capital_amount": money(installment.capital_amount),
        "interest_amount": money(installment.interest_amount),
        "paid_amount": money(installment.paid_amount),
        "remaining": money(installment.remaining),
        "status": installment.status_on(today).value,
        "days_late": installment.days_late(today),
        "frozen": installment.frozen
    }
    if late_fee is not None:
        result["late_fee_estimate"] = money(late_fee)
    return result


def scheduled_installment_response(row: ScheduledInstallment) -> Dict[str, Any]:
    return {
        "number": row.number,
        "due_date": row.due_date.isoformat(),
        "amount": money(row.amount),
        "capital_amount": money(row.capital_amount),
        "interest_amount": money(row.interest_amount)
    }


def payment_response(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "installment_id": payment.installment_id,
        "loan_id": payment.loan_id,
        "amount": money(payment.amount),
        "capital_portion": money(payment.capital_portion),
        "interest_portion": money(payment.interest_portion),
        "payment_date": payment.payment_date.isoformat(),
        "payment_type": payment.payment_type.value,
        "method": payment.method.value,
        "idempotency_key": payment.idempotency_key,
        "created_by": payment.created_by
    }


def applied_payment_response(result: AppliedPayment, today: date) -> Dict[str, Any]:
    return {
        "payment": payment_response(result.payment),
        "installment": installment_response(result.installment, today),
        "loan_status": result.loan.status.value,
        "replayed": result.replayed
    }


def renegotiation_preview_response(preview: RenegotiationPreview) -> Dict[str, Any]:
    return {
        "source_loan_ids": preview.source_loan_ids,
        "principal": money(preview.principal),
        "total_amount": money(preview.total_amount),
        "schedule": [scheduled_installment_response(row) for row in preview.schedule]
    }
