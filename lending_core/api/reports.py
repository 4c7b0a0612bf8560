"""
Reporting endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from .schemas import money
from .system import LendingSystem, get_lending_system


router = APIRouter()


@router.get("/dashboard")
async def dashboard(system: LendingSystem = Depends(get_lending_system)):
    summary = system.reporting_engine.dashboard()
    return {
        "today": summary.today.isoformat(),
        "expected_today": money(summary.expected_today),
        "received_today": money(summary.received_today),
        "late_amount": money(summary.late_amount),
        "total_loaned": money(summary.total_loaned),
        "total_received": money(summary.total_received),
        "total_open": money(summary.total_open),
        "projected_profit": money(summary.projected_profit),
        "active_clients": summary.active_clients,
        "late_clients": summary.late_clients,
        "loan_count": summary.loan_count
    }


@router.get("/daily-collections")
async def daily_collections(system: LendingSystem = Depends(get_lending_system)):
    """Open installments due today or earlier"""
    items = system.reporting_engine.daily_collections()
    return {
        "items": [
            {
                "installment_id": item.installment_id,
                "loan_id": item.loan_id,
                "client_id": item.client_id,
                "client_name": item.client_name,
                "client_phone": item.client_phone,
                "client_address": item.client_address,
                "number": item.number,
                "due_date": item.due_date.isoformat(),
                "amount": money(item.amount),
                "paid_amount": money(item.paid_amount),
                "pending": money(item.pending),
                "status": item.status.value,
                "days_late": item.days_late
            }
            for item in items
        ]
    }


@router.get("/late-payments")
async def late_payments(
    min_days: int = Query(0, ge=0),
    system: LendingSystem = Depends(get_lending_system)
):
    """Clients with late installments, most overdue first"""
    rows = system.reporting_engine.late_payments(min_days_late=min_days)
    return {
        "clients": [
            {
                "client_id": row.client_id,
                "client_name": row.client_name,
                "client_phone": row.client_phone,
                "late_count": row.late_count,
                "total_late": money(row.total_late),
                "oldest_due_date": row.oldest_due_date.isoformat(),
                "days_late": row.days_late,
                "risk_level": row.risk_level.value,
                "last_payment_date": row.last_payment_date.isoformat() if row.last_payment_date else None
            }
            for row in rows
        ]
    }


@router.get("/portfolio")
async def portfolio(
    top: int = Query(5, ge=1, le=100),
    system: LendingSystem = Depends(get_lending_system)
):
    report = system.reporting_engine.portfolio_report(top=top)

    def ranking(rows):
        return [{"client_id": r.client_id, "client_name": r.client_name, "amount": money(r.amount)} for r in rows]

    return {
        "total_loaned": money(report.total_loaned),
        "total_received": money(report.total_received),
        "capital_received": money(report.capital_received),
        "interest_received": money(report.interest_received),
        "top_debtors": ranking(report.top_debtors),
        "top_earners": ranking(report.top_earners)
    }


@router.get("/cash-flow")
async def cash_flow(
    days: int = Query(7, ge=1, le=365),
    system: LendingSystem = Depends(get_lending_system)
):
    """Amount received per day"""
    try:
        flow = system.reporting_engine.cash_flow(days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"days": [{"day": d.day.isoformat(), "received": money(d.received)} for d in flow]}
