"""
Risk & Status Classifier

Pure aggregation over a set of installments as of a given day. Nothing here
reads storage or the clock; callers pass both the installments and today.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from .currency import Money, Currency
from .dates import days_late as days_late_between
from .ledger import Installment, InstallmentStatus

DEFAULT_WARNING_DAYS = 7
DEFAULT_CRITICAL_DAYS = 30


class RiskLevel(Enum):
    """Collection risk of a client or portfolio slice"""
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class RiskSummary:
    total_pending: Money
    late_count: int
    open_count: int
    oldest_due_date: Optional[date]
    days_late: int
    risk_level: RiskLevel


def risk_level_for(
    days_late: int,
    warning_days: int = DEFAULT_WARNING_DAYS,
    critical_days: int = DEFAULT_CRITICAL_DAYS
) -> RiskLevel:
    if days_late >= critical_days:
        return RiskLevel.CRITICAL
    if days_late >= warning_days:
        return RiskLevel.WARNING
    return RiskLevel.NORMAL


def classify(
    installments: Iterable[Installment],
    today: date,
    currency: Currency = Currency.BRL,
    warning_days: int = DEFAULT_WARNING_DAYS,
    critical_days: int = DEFAULT_CRITICAL_DAYS
) -> RiskSummary:
    """
    Summarize outstanding debt and lateness of a group of installments

    Frozen installments are skipped: their balance was moved to a
    renegotiated loan. Installments in a currency other than `currency` are
    skipped too. Risk is driven by the oldest unpaid due date.
    """
    total_pending = Money.zero(currency)
    late_count = 0
    open_count = 0
    oldest_due_date = None

    for installment in installments:
        if installment.frozen or installment.currency != currency:
            continue
        status = installment.status_on(today)
        if status == InstallmentStatus.PAID:
            continue

        open_count += 1
        total_pending = total_pending + installment.remaining
        if status == InstallmentStatus.LATE:
            late_count += 1
        if oldest_due_date is None or installment.due_date < oldest_due_date:
            oldest_due_date = installment.due_date

    days = days_late_between(oldest_due_date, today) if oldest_due_date else 0

    return RiskSummary(
        total_pending=total_pending,
        late_count=late_count,
        open_count=open_count,
        oldest_due_date=oldest_due_date,
        days_late=days,
        risk_level=risk_level_for(days, warning_days, critical_days)
    )
