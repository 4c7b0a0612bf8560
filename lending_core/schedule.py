"""
Schedule Generator

Builds the flat-rate installment schedule for a new or renegotiated loan.

Interest is charged once over the whole principal (not compounded):

    total = principal * (1 + rate / 100)

Every installment except the last is floor(total / count) to the cent; the
last one absorbs the rounding remainder, so the schedule always sums to the
total exactly. The capital/interest split of each installment is
proportional to principal / total, again with the last installment taking
the remainder so capital sums to the principal exactly.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Any, List, Union
from enum import Enum

from .currency import Money, Currency, parse_amount, to_decimal, sum_money
from .dates import add_business_days, add_months, parse_date
from .exceptions import InvalidScheduleInput


class PaymentFrequency(Enum):
    """How often installments fall due"""
    DAILY = "DAILY"        # Monday to Saturday, Sundays skipped
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class ScheduledInstallment:
    """One row of a generated schedule, before it is stored in the ledger"""
    number: int
    due_date: date
    amount: Money
    capital_amount: Money
    interest_amount: Money


@dataclass(frozen=True)
class ScheduleTerms:
    """Validated, normalized schedule inputs"""
    principal: Money
    interest_rate: Decimal
    frequency: PaymentFrequency
    installment_count: int
    start_date: date

    @property
    def total_amount(self) -> Money:
        return calculate_total(self.principal, self.interest_rate)


def calculate_total(principal: Money, interest_rate: Decimal) -> Money:
    """Flat-rate total owed: principal plus rate percent of it"""
    interest = principal.amount * interest_rate / Decimal('100')
    return Money(principal.amount + interest, principal.currency)


def due_date_for(start_date: date, frequency: PaymentFrequency, number: int) -> date:
    """Due date of installment `number` (1-based)"""
    if frequency == PaymentFrequency.MONTHLY:
        return add_months(start_date, number - 1)
    elif frequency == PaymentFrequency.WEEKLY:
        return start_date + timedelta(days=7 * (number - 1))
    elif frequency == PaymentFrequency.DAILY:
        return add_business_days(start_date, number)
    raise InvalidScheduleInput(f"Unsupported payment frequency: {frequency}")


def parse_frequency(value: Union[PaymentFrequency, str]) -> PaymentFrequency:
    if isinstance(value, PaymentFrequency):
        return value
    try:
        return PaymentFrequency(str(value).strip().upper())
    except ValueError:
        raise InvalidScheduleInput(
            f"Unknown payment frequency '{value}'",
            {"allowed": [f.value for f in PaymentFrequency]}
        )


def validate_terms(
    principal: Any,
    interest_rate: Any,
    frequency: Any,
    installment_count: Any,
    start_date: Any,
    currency: Currency = Currency.BRL
) -> ScheduleTerms:
    """
    Normalize raw caller input into ScheduleTerms.

    Raises:
        InvalidScheduleInput: On any unusable input
    """
    try:
        principal_value = principal.amount if isinstance(principal, Money) else parse_amount(principal)
    except ValueError as e:
        raise InvalidScheduleInput(f"Invalid principal: {e}", {"principal": str(principal)})
    if isinstance(principal, Money):
        currency = principal.currency

    try:
        rate = to_decimal(interest_rate)
    except ValueError as e:
        raise InvalidScheduleInput(f"Invalid interest rate: {e}", {"interest_rate": str(interest_rate)})

    if isinstance(installment_count, bool) or not isinstance(installment_count, (int, str)):
        raise InvalidScheduleInput(
            "Installment count must be an integer",
            {"installment_count": str(installment_count)}
        )
    try:
        count = int(installment_count)
    except ValueError:
        raise InvalidScheduleInput(
            "Installment count must be an integer",
            {"installment_count": str(installment_count)}
        )

    try:
        start = parse_date(start_date)
    except ValueError as e:
        raise InvalidScheduleInput(f"Invalid start date: {e}", {"start_date": str(start_date)})

    freq = parse_frequency(frequency)
    if principal_value != principal_value.quantize(currency.quantum):
        raise InvalidScheduleInput(
            f"Principal has more than {currency.precision} decimal places",
            {"principal": str(principal_value)}
        )
    money_principal = Money(principal_value, currency)

    if not money_principal.is_positive():
        raise InvalidScheduleInput("Principal must be positive", {"principal": str(principal_value)})
    if rate < 0:
        raise InvalidScheduleInput("Interest rate cannot be negative", {"interest_rate": str(rate)})
    if count < 1:
        raise InvalidScheduleInput("Installment count must be at least 1", {"installment_count": count})

    total = calculate_total(money_principal, rate)
    if Money.floor(total.amount / Decimal(count), currency).is_zero():
        raise InvalidScheduleInput(
            "Installment amount would round to zero",
            {"total": str(total.amount), "installment_count": count}
        )

    return ScheduleTerms(
        principal=money_principal,
        interest_rate=rate,
        frequency=freq,
        installment_count=count,
        start_date=start
    )


def build_schedule(terms: ScheduleTerms) -> List[ScheduledInstallment]:
    """Generate the installment rows for already validated terms"""
    currency = terms.principal.currency
    count = terms.installment_count
    total = terms.total_amount

    base = Money.floor(total.amount / Decimal(count), currency)
    last = total - base * (count - 1)
    capital_ratio = terms.principal.amount / total.amount

    schedule = []
    scheduled_so_far = Money.zero(currency)
    capital_so_far = Money.zero(currency)
    for number in range(1, count + 1):
        amount = base if number < count else last
        scheduled_so_far = scheduled_so_far + amount
        if number < count:
            # Round the running capital, not each row, so drift never accumulates
            capital = Money(scheduled_so_far.amount * capital_ratio, currency) - capital_so_far
            capital = min(max(capital, Money.zero(currency)), amount)
        else:
            capital = terms.principal - capital_so_far
        capital_so_far = capital_so_far + capital

        schedule.append(ScheduledInstallment(
            number=number,
            due_date=due_date_for(terms.start_date, terms.frequency, number),
            amount=amount,
            capital_amount=capital,
            interest_amount=amount - capital
        ))

    return schedule


def generate_schedule(
    principal: Any,
    interest_rate: Any,
    frequency: Any,
    installment_count: Any,
    start_date: Any,
    currency: Currency = Currency.BRL
) -> List[ScheduledInstallment]:
    """
    Generate the ordered installment schedule for a loan

    Args:
        principal: Amount lent (Money, Decimal, int, float or string)
        interest_rate: Flat percentage over the whole term, e.g. 10 for 10%
        frequency: PaymentFrequency or its name
        installment_count: Number of installments (>= 1)
        start_date: Due date of the first installment (date or ISO string)
        currency: Currency used when principal is not already Money

    Returns:
        List of ScheduledInstallment ordered by number

    Raises:
        InvalidScheduleInput: If the terms are invalid
    """
    terms = validate_terms(principal, interest_rate, frequency, installment_count, start_date, currency)
    return build_schedule(terms)


def schedule_total(schedule: List[ScheduledInstallment]) -> Money:
    """Sum of installment amounts of a schedule"""
    if not schedule:
        raise ValueError("Schedule is empty")
    return sum_money((row.amount for row in schedule), schedule[0].amount.currency)
