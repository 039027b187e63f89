import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from ledger import NormalizedTransaction
from models import Direction, Rhythm, TransactionCategory
from recurrence import RHYTHM_MONTHS, parse_rhythm


@dataclass(frozen=True)
class MonthlySummary:
    month: str
    income_cents: int
    expense_cents: int

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass(frozen=True)
class BalancePoint:
    date: date
    balance_cents: int


@dataclass(frozen=True)
class RevenueProgress:
    year: int
    target_cents: int
    achieved_cents: int
    remaining_cents: int
    progress_percent: float


@dataclass(frozen=True)
class ScenarioImpact:
    baseline_end_cents: int
    scenario_end_cents: int
    baseline_low_cents: int
    scenario_low_cents: int

    @property
    def difference_cents(self) -> int:
        return self.scenario_end_cents - self.baseline_end_cents


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def monthly_summary(transactions: Iterable[NormalizedTransaction]) -> list[MonthlySummary]:
    income: dict[str, int] = defaultdict(int)
    expense: dict[str, int] = defaultdict(int)
    for txn in transactions:
        key = month_key(txn.date)
        if txn.direction == Direction.incoming:
            income[key] += txn.amount_cents
        else:
            expense[key] += txn.amount_cents
    months = sorted(set(income) | set(expense))
    return [MonthlySummary(m, income.get(m, 0), expense.get(m, 0)) for m in months]


def category_totals(
    transactions: Iterable[NormalizedTransaction],
) -> dict[TransactionCategory, int]:
    totals: dict[TransactionCategory, int] = defaultdict(int)
    for txn in transactions:
        if txn.direction != Direction.outgoing:
            continue
        totals[txn.category] += txn.amount_cents
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def daily_balance_series(
    transactions: Iterable[NormalizedTransaction],
    start: date,
    end: date,
    seed_cents: int,
) -> list[BalancePoint]:
    """Balance at the end of every calendar day in ``[start, end]``.

    Transactions outside the range are ignored; the series starts from
    ``seed_cents`` so callers can reseed it for what-if views.
    """
    if end < start:
        raise ValueError("End date must not be before start date")
    per_day: dict[date, int] = defaultdict(int)
    for txn in transactions:
        if start <= txn.date <= end:
            per_day[txn.date] += txn.signed_amount_cents
    points: list[BalancePoint] = []
    balance = seed_cents
    current = start
    while current <= end:
        balance += per_day.get(current, 0)
        points.append(BalancePoint(current, balance))
        current += timedelta(days=1)
    return points


def cash_runway(balance_cents: int, monthly_burn_cents: float) -> float:
    """Months the balance lasts at the given burn rate; ``inf`` if nothing burns."""
    if monthly_burn_cents is None or monthly_burn_cents <= 0:
        return math.inf
    return max(0.0, balance_cents / monthly_burn_cents)


def monthly_burn_rate(
    transactions: Iterable[NormalizedTransaction], start: date, end: date
) -> float:
    """Average net outflow per month over ``[start, end]``; negative when earning."""
    if end < start:
        raise ValueError("End date must not be before start date")
    net = 0
    for txn in transactions:
        if start <= txn.date <= end:
            net -= txn.signed_amount_cents
    months = max((end - start).days + 1, 1) / 30.0
    return net / months


def monthly_equivalent(amount_cents: int, rhythm: Rhythm) -> float:
    return amount_cents / RHYTHM_MONTHS[parse_rhythm(rhythm)]


def monthly_fixed_costs(fixed_costs: Iterable, on: date) -> int:
    total = 0.0
    for cost in fixed_costs:
        if cost.start_date > on:
            continue
        if cost.end_date is not None and cost.end_date < on:
            continue
        total += monthly_equivalent(cost.amount_cents, cost.rhythm)
    return round(total)


def upcoming_payments(
    transactions: Iterable[NormalizedTransaction],
    today: date,
    days: int = 30,
    limit: Optional[int] = None,
) -> list[NormalizedTransaction]:
    horizon = today + timedelta(days=days)
    result = [
        txn
        for txn in transactions
        if txn.direction == Direction.outgoing and today < txn.date <= horizon
    ]
    result.sort(key=lambda txn: (txn.date, -txn.amount_cents))
    return result[:limit] if limit is not None else result


def top_outflows(
    transactions: Iterable[NormalizedTransaction], limit: int = 5
) -> list[NormalizedTransaction]:
    outgoing = [t for t in transactions if t.direction == Direction.outgoing]
    outgoing.sort(key=lambda txn: txn.amount_cents, reverse=True)
    return outgoing[:limit]


def overdue_receivables(
    transactions: Iterable[NormalizedTransaction],
) -> list[NormalizedTransaction]:
    return [
        txn
        for txn in transactions
        if txn.direction == Direction.incoming and txn.expected and txn.was_date_shifted
    ]


def revenue_progress(
    transactions: Iterable[NormalizedTransaction], year: int, target_cents: int
) -> RevenueProgress:
    achieved = sum(
        txn.amount_cents
        for txn in transactions
        if txn.date.year == year
        and txn.direction == Direction.incoming
        and txn.category != TransactionCategory.simulation
    )
    remaining = max(0, target_cents - achieved)
    if target_cents > 0:
        percent = min(100.0, achieved / target_cents * 100)
    else:
        percent = 100.0 if achieved > 0 else 0.0
    return RevenueProgress(year, target_cents, achieved, remaining, round(percent, 1))


def scenario_impact(
    baseline: Sequence[NormalizedTransaction],
    scenario: Sequence[NormalizedTransaction],
    start: date,
    end: date,
    seed_cents: int,
) -> ScenarioImpact:
    base_series = daily_balance_series(baseline, start, end, seed_cents)
    scenario_series = daily_balance_series(scenario, start, end, seed_cents)
    return ScenarioImpact(
        baseline_end_cents=base_series[-1].balance_cents,
        scenario_end_cents=scenario_series[-1].balance_cents,
        baseline_low_cents=min(p.balance_cents for p in base_series),
        scenario_low_cents=min(p.balance_cents for p in scenario_series),
    )
