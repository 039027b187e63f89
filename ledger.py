from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from models import Direction, SourceKind, TransactionCategory
from recurrence import Occurrence


def signed_amount(amount_cents: int, direction: Direction) -> int:
    return amount_cents if Direction(direction) == Direction.incoming else -amount_cents


@dataclass(frozen=True)
class NormalizedTransaction:
    date: date
    details: str
    amount_cents: int
    direction: Direction
    category: TransactionCategory
    source_kind: SourceKind
    signed_amount_cents: int = field(init=False)
    was_date_shifted: bool = False
    modified: bool = False
    expected: bool = False
    source_id: Optional[int] = None
    original_date: Optional[date] = None

    def __post_init__(self) -> None:
        if self.amount_cents < 0:
            raise ValueError("Amount must be positive")
        object.__setattr__(
            self, "signed_amount_cents", signed_amount(self.amount_cents, self.direction)
        )


@dataclass(frozen=True)
class BalancedTransaction(NormalizedTransaction):
    running_balance_cents: Optional[int] = None
    hints: tuple[str, ...] = ()

    @property
    def is_forecast(self) -> bool:
        return self.running_balance_cents is not None


def classify_category(
    source_kind: SourceKind,
    explicit: Optional[TransactionCategory] = None,
    *,
    modified: bool = False,
    is_simulation: bool = False,
) -> TransactionCategory:
    """Pick the display category of a transaction.

    Precedence: Fixkosten > Lohn > Simulation > Manual (edited bookings) >
    category stored on an imported booking > Standard.
    """
    explicit = TransactionCategory(explicit) if explicit else None
    if source_kind == SourceKind.fixed_cost or explicit == TransactionCategory.fixed_cost:
        return TransactionCategory.fixed_cost
    if source_kind == SourceKind.salary or explicit == TransactionCategory.salary:
        return TransactionCategory.salary
    if (
        source_kind == SourceKind.simulation
        or is_simulation
        or explicit == TransactionCategory.simulation
    ):
        return TransactionCategory.simulation
    if modified:
        return TransactionCategory.manual
    if explicit is not None:
        return explicit
    return TransactionCategory.standard


def shift_past_due_date(
    value: date, direction: Direction, expected: bool, today: date
) -> tuple[date, bool]:
    """Move an open receivable that is already overdue onto the next business day.

    Only incoming bookings still marked as expected are moved; everything the
    bank has already booked stays on its date.
    """
    if Direction(direction) != Direction.incoming or not expected or value >= today:
        return value, False
    # Rows up to today are history and already part of the current balance.
    shifted = today + timedelta(days=1)
    if shifted.weekday() >= 5:
        shifted += timedelta(days=7 - shifted.weekday())
    return shifted, True


def normalize_booking(booking, today: date) -> NormalizedTransaction:
    expected = bool(getattr(booking, "expected", False))
    booking_date, shifted = shift_past_due_date(
        booking.date, booking.direction, expected, today
    )
    return NormalizedTransaction(
        date=booking_date,
        details=booking.details,
        amount_cents=booking.amount_cents,
        direction=Direction(booking.direction),
        category=classify_category(
            SourceKind.booking,
            getattr(booking, "category", None),
            modified=bool(getattr(booking, "modified", False)),
            is_simulation=bool(getattr(booking, "is_simulation", False)),
        ),
        source_kind=SourceKind.booking,
        was_date_shifted=shifted,
        modified=bool(getattr(booking, "modified", False)),
        expected=expected,
        source_id=getattr(booking, "id", None),
        original_date=booking.date,
    )


def normalize_occurrence(
    occurrence: Occurrence, source_kind: SourceKind
) -> NormalizedTransaction:
    return NormalizedTransaction(
        date=occurrence.date,
        details=occurrence.label,
        amount_cents=occurrence.amount_cents,
        direction=occurrence.direction,
        category=classify_category(source_kind),
        source_kind=source_kind,
        was_date_shifted=occurrence.shifted,
        modified=occurrence.overridden,
        source_id=occurrence.definition_id,
        original_date=occurrence.original_date,
    )


def normalize_all(
    bookings: Iterable = (),
    fixed_cost_occurrences: Iterable[Occurrence] = (),
    salary_occurrences: Iterable[Occurrence] = (),
    simulation_occurrences: Iterable[Occurrence] = (),
    *,
    today: date,
) -> list[NormalizedTransaction]:
    result = [normalize_booking(b, today) for b in bookings]
    result.extend(
        normalize_occurrence(o, SourceKind.fixed_cost) for o in fixed_cost_occurrences
    )
    result.extend(normalize_occurrence(o, SourceKind.salary) for o in salary_occurrences)
    result.extend(
        normalize_occurrence(o, SourceKind.simulation) for o in simulation_occurrences
    )
    result.sort(key=lambda txn: txn.date)
    return result


def display_hints(txn: NormalizedTransaction, *, forecast: bool) -> tuple[str, ...]:
    hints: list[str] = []
    if txn.modified:
        hints.append("modified")
    if txn.category == TransactionCategory.fixed_cost:
        hints.append("fixed_cost")
    if txn.category == TransactionCategory.simulation:
        hints.append("simulation")
    if txn.category == TransactionCategory.salary:
        hints.append("salary")
    if txn.was_date_shifted:
        hints.append("shifted")
    if forecast:
        hints.append("forecast")
    return tuple(hints)


def _balanced(
    txn: NormalizedTransaction, running_balance_cents: Optional[int], *, forecast: bool
) -> BalancedTransaction:
    values = {f.name: getattr(txn, f.name) for f in fields(NormalizedTransaction) if f.init}
    return BalancedTransaction(
        **values,
        running_balance_cents=running_balance_cents,
        hints=display_hints(txn, forecast=forecast),
    )


def enhance(
    transactions: Sequence[NormalizedTransaction],
    current_balance_cents: int,
    today: date,
) -> list[BalancedTransaction]:
    """Attach running balances to the forecast part of a transaction list.

    Transactions up to and including ``today`` are history: the current
    balance already contains them, so they are returned without a balance.
    Later transactions are folded forward from the current balance; each
    carries the balance after it has been applied.
    """
    ordered = sorted(transactions, key=lambda txn: txn.date)
    historical = [_balanced(t, None, forecast=False) for t in ordered if t.date <= today]
    future: list[BalancedTransaction] = []
    balance = current_balance_cents
    for txn in ordered:
        if txn.date <= today:
            continue
        balance += txn.signed_amount_cents
        future.append(_balanced(txn, balance, forecast=True))
    return historical + future


def filter_transactions(
    transactions: Iterable[NormalizedTransaction],
    start: date,
    end: date,
    *,
    search: Optional[str] = None,
    min_amount_cents: Optional[int] = None,
    max_amount_cents: Optional[int] = None,
    categories: Optional[Sequence[TransactionCategory]] = None,
    only_modified: bool = False,
) -> list:
    needle = search.strip().lower() if search else None
    wanted = {TransactionCategory(c) for c in categories} if categories else None
    result = []
    for txn in transactions:
        if txn.date < start or txn.date > end:
            continue
        if needle and needle not in txn.details.lower():
            continue
        if min_amount_cents is not None and txn.amount_cents < min_amount_cents:
            continue
        if max_amount_cents is not None and txn.amount_cents > max_amount_cents:
            continue
        if wanted is not None and txn.category not in wanted:
            continue
        if only_modified and not txn.modified:
            continue
        result.append(txn)
    return result
