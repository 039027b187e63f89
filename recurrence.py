"""Recurring cashflow schedules.

Date arithmetic for payment rhythms plus the expansion of fixed costs,
salaries and simulations into dated occurrences inside a window.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from config import get_settings
from models import Direction, Rhythm

RHYTHM_MONTHS = {
    Rhythm.monthly: 1,
    Rhythm.quarterly: 3,
    Rhythm.semiannual: 6,
    Rhythm.annual: 12,
}


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def last_day_of_month(value: date) -> date:
    return value.replace(day=days_in_month(value.year, value.month))


def add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def parse_rhythm(value) -> Rhythm:
    try:
        return Rhythm(value)
    except ValueError as exc:
        raise ValueError(f"Unsupported rhythm: {value!r}") from exc


def get_next_occurrence(value: date, rhythm: Rhythm) -> date:
    return add_months(value, RHYTHM_MONTHS[parse_rhythm(rhythm)])


def is_month_end_anchor(anchor: date) -> bool:
    # Day 30 and 31 always count as "end of month", even in 31-day months.
    return anchor.day == days_in_month(anchor.year, anchor.month) or anchor.day >= 30


def adjust_payment_date(
    value: date, is_month_end_anchor: bool = False, shift_weekends: bool = True
) -> date:
    """Move a scheduled date onto the day it is actually paid.

    Month-end anchors snap to the last calendar day of the month first;
    Saturdays and Sundays then fall back to the preceding Friday.
    """
    result = value
    if is_month_end_anchor:
        result = last_day_of_month(result)
    if shift_weekends and result.weekday() >= 5:
        result -= timedelta(days=result.weekday() - 4)
    return result


@dataclass(frozen=True)
class RecurringDefinition:
    id: int
    label: str
    amount_cents: int
    direction: Direction
    anchor_date: date
    rhythm: Optional[Rhythm] = None
    end_date: Optional[date] = None

    def __post_init__(self) -> None:
        if self.amount_cents < 0:
            raise ValueError("Amount must be positive")
        object.__setattr__(self, "direction", Direction(self.direction))
        if self.rhythm is not None:
            object.__setattr__(self, "rhythm", parse_rhythm(self.rhythm))
        if self.end_date is not None and self.end_date < self.anchor_date:
            raise ValueError("End date must not be before the anchor date")

    @property
    def is_recurring(self) -> bool:
        return self.rhythm is not None


@dataclass(frozen=True)
class Override:
    definition_id: int
    original_date: date
    new_date: Optional[date] = None
    new_amount_cents: Optional[int] = None
    is_skipped: bool = False
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.new_date is None and self.new_amount_cents is None and not self.is_skipped:
            raise ValueError(
                "At least one override (new date, new amount, or skip) must be specified"
            )
        if self.new_amount_cents is not None and self.new_amount_cents < 0:
            raise ValueError("Override amount must be positive")

    @property
    def key(self) -> tuple[int, date]:
        return (self.definition_id, self.original_date)


@dataclass(frozen=True)
class Occurrence:
    definition_id: int
    original_date: date
    date: date
    amount_cents: int
    direction: Direction
    label: str
    shifted: bool
    overridden: bool = False


@dataclass(frozen=True)
class SalaryRecord:
    employee_id: int
    employee_name: str
    start_date: date
    amount_cents: int
    end_date: Optional[date] = None

    def active_on(self, value: date) -> bool:
        return self.start_date <= value and (self.end_date is None or value <= self.end_date)


def index_overrides(overrides: Iterable[Override]) -> dict[tuple[int, date], Override]:
    indexed: dict[tuple[int, date], Override] = {}
    for override in overrides:
        if override.key in indexed:
            raise ValueError(
                f"Duplicate override for definition {override.definition_id} "
                f"on {override.original_date.isoformat()}"
            )
        indexed[override.key] = override
    return indexed


def _emit(
    definition: RecurringDefinition,
    original: date,
    adjusted: date,
    overrides: dict[tuple[int, date], Override],
) -> Optional[Occurrence]:
    override = overrides.get((definition.id, original))
    if override is not None and override.is_skipped:
        return None
    final_date = adjusted
    amount = definition.amount_cents
    if override is not None:
        if override.new_date is not None:
            final_date = override.new_date
        if override.new_amount_cents is not None:
            amount = override.new_amount_cents
    return Occurrence(
        definition_id=definition.id,
        original_date=original,
        date=final_date,
        amount_cents=amount,
        direction=definition.direction,
        label=definition.label,
        shifted=final_date != original,
        overridden=override is not None,
    )


def schedule_dates(
    definition: RecurringDefinition, window_start: date, window_end: date
) -> Iterable[date]:
    """Undisturbed schedule dates of a recurring definition inside a window.

    The walk starts at the later of anchor and window start and advances by
    the rhythm until it passes the window or the definition's end date.
    """
    current = max(definition.anchor_date, window_start)
    while current <= window_end:
        if definition.end_date is not None and current > definition.end_date:
            return
        yield current
        current = get_next_occurrence(current, definition.rhythm)


def expand(
    definition: RecurringDefinition,
    window_start: date,
    window_end: date,
    overrides: Sequence[Override] = (),
    *,
    shift_weekends: bool = True,
) -> list[Occurrence]:
    if window_end < window_start:
        raise ValueError("Window end must not be before window start")
    if not definition.is_recurring:
        return expand_one_off(
            definition, window_start, window_end, overrides, shift_weekends=shift_weekends
        )

    indexed = index_overrides(o for o in overrides if o.definition_id == definition.id)
    month_end = is_month_end_anchor(definition.anchor_date)
    result: list[Occurrence] = []
    for original in schedule_dates(definition, window_start, window_end):
        adjusted = adjust_payment_date(original, month_end, shift_weekends)
        # Weekend and month-end shifts can push a date over the window edge.
        if not window_start <= adjusted <= window_end:
            continue
        occurrence = _emit(definition, original, adjusted, indexed)
        if occurrence is not None:
            result.append(occurrence)
    return result


def expand_one_off(
    definition: RecurringDefinition,
    window_start: date,
    window_end: date,
    overrides: Sequence[Override] = (),
    *,
    shift_weekends: bool = True,
) -> list[Occurrence]:
    original = definition.anchor_date
    if not window_start <= original <= window_end:
        return []
    adjusted = adjust_payment_date(
        original, is_month_end_anchor(original), shift_weekends
    )
    if not window_start <= adjusted <= window_end:
        return []
    indexed = index_overrides(o for o in overrides if o.definition_id == definition.id)
    occurrence = _emit(definition, original, adjusted, indexed)
    return [occurrence] if occurrence is not None else []


def expand_all(
    definitions: Iterable[RecurringDefinition],
    window_start: date,
    window_end: date,
    overrides: Sequence[Override] = (),
) -> list[Occurrence]:
    result: list[Occurrence] = []
    for definition in definitions:
        result.extend(expand(definition, window_start, window_end, overrides))
    result.sort(key=lambda occ: occ.date)
    return result


def expand_anchored(
    definitions: Iterable[RecurringDefinition],
    window_start: date,
    window_end: date,
    overrides: Sequence[Override] = (),
) -> list[Occurrence]:
    """Expand every definition from its own anchor, keeping what lands in the window.

    ``expand`` walks from the later of anchor and window start, so its
    schedule dates move with the window. Walking from the anchor keeps the
    schedule dates, and with them the override keys, the same for every
    window a caller asks for.

    The walk runs past ``window_end`` far enough to reach schedule dates that
    a weekend shift or an override moves back into the window. Occurrences
    are kept by their final date.
    """
    if window_end < window_start:
        raise ValueError("Window end must not be before window start")
    latest_key: dict[int, date] = {}
    for override in overrides:
        if override.new_date is not None and override.new_date <= window_end:
            current = latest_key.get(override.definition_id, override.original_date)
            latest_key[override.definition_id] = max(current, override.original_date)
    result: list[Occurrence] = []
    for definition in definitions:
        walk_start = min(definition.anchor_date - timedelta(days=2), window_start)
        walk_end = window_end + timedelta(days=2)
        if definition.id in latest_key:
            walk_end = max(walk_end, last_day_of_month(latest_key[definition.id]))
        for occurrence in expand(definition, walk_start, walk_end, overrides):
            if window_start <= occurrence.date <= window_end:
                result.append(occurrence)
    result.sort(key=lambda occ: occ.date)
    return result


def expand_salaries(
    salaries: Iterable[SalaryRecord],
    window_start: date,
    window_end: date,
    payday: int = 25,
) -> list[Occurrence]:
    """Monthly salary payments on ``payday``, one per employee and month.

    The salary record active on the payment date decides the amount. Salaries
    are shifted off weekends but never treated as month-end anchored.
    """
    if window_end < window_start:
        raise ValueError("Window end must not be before window start")
    by_employee: dict[int, list[SalaryRecord]] = {}
    for record in salaries:
        by_employee.setdefault(record.employee_id, []).append(record)

    result: list[Occurrence] = []
    month = window_start.replace(day=1)
    while month <= window_end:
        original = month.replace(day=min(payday, days_in_month(month.year, month.month)))
        paid_on = adjust_payment_date(original, False, True)
        if window_start <= paid_on <= window_end:
            for employee_id, records in by_employee.items():
                active = [r for r in records if r.active_on(original)]
                if not active:
                    continue
                record = max(active, key=lambda r: r.start_date)
                result.append(
                    Occurrence(
                        definition_id=employee_id,
                        original_date=original,
                        date=paid_on,
                        amount_cents=record.amount_cents,
                        direction=Direction.outgoing,
                        label=f"Lohn: {record.employee_name}",
                        shifted=paid_on != original,
                    )
                )
        month = add_months(month, 1)
    result.sort(key=lambda occ: (occ.date, occ.definition_id))
    return result
