from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from recurrence import add_months, last_day_of_month, local_today

PERIOD_SLUGS = (
    "this_month",
    "last_month",
    "last_30_days",
    "next_30_days",
    "next_3_months",
    "next_12_months",
    "this_year",
    "custom",
)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if not period or period == "next_12_months":
        return Period("next_12_months", today, add_months(today, 12))
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "last_30_days":
        return Period("last_30_days", today - timedelta(days=30), today)
    if period == "next_30_days":
        return Period("next_30_days", today, today + timedelta(days=30))
    if period == "next_3_months":
        return Period("next_3_months", today, add_months(today, 3))
    if period == "this_year":
        return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    first = today.replace(day=1)
    return Period("this_month", first, last_day_of_month(first))


def projection_window(today: date, months: int) -> Period:
    if months < 1:
        raise ValueError("Projection needs at least one month")
    return Period(f"{months}_months", today, add_months(today, months))
