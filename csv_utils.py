import csv
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Optional, Sequence

from pydantic import ValidationError

from ledger import NormalizedTransaction
from models import Booking, Direction
from schemas import ImportRow

DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d.%m.%y", "%d/%m/%Y")

DIRECTION_ALIASES = {
    "incoming": Direction.incoming,
    "in": Direction.incoming,
    "eingang": Direction.incoming,
    "gutschrift": Direction.incoming,
    "credit": Direction.incoming,
    "outgoing": Direction.outgoing,
    "out": Direction.outgoing,
    "ausgang": Direction.outgoing,
    "belastung": Direction.outgoing,
    "debit": Direction.outgoing,
}


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    if value.startswith(("=", "+", "-", "@", "\t", "\r")):
        return "\t" + value

    for pattern in (r"^cmd\s*", r"^powershell\s*", r"^http[s]?://"):
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str):
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date: {value!r}")


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    """Parse a CHF amount into Rappen.

    Accepts Swiss thousands separators (``1'234.50``), a decimal comma and
    an optional ``CHF`` prefix or suffix.
    """
    clean = value.strip().upper().replace("CHF", "")
    clean = clean.replace("'", "").replace("’", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def parse_direction(value: str) -> Direction:
    key = value.strip().lower()
    if key not in DIRECTION_ALIASES:
        raise ValueError(f"Unknown direction: {value!r}")
    return DIRECTION_ALIASES[key]


def _row_amount(raw: dict) -> tuple[int, Optional[Direction]]:
    debit = (raw.get("Belastung") or "").strip()
    credit = (raw.get("Gutschrift") or "").strip()
    if debit or credit:
        if debit and credit:
            raise ValueError("Row has both Belastung and Gutschrift")
        if debit:
            return abs(parse_amount(debit, allow_negative=True)), Direction.outgoing
        return abs(parse_amount(credit, allow_negative=True)), Direction.incoming
    cents = parse_amount(raw.get("Amount") or "", allow_negative=True)
    if cents < 0:
        return -cents, Direction.outgoing
    return cents, None


def parse_csv(content: str) -> tuple[list[ImportRow], list[str]]:
    """Read bank export rows into validated import rows.

    Columns: ``Date``, ``Details``, then either ``Amount`` (+ optional
    ``Direction``) or the bank's ``Belastung``/``Gutschrift`` pair. A negative
    amount without direction is outgoing; a positive one is incoming.
    Rows that fail are reported as ``Row N: reason`` and skipped.
    """
    reader = csv.DictReader(StringIO(content.lstrip("﻿")))
    rows: list[ImportRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            date_value = parse_date(raw.get("Date") or "")
            amount_value, implied = _row_amount(raw)
            direction_raw = (raw.get("Direction") or "").strip()
            if direction_raw:
                direction = parse_direction(direction_raw)
                if implied is not None and implied != direction:
                    raise ValueError("Negative amount contradicts direction")
            else:
                direction = implied or Direction.incoming
            rows.append(
                ImportRow(
                    date=date_value,
                    details=(raw.get("Details") or "").strip(),
                    amount_cents=amount_value,
                    direction=direction,
                )
            )
        except (ValueError, ValidationError) as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def _format_chf(cents: int) -> str:
    return f"{cents / 100:.2f}"


def export_bookings(bookings: Sequence[Booking]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Details", "Amount", "Direction", "Category", "Modified"])
    for booking in bookings:
        writer.writerow(
            [
                booking.date.isoformat(),
                sanitize_csv_value(booking.details),
                _format_chf(booking.amount_cents),
                Direction(booking.direction).value,
                booking.category.value,
                "1" if booking.modified else "0",
            ]
        )
    return output.getvalue()


def export_projection(transactions: Sequence[NormalizedTransaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Details", "Amount", "Direction", "Category", "Balance"])
    for txn in transactions:
        balance = getattr(txn, "running_balance_cents", None)
        writer.writerow(
            [
                txn.date.isoformat(),
                sanitize_csv_value(txn.details),
                _format_chf(txn.signed_amount_cents),
                txn.direction.value,
                txn.category.value,
                _format_chf(balance) if balance is not None else "",
            ]
        )
    return output.getvalue()
