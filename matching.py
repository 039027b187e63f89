"""Reconcile imported bank bookings with projected fixed-cost payments.

When a fixed cost shows up as an actual booking, the projected occurrence
must disappear or it would be counted twice. Candidates are occurrences
within a week of the booking whose amount differs by at most 1 %; the
booking text then has to be similar enough to the fixed cost's name.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from models import Direction
from recurrence import Occurrence

DATE_TOLERANCE_DAYS = 7
CLOSE_DATE_DAYS = 5
AMOUNT_TOLERANCE = 0.01

STOP_WORDS = {
    "ag", "gmbh", "ltd", "inc", "corp", "co", "und", "der", "die", "das",
    "von", "zu", "fuer", "mit", "bei", "auf", "in", "an", "am", "zum",
    "the", "and", "or", "of", "for", "with", "at", "on", "to",
    "sa", "sarl", "bv", "nv", "oy", "ab", "as", "oyj",
}

_UMLAUTS = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"})
_BANK_WORDS = r"(zahlung|payment|ueberweisung|transfer|lastschrift|debit)"
_NOISE = (
    re.compile(rf"^{_BANK_WORDS}\s*"),
    re.compile(rf"\s*{_BANK_WORDS}$"),
    re.compile(r"iban\s*:?\s*[a-z0-9\s]+"),
    re.compile(r"ch\d{2}\s*\d{4}\s*\d{4}\s*\d{4}\s*\d{4}\s*\d"),
    re.compile(r"(refnr|referenz|ref)\s*:?\s*[a-z0-9\s\-]+"),
    re.compile(r"\d{1,2}\.\d{1,2}\.\d{2,4}"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(r"[^\w\s]"),
)


@dataclass(frozen=True)
class Match:
    occurrence: Occurrence
    similarity: float
    days_apart: int


def normalize_text(text: str) -> str:
    clean = text.lower().translate(_UMLAUTS)
    for pattern in _NOISE:
        clean = pattern.sub(" ", clean)
    return re.sub(r"\s+", " ", clean).strip()


def key_words(text: str) -> list[str]:
    return [w for w in normalize_text(text).split() if len(w) >= 2 and w not in STOP_WORDS]


def _words_match(left: str, right: str) -> bool:
    if left == right:
        return True
    if min(len(left), len(right)) < 4:
        return False
    if left in right or right in left:
        return True
    max_diff = 1 if max(len(left), len(right)) <= 6 else 2
    return Levenshtein.distance(left, right) <= max_diff


def text_similarity(first: str, second: str) -> float:
    """Score in ``[0, 1]`` for how likely two booking texts name the same payee."""
    left = normalize_text(first)
    right = normalize_text(second)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    if left in right or right in left:
        return 0.9

    words_left = key_words(first)
    words_right = key_words(second)
    if not words_left or not words_right:
        return 0.0

    matches = 0
    used: set[str] = set()
    for word in words_left:
        for candidate in words_right:
            if candidate in used:
                continue
            if _words_match(word, candidate):
                matches += 1
                used.add(candidate)
                break
    similarity = matches / max(min(len(words_left), len(words_right)), 1)
    if matches >= 2:
        return max(similarity, 0.5)
    return similarity


def min_similarity(amount_exact: bool, date_close: bool) -> float:
    if amount_exact and date_close:
        return 0.2
    if amount_exact:
        return 0.25
    if date_close:
        return 0.28
    return 0.3


def candidate_window(booking_date: date) -> tuple[date, date]:
    delta = timedelta(days=DATE_TOLERANCE_DAYS)
    return booking_date - delta, booking_date + delta


def find_matching_occurrence(
    booking_date: date,
    amount_cents: int,
    details: str,
    direction: Direction,
    occurrences: Iterable[Occurrence],
) -> Optional[Match]:
    """First fixed-cost occurrence that plausibly is this booking, if any."""
    if Direction(direction) != Direction.outgoing:
        return None
    tolerance = amount_cents * AMOUNT_TOLERANCE
    for occurrence in sorted(occurrences, key=lambda o: abs((o.date - booking_date).days)):
        amount_diff = abs(occurrence.amount_cents - amount_cents)
        if amount_diff > tolerance:
            continue
        days_apart = abs((occurrence.date - booking_date).days)
        if days_apart > DATE_TOLERANCE_DAYS:
            continue
        similarity = text_similarity(details, occurrence.label)
        threshold = min_similarity(amount_diff == 0, days_apart <= CLOSE_DATE_DAYS)
        if similarity < threshold:
            continue
        return Match(occurrence, similarity, days_apart)
    return None
