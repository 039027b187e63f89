from datetime import date

from ledger import (
    NormalizedTransaction,
    classify_category,
    enhance,
    filter_transactions,
    normalize_all,
    normalize_booking,
    shift_past_due_date,
)
from models import Booking, Direction, SourceKind, TransactionCategory
from recurrence import Occurrence

TODAY = date(2024, 6, 5)


def _txn(day: date, amount: int, direction=Direction.outgoing, **kwargs) -> NormalizedTransaction:
    values = {
        "date": day,
        "details": "Test",
        "amount_cents": amount,
        "direction": direction,
        "category": TransactionCategory.standard,
        "source_kind": SourceKind.booking,
    }
    values.update(kwargs)
    return NormalizedTransaction(**values)


def _booking(**kwargs) -> Booking:
    values = {
        "id": 7,
        "date": date(2024, 6, 1),
        "details": "Kunde AG",
        "amount_cents": 10_000,
        "direction": Direction.incoming,
        "category": TransactionCategory.standard,
        "modified": False,
        "is_simulation": False,
        "expected": False,
    }
    values.update(kwargs)
    return Booking(**values)


def test_signed_amount_follows_direction():
    assert _txn(TODAY, 500, Direction.incoming).signed_amount_cents == 500
    assert _txn(TODAY, 500, Direction.outgoing).signed_amount_cents == -500


def test_category_precedence():
    assert (
        classify_category(SourceKind.booking, TransactionCategory.fixed_cost, modified=True)
        == TransactionCategory.fixed_cost
    )
    assert classify_category(SourceKind.salary) == TransactionCategory.salary
    assert (
        classify_category(SourceKind.booking, None, modified=True, is_simulation=True)
        == TransactionCategory.simulation
    )
    assert classify_category(SourceKind.booking, None, modified=True) == TransactionCategory.manual
    assert (
        classify_category(SourceKind.booking, TransactionCategory.standard, modified=True)
        == TransactionCategory.manual
    )
    assert classify_category(SourceKind.booking, TransactionCategory.manual) == TransactionCategory.manual
    assert classify_category(SourceKind.booking) == TransactionCategory.standard
    assert classify_category(SourceKind.fixed_cost) == TransactionCategory.fixed_cost


def test_past_due_receivable_moves_to_next_business_day():
    assert shift_past_due_date(date(2024, 5, 20), Direction.incoming, True, TODAY) == (
        date(2024, 6, 6),
        True,
    )
    # Friday and Saturday both land on the following Monday.
    for today in (date(2024, 6, 7), date(2024, 6, 8)):
        assert shift_past_due_date(
            date(2024, 5, 20), Direction.incoming, True, today
        ) == (date(2024, 6, 10), True)


def test_shifted_receivable_counts_towards_forecast_on_any_weekday():
    receivable = _txn(date(2024, 5, 20), 50_000, Direction.incoming, expected=True)
    rent = _txn(date(2024, 6, 20), 10_000)

    end_balances = []
    for today in (date(2024, 6, 7), date(2024, 6, 8)):
        shifted, _ = shift_past_due_date(receivable.date, receivable.direction, True, today)
        moved = _txn(shifted, 50_000, Direction.incoming, expected=True, was_date_shifted=True)
        rows = enhance([moved, rent], 100_000, today)
        assert rows[0].running_balance_cents == 150_000
        end_balances.append(rows[-1].running_balance_cents)

    assert end_balances == [140_000, 140_000]


def test_actual_and_outgoing_bookings_are_never_moved():
    past = date(2024, 5, 20)
    assert shift_past_due_date(past, Direction.incoming, False, TODAY) == (past, False)
    assert shift_past_due_date(past, Direction.outgoing, True, TODAY) == (past, False)
    future = date(2024, 7, 1)
    assert shift_past_due_date(future, Direction.incoming, True, TODAY) == (future, False)


def test_normalize_booking_carries_flags():
    txn = normalize_booking(_booking(modified=True), TODAY)
    assert txn.category == TransactionCategory.manual
    assert txn.signed_amount_cents == 10_000
    assert txn.source_id == 7
    assert not txn.was_date_shifted

    open_item = normalize_booking(_booking(expected=True, date=date(2024, 5, 1)), TODAY)
    assert open_item.date == date(2024, 6, 6)
    assert open_item.original_date == date(2024, 5, 1)
    assert open_item.was_date_shifted


def test_normalize_all_merges_sources_in_date_order():
    fixed = Occurrence(3, date(2024, 6, 3), date(2024, 6, 3), 2_000, Direction.outgoing, "Miete", False)
    salary = Occurrence(4, date(2024, 6, 25), date(2024, 6, 25), 5_000, Direction.outgoing, "Lohn: Anna", False)
    simulation = Occurrence(5, date(2024, 6, 2), date(2024, 6, 2), 1_000, Direction.incoming, "Auftrag", False)

    txns = normalize_all([_booking()], [fixed], [salary], [simulation], today=TODAY)

    assert [t.category for t in txns] == [
        TransactionCategory.standard,
        TransactionCategory.simulation,
        TransactionCategory.fixed_cost,
        TransactionCategory.salary,
    ]
    assert txns[2].signed_amount_cents == -2_000


def test_enhance_splits_history_and_forecast():
    txns = [
        _txn(date(2024, 6, 10), 2_000, Direction.incoming),
        _txn(date(2024, 6, 1), 1_000, Direction.incoming),
        _txn(date(2024, 6, 20), 100),
        _txn(TODAY, 500),
        _txn(date(2024, 6, 7), 300),
    ]

    rows = enhance(txns, 10_000, TODAY)

    assert [r.date for r in rows] == [
        date(2024, 6, 1),
        TODAY,
        date(2024, 6, 7),
        date(2024, 6, 10),
        date(2024, 6, 20),
    ]
    assert [r.running_balance_cents for r in rows] == [None, None, 9_700, 11_700, 11_600]
    assert "forecast" in rows[2].hints
    assert "forecast" not in rows[0].hints
    assert not rows[1].is_forecast


def test_running_balance_is_prefix_sum_of_future_amounts():
    amounts = [1_500, -200, -7_000, 300, 50]
    txns = [
        _txn(
            date(2024, 7, i + 1),
            abs(a),
            Direction.incoming if a > 0 else Direction.outgoing,
        )
        for i, a in enumerate(amounts)
    ]

    rows = enhance(txns, 4_000, TODAY)

    expected = []
    balance = 4_000
    for amount in amounts:
        balance += amount
        expected.append(balance)
    assert [r.running_balance_cents for r in rows] == expected


def test_hints_reflect_category_and_flags():
    rows = enhance(
        [
            _txn(date(2024, 7, 1), 100, category=TransactionCategory.fixed_cost, source_kind=SourceKind.fixed_cost, was_date_shifted=True),
            _txn(date(2024, 7, 2), 100, category=TransactionCategory.manual, modified=True),
        ],
        0,
        TODAY,
    )
    assert rows[0].hints == ("fixed_cost", "shifted", "forecast")
    assert rows[1].hints == ("modified", "forecast")


def test_filter_transactions():
    txns = [
        _txn(date(2024, 6, 1), 1_000, details="Swisscom Abo", category=TransactionCategory.fixed_cost),
        _txn(date(2024, 6, 2), 50_000, details="Miete Büro", category=TransactionCategory.fixed_cost),
        _txn(date(2024, 6, 3), 200, details="Kaffee", modified=True, category=TransactionCategory.manual),
        _txn(date(2024, 8, 1), 1_000, details="Swisscom Abo"),
    ]
    june_start, june_end = date(2024, 6, 1), date(2024, 6, 30)

    assert len(filter_transactions(txns, june_start, june_end, search="swisscom")) == 1
    assert len(filter_transactions(txns, june_start, june_end, min_amount_cents=1_000)) == 2
    assert len(filter_transactions(txns, june_start, june_end, max_amount_cents=999)) == 1
    assert len(
        filter_transactions(txns, june_start, june_end, categories=[TransactionCategory.fixed_cost])
    ) == 2
    assert [t.details for t in filter_transactions(txns, june_start, june_end, only_modified=True)] == ["Kaffee"]
