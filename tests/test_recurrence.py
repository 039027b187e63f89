from datetime import date, timedelta

import pytest

from models import Direction, Rhythm
from recurrence import (
    Override,
    RecurringDefinition,
    SalaryRecord,
    add_months,
    adjust_payment_date,
    expand,
    expand_all,
    expand_anchored,
    expand_salaries,
    get_next_occurrence,
    index_overrides,
    is_month_end_anchor,
)


def _definition(anchor: date, rhythm=Rhythm.monthly, **kwargs) -> RecurringDefinition:
    values = {
        "id": 1,
        "label": "Miete",
        "amount_cents": 120_000,
        "direction": Direction.outgoing,
        "anchor_date": anchor,
        "rhythm": rhythm,
    }
    values.update(kwargs)
    return RecurringDefinition(**values)


def test_next_occurrence_clamps_to_shorter_month():
    assert get_next_occurrence(date(2024, 1, 31), Rhythm.monthly) == date(2024, 2, 29)
    assert get_next_occurrence(date(2023, 1, 31), Rhythm.monthly) == date(2023, 2, 28)
    assert get_next_occurrence(date(2024, 11, 30), Rhythm.quarterly) == date(2025, 2, 28)
    assert get_next_occurrence(date(2024, 2, 29), Rhythm.annual) == date(2025, 2, 28)
    assert get_next_occurrence(date(2024, 8, 15), Rhythm.semiannual) == date(2025, 2, 15)


def test_add_months_crosses_year_boundary():
    assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)
    assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)


def test_adjust_payment_date_moves_weekends_back_to_friday():
    assert adjust_payment_date(date(2024, 3, 31)) == date(2024, 3, 29)
    assert adjust_payment_date(date(2024, 3, 30)) == date(2024, 3, 29)
    assert adjust_payment_date(date(2024, 3, 28)) == date(2024, 3, 28)
    assert adjust_payment_date(date(2024, 6, 1), shift_weekends=False) == date(2024, 6, 1)


def test_adjust_payment_date_snaps_month_end_anchors():
    assert adjust_payment_date(date(2024, 2, 15), True) == date(2024, 2, 29)
    # April 30th 2023 is a Sunday.
    assert adjust_payment_date(date(2023, 4, 2), True) == date(2023, 4, 28)


def test_month_end_heuristic_is_loose():
    assert is_month_end_anchor(date(2024, 4, 30))
    assert is_month_end_anchor(date(2024, 1, 30))
    assert is_month_end_anchor(date(2024, 2, 29))
    assert is_month_end_anchor(date(2023, 2, 28))
    assert not is_month_end_anchor(date(2024, 2, 28))
    assert not is_month_end_anchor(date(2024, 1, 15))


def test_month_end_monthly_cost_example():
    definition = _definition(date(2024, 1, 31))

    occurrences = expand(definition, date(2024, 2, 1), date(2024, 4, 30))

    assert [o.date for o in occurrences] == [
        date(2024, 2, 29),
        date(2024, 3, 29),
        date(2024, 4, 30),
    ]
    assert all(o.amount_cents == 120_000 for o in occurrences)
    assert all(o.direction == Direction.outgoing for o in occurrences)


def test_annual_month_end_anchor_lands_on_last_day_of_february():
    definition = _definition(date(2023, 1, 31), Rhythm.annual)

    leap = expand(definition, date(2024, 2, 1), date(2024, 2, 29))
    plain = expand(definition, date(2025, 2, 1), date(2025, 2, 28))

    assert [o.date for o in leap] == [date(2024, 2, 29)]
    assert [o.date for o in plain] == [date(2025, 2, 28)]


def test_expand_is_idempotent():
    definition = _definition(date(2024, 1, 15))
    overrides = [Override(1, date(2024, 2, 15), new_amount_cents=5_000)]

    first = expand(definition, date(2024, 1, 1), date(2024, 12, 31), overrides)
    second = expand(definition, date(2024, 1, 1), date(2024, 12, 31), overrides)

    assert first == second


def test_window_containment_and_weekend_invariant():
    window_start = date(2024, 3, 1)
    window_end = date(2024, 12, 31)
    for day in range(1, 32):
        for rhythm in Rhythm:
            definition = _definition(date(2024, 1, day), rhythm)
            for occurrence in expand(definition, window_start, window_end):
                assert window_start <= occurrence.date <= window_end
                assert occurrence.date.weekday() < 5


def test_skip_override_removes_occurrence_even_with_other_changes():
    definition = _definition(date(2024, 1, 15))
    overrides = [
        Override(
            1,
            date(2024, 2, 15),
            new_date=date(2024, 2, 20),
            new_amount_cents=1,
            is_skipped=True,
        )
    ]

    occurrences = expand(definition, date(2024, 1, 1), date(2024, 3, 31), overrides)

    assert [o.date for o in occurrences] == [date(2024, 1, 15), date(2024, 3, 15)]


def test_override_reschedules_and_reamounts():
    definition = _definition(date(2024, 1, 15))
    overrides = [Override(1, date(2024, 2, 15), new_date=date(2024, 2, 20), new_amount_cents=5_000)]

    occurrences = expand(definition, date(2024, 1, 1), date(2024, 3, 31), overrides)
    moved = occurrences[1]

    assert moved.original_date == date(2024, 2, 15)
    assert moved.date == date(2024, 2, 20)
    assert moved.amount_cents == 5_000
    assert moved.shifted
    assert moved.overridden
    assert not occurrences[0].overridden


def test_override_may_relocate_outside_window():
    definition = _definition(date(2024, 1, 15))
    overrides = [Override(1, date(2024, 3, 15), new_date=date(2024, 4, 10))]

    occurrences = expand(definition, date(2024, 1, 1), date(2024, 3, 31), overrides)

    assert occurrences[-1].date == date(2024, 4, 10)


def test_overrides_of_other_definitions_are_ignored():
    definition = _definition(date(2024, 1, 15))
    overrides = [Override(2, date(2024, 2, 15), is_skipped=True)]

    occurrences = expand(definition, date(2024, 1, 1), date(2024, 3, 31), overrides)

    assert len(occurrences) == 3


def test_end_date_bounds_schedule_inclusively():
    definition = _definition(date(2024, 1, 15), end_date=date(2024, 2, 15))

    occurrences = expand(definition, date(2024, 1, 1), date(2024, 6, 30))

    assert [o.original_date for o in occurrences] == [date(2024, 1, 15), date(2024, 2, 15)]


def test_shifted_flag_tracks_weekend_moves():
    definition = _definition(date(2024, 3, 16))

    occurrences = expand(definition, date(2024, 3, 1), date(2024, 4, 30))

    # 2024-03-16 is a Saturday, 2024-04-16 a Tuesday.
    assert occurrences[0].date == date(2024, 3, 15)
    assert occurrences[0].shifted
    assert occurrences[1].date == date(2024, 4, 16)
    assert not occurrences[1].shifted


def test_one_off_definition_emits_at_most_once():
    definition = _definition(date(2024, 3, 31), rhythm=None)

    inside = expand(definition, date(2024, 3, 1), date(2024, 3, 31))
    outside = expand(definition, date(2024, 4, 1), date(2024, 4, 30))

    assert [o.date for o in inside] == [date(2024, 3, 29)]
    assert outside == []


def test_expand_all_sorts_across_definitions():
    first = _definition(date(2024, 1, 20))
    second = _definition(date(2024, 1, 10), id=2, label="Versicherung")

    occurrences = expand_all([first, second], date(2024, 1, 1), date(2024, 2, 29))

    dates = [o.date for o in occurrences]
    assert dates == sorted(dates)
    assert {o.definition_id for o in occurrences} == {1, 2}


def test_expand_anchored_keeps_schedule_independent_of_window_start():
    definition = _definition(date(2024, 1, 15))

    june = expand_anchored([definition], date(2024, 6, 1), date(2024, 6, 30))
    mid_june = expand_anchored([definition], date(2024, 6, 10), date(2024, 6, 30))

    # 2024-06-15 is a Saturday.
    assert [(o.original_date, o.date) for o in june] == [(date(2024, 6, 15), date(2024, 6, 14))]
    assert june == mid_june


def test_expand_anchored_includes_payment_pulled_into_window():
    definition = _definition(date(2024, 1, 10))
    overrides = [Override(1, date(2024, 7, 10), new_date=date(2024, 6, 25))]

    june = expand_anchored([definition], date(2024, 6, 1), date(2024, 6, 30), overrides)
    july = expand_anchored([definition], date(2024, 7, 1), date(2024, 7, 31), overrides)

    assert [(o.original_date, o.date) for o in june] == [
        (date(2024, 6, 10), date(2024, 6, 10)),
        (date(2024, 7, 10), date(2024, 6, 25)),
    ]
    assert july == []


def test_expand_anchored_includes_weekend_shift_over_window_end():
    # 2024-06-29 is a Saturday and is paid on Friday 2024-06-28.
    definition = _definition(date(2024, 1, 29), label="Versicherung")

    window = expand_anchored([definition], date(2024, 6, 1), date(2024, 6, 28))

    assert [o.date for o in window] == [date(2024, 6, 28)]


def test_definition_validation():
    with pytest.raises(ValueError):
        _definition(date(2024, 2, 1), end_date=date(2024, 1, 1))
    with pytest.raises(ValueError):
        _definition(date(2024, 2, 1), amount_cents=-1)
    with pytest.raises(ValueError):
        _definition(date(2024, 2, 1), rhythm="weekly")
    with pytest.raises(ValueError):
        Override(1, date(2024, 2, 1))
    with pytest.raises(ValueError):
        expand(_definition(date(2024, 1, 1)), date(2024, 2, 1), date(2024, 1, 1))


def test_duplicate_override_keys_are_rejected():
    overrides = [
        Override(1, date(2024, 2, 15), is_skipped=True),
        Override(1, date(2024, 2, 15), new_amount_cents=10),
    ]
    with pytest.raises(ValueError):
        index_overrides(overrides)


def test_salaries_paid_on_25th_with_active_record():
    records = [
        SalaryRecord(1, "Anna", date(2024, 1, 1), 500_000),
        SalaryRecord(1, "Anna", date(2024, 3, 1), 550_000),
        SalaryRecord(2, "Beat", date(2023, 6, 1), 400_000, end_date=date(2024, 2, 29)),
    ]

    occurrences = expand_salaries(records, date(2024, 2, 1), date(2024, 4, 30))

    anna = [o for o in occurrences if o.definition_id == 1]
    beat = [o for o in occurrences if o.definition_id == 2]
    # 2024-02-25 is a Sunday.
    assert [(o.date, o.amount_cents) for o in anna] == [
        (date(2024, 2, 23), 500_000),
        (date(2024, 3, 25), 550_000),
        (date(2024, 4, 25), 550_000),
    ]
    assert [o.date for o in beat] == [date(2024, 2, 23)]
    assert anna[0].label == "Lohn: Anna"
    assert anna[0].shifted
    assert all(o.direction == Direction.outgoing for o in occurrences)


def test_salaries_respect_window_bounds():
    records = [SalaryRecord(1, "Anna", date(2024, 1, 1), 500_000)]

    occurrences = expand_salaries(records, date(2024, 3, 26), date(2024, 4, 24))

    assert occurrences == []
    window = expand_salaries(records, date(2024, 1, 1), date(2024, 12, 31))
    assert len(window) == 12
    assert all(o.date.weekday() < 5 for o in window)
    assert all(o.date - o.original_date <= timedelta(0) for o in window)
