import math
from datetime import date

import pytest

from ledger import NormalizedTransaction
from models import Direction, FixedCost, Rhythm, SourceKind, TransactionCategory
from reports import (
    cash_runway,
    category_totals,
    daily_balance_series,
    monthly_burn_rate,
    monthly_equivalent,
    monthly_fixed_costs,
    monthly_summary,
    overdue_receivables,
    revenue_progress,
    scenario_impact,
    top_outflows,
    upcoming_payments,
)


def _txn(day, amount, direction=Direction.outgoing, category=TransactionCategory.standard, **kwargs):
    return NormalizedTransaction(
        date=day,
        details=kwargs.pop("details", "Test"),
        amount_cents=amount,
        direction=direction,
        category=category,
        source_kind=kwargs.pop("source_kind", SourceKind.booking),
        **kwargs,
    )


def test_monthly_summary_groups_by_month():
    txns = [
        _txn(date(2024, 1, 5), 10_000, Direction.incoming),
        _txn(date(2024, 1, 20), 3_000),
        _txn(date(2024, 2, 1), 500),
    ]

    summary = monthly_summary(txns)

    assert [s.month for s in summary] == ["2024-01", "2024-02"]
    assert summary[0].income_cents == 10_000
    assert summary[0].expense_cents == 3_000
    assert summary[0].net_cents == 7_000
    assert summary[1].net_cents == -500


def test_category_totals_only_count_outgoing():
    txns = [
        _txn(date(2024, 1, 5), 10_000, Direction.incoming),
        _txn(date(2024, 1, 6), 2_000, category=TransactionCategory.fixed_cost),
        _txn(date(2024, 2, 6), 2_000, category=TransactionCategory.fixed_cost),
        _txn(date(2024, 1, 25), 8_000, category=TransactionCategory.salary),
    ]

    totals = category_totals(txns)

    assert totals == {TransactionCategory.salary: 8_000, TransactionCategory.fixed_cost: 4_000}
    assert list(totals) == [TransactionCategory.salary, TransactionCategory.fixed_cost]


def test_daily_balance_series_has_one_point_per_day():
    txns = [
        _txn(date(2024, 6, 2), 500, Direction.incoming),
        _txn(date(2024, 6, 3), 200),
        _txn(date(2024, 6, 3), 100),
        _txn(date(2024, 6, 5), 9_999),
    ]

    points = daily_balance_series(txns, date(2024, 6, 1), date(2024, 6, 3), 1_000)

    assert [(p.date.day, p.balance_cents) for p in points] == [(1, 1_000), (2, 1_500), (3, 1_200)]


def test_daily_balance_series_rejects_inverted_range():
    with pytest.raises(ValueError):
        daily_balance_series([], date(2024, 6, 3), date(2024, 6, 1), 0)


def test_cash_runway_never_divides_by_zero():
    assert cash_runway(100_000, 0) == math.inf
    assert cash_runway(100_000, -500) == math.inf
    assert cash_runway(0, 0) == math.inf
    assert cash_runway(100_000, 25_000) == 4.0
    assert cash_runway(-5_000, 1_000) == 0.0
    assert not math.isnan(cash_runway(0, 0))


def test_monthly_burn_rate_uses_net_outflow():
    txns = [
        _txn(date(2024, 6, 3), 3_000),
        _txn(date(2024, 6, 10), 1_000, Direction.incoming),
        _txn(date(2024, 7, 10), 50_000),
    ]

    assert monthly_burn_rate(txns, date(2024, 6, 1), date(2024, 6, 30)) == 2_000.0


def test_monthly_equivalent_by_rhythm():
    assert monthly_equivalent(120_000, Rhythm.annual) == 10_000
    assert monthly_equivalent(30_000, Rhythm.quarterly) == 10_000
    assert monthly_equivalent(60_000, Rhythm.semiannual) == 10_000
    assert monthly_equivalent(10_000, Rhythm.monthly) == 10_000


def test_monthly_fixed_costs_skip_inactive():
    costs = [
        FixedCost(name="Miete", amount_cents=200_000, rhythm=Rhythm.monthly, start_date=date(2024, 1, 1)),
        FixedCost(name="Versicherung", amount_cents=120_000, rhythm=Rhythm.annual, start_date=date(2024, 1, 1)),
        FixedCost(
            name="Alt",
            amount_cents=50_000,
            rhythm=Rhythm.monthly,
            start_date=date(2023, 1, 1),
            end_date=date(2023, 12, 31),
        ),
        FixedCost(name="Neu", amount_cents=50_000, rhythm=Rhythm.monthly, start_date=date(2025, 1, 1)),
    ]

    assert monthly_fixed_costs(costs, date(2024, 6, 1)) == 210_000


def test_upcoming_payments_and_top_outflows():
    today = date(2024, 6, 5)
    txns = [
        _txn(date(2024, 6, 5), 100),
        _txn(date(2024, 6, 6), 200),
        _txn(date(2024, 6, 20), 5_000),
        _txn(date(2024, 6, 20), 9_000, Direction.incoming),
        _txn(date(2024, 8, 1), 7_000),
    ]

    upcoming = upcoming_payments(txns, today, days=30)

    assert [t.amount_cents for t in upcoming] == [200, 5_000]
    assert [t.amount_cents for t in top_outflows(txns, limit=2)] == [7_000, 5_000]


def test_overdue_receivables_are_shifted_expected_income():
    txns = [
        _txn(date(2024, 6, 5), 1_000, Direction.incoming, expected=True, was_date_shifted=True),
        _txn(date(2024, 6, 30), 1_000, Direction.incoming, expected=True),
        _txn(date(2024, 6, 1), 1_000, Direction.incoming),
    ]

    assert len(overdue_receivables(txns)) == 1


def test_revenue_progress_excludes_simulations_and_other_years():
    txns = [
        _txn(date(2024, 3, 1), 30_000, Direction.incoming),
        _txn(date(2024, 4, 1), 50_000, Direction.incoming, TransactionCategory.simulation),
        _txn(date(2023, 4, 1), 90_000, Direction.incoming),
        _txn(date(2024, 4, 1), 10_000),
    ]

    progress = revenue_progress(txns, 2024, 100_000)

    assert progress.achieved_cents == 30_000
    assert progress.remaining_cents == 70_000
    assert progress.progress_percent == 30.0


def test_revenue_progress_is_capped():
    progress = revenue_progress([_txn(date(2024, 3, 1), 150_000, Direction.incoming)], 2024, 100_000)

    assert progress.remaining_cents == 0
    assert progress.progress_percent == 100.0


def test_scenario_impact_compares_end_and_low_points():
    baseline = [_txn(date(2024, 7, 10), 4_000)]
    scenario = baseline + [_txn(date(2024, 7, 5), 6_000), _txn(date(2024, 7, 20), 10_000, Direction.incoming)]

    impact = scenario_impact(baseline, scenario, date(2024, 7, 1), date(2024, 7, 31), 5_000)

    assert impact.baseline_end_cents == 1_000
    assert impact.scenario_end_cents == 5_000
    assert impact.baseline_low_cents == 1_000
    assert impact.scenario_low_cents == -5_000
    assert impact.difference_cents == 4_000
