import logging
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from services import BalanceService, ConflictError


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_unset_balance_defaults_to_zero() -> None:
    session = make_session()
    balances = BalanceService(session)

    assert balances.get_current() is None
    assert balances.current_or_default() == 0
    assert balances.snapshot_today(today=date(2024, 6, 5)) is None


def test_set_current_versions_and_snapshots() -> None:
    session = make_session()
    balances = BalanceService(session)

    first = balances.set_current(50_000, today=date(2024, 6, 5))
    assert first.version == 1
    assert first.effective_date == date(2024, 6, 5)

    second = balances.set_current(60_000, expected_version=1, today=date(2024, 6, 7))
    assert second.version == 2
    assert balances.current_or_default() == 60_000

    history = balances.history(date(2024, 6, 1), date(2024, 6, 30))
    assert [(s.date, s.balance_cents) for s in history] == [
        (date(2024, 6, 5), 50_000),
        (date(2024, 6, 7), 60_000),
    ]


def test_stale_version_is_rejected_but_unversioned_write_wins() -> None:
    session = make_session()
    balances = BalanceService(session)
    balances.set_current(50_000, today=date(2024, 6, 5))
    balances.set_current(55_000, today=date(2024, 6, 5))

    with pytest.raises(ConflictError):
        balances.set_current(70_000, expected_version=1, today=date(2024, 6, 5))

    assert balances.current_or_default() == 55_000
    snapshots = balances.history(date(2024, 6, 5), date(2024, 6, 5))
    assert [s.balance_cents for s in snapshots] == [55_000]


def test_concurrent_writer_with_stale_version_loses() -> None:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    BalanceService(SessionLocal()).set_current(50_000, today=date(2024, 6, 5))
    first, second = BalanceService(SessionLocal()), BalanceService(SessionLocal())
    assert first.get_current().version == 1

    second.set_current(60_000, expected_version=1, today=date(2024, 6, 5))
    with pytest.raises(ConflictError):
        first.set_current(70_000, expected_version=1, today=date(2024, 6, 5))

    current = BalanceService(SessionLocal()).get_current()
    assert (current.balance_cents, current.version) == (60_000, 2)

def test_balance_for_date_uses_latest_snapshot_then_current() -> None:
    session = make_session()
    balances = BalanceService(session)
    balances.set_current(50_000, today=date(2024, 6, 5))
    balances.set_current(60_000, today=date(2024, 6, 10))

    assert balances.balance_for_date(date(2024, 6, 5)) == 50_000
    assert balances.balance_for_date(date(2024, 6, 8)) == 50_000
    assert balances.balance_for_date(date(2024, 6, 30)) == 60_000
    assert balances.balance_for_date(date(2024, 1, 1)) == 60_000


def test_snapshot_today_carries_balance_forward() -> None:
    session = make_session()
    balances = BalanceService(session)
    balances.set_current(50_000, today=date(2024, 6, 5))

    snapshot = balances.snapshot_today(today=date(2024, 6, 6))
    balances.snapshot_today(today=date(2024, 6, 6))

    assert snapshot.balance_cents == 50_000
    assert len(balances.history(date(2024, 6, 6), date(2024, 6, 6))) == 1


def test_history_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        BalanceService(make_session()).history(date(2024, 6, 2), date(2024, 6, 1))


def test_fetch_failure_degrades_to_zero(monkeypatch, caplog) -> None:
    session = make_session()

    def boom(self):
        raise SQLAlchemyError("connection refused")

    monkeypatch.setattr(BalanceService, "get_current", boom)

    with caplog.at_level(logging.WARNING):
        assert BalanceService(session).current_or_default() == 0
    assert "balance_unavailable" in caplog.text
