from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from config import get_settings
from csv_utils import parse_csv
from ledger import BalancedTransaction, NormalizedTransaction, enhance, normalize_all
from matching import candidate_window, find_matching_occurrence
from models import (
    Booking,
    CurrentBalance,
    DailyBalanceSnapshot,
    Direction,
    Employee,
    FixedCost,
    OccurrenceOverride,
    RevenueTarget,
    Salary,
    Scenario,
    Simulation,
    SourceKind,
)
from periods import projection_window
from recurrence import (
    Override,
    RecurringDefinition,
    SalaryRecord,
    expand_anchored,
    expand_salaries,
    local_today,
)
from reports import (
    BalancePoint,
    RevenueProgress,
    ScenarioImpact,
    cash_runway,
    daily_balance_series,
    monthly_burn_rate,
    monthly_fixed_costs,
    revenue_progress,
    scenario_impact,
    upcoming_payments,
)
from schemas import (
    BookingIn,
    EmployeeIn,
    FixedCostIn,
    ImportRow,
    OverrideIn,
    SalaryIn,
    ScenarioIn,
    SimulationIn,
)

logger = logging.getLogger(__name__)


class StoreError(ValueError):
    pass


class NotFoundError(StoreError):
    pass


class ConstraintError(StoreError):
    pass


class PermissionDeniedError(StoreError):
    pass


class ConflictError(StoreError):
    pass


def get_current_user_id() -> int:
    return 1


def cents_to_francs(cents: int) -> float:
    return cents / 100


def _constraint_message(exc: IntegrityError) -> str:
    text = str(exc.orig).lower()
    if "unique" in text:
        return "A record with these values already exists"
    if "foreign key" in text:
        return "Referenced record does not exist"
    if "check constraint" in text:
        return "Values violate a database constraint"
    return "Database constraint violated"


def _commit(session: Session, *, unique_message: Optional[str] = None) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        message = _constraint_message(exc)
        if unique_message and "unique" in str(exc.orig).lower():
            message = unique_message
        logger.warning(f"store_constraint: error={exc.orig}")
        raise ConstraintError(message) from exc
    except OperationalError as exc:
        session.rollback()
        if "no such table" in str(exc.orig).lower():
            raise StoreError("Database table is missing; run the migrations") from exc
        raise


def _owned(obj, user_id: int, label: str):
    if obj is None:
        raise NotFoundError(f"{label} not found")
    if obj.user_id != user_id:
        raise PermissionDeniedError(f"{label} belongs to another user")
    return obj


class FixedCostService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, include_ended: bool = True, *, today: Optional[date] = None) -> list[FixedCost]:
        stmt = select(FixedCost).where(FixedCost.user_id == self.user_id)
        if not include_ended:
            today = today or local_today()
            stmt = stmt.where(or_(FixedCost.end_date.is_(None), FixedCost.end_date >= today))
        return self.session.scalars(stmt.order_by(FixedCost.name)).all()

    def get(self, fixed_cost_id: int) -> FixedCost:
        return _owned(self.session.get(FixedCost, fixed_cost_id), self.user_id, "Fixed cost")

    def create(self, data: FixedCostIn) -> FixedCost:
        cost = FixedCost(
            user_id=self.user_id,
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            rhythm=data.rhythm,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.session.add(cost)
        _commit(self.session, unique_message="A fixed cost with this name already exists")
        self.session.refresh(cost)
        return cost

    def update(self, fixed_cost_id: int, data: FixedCostIn) -> FixedCost:
        cost = self.get(fixed_cost_id)
        cost.name = data.name.strip()
        cost.amount_cents = data.amount_cents
        cost.rhythm = data.rhythm
        cost.start_date = data.start_date
        cost.end_date = data.end_date
        _commit(self.session, unique_message="A fixed cost with this name already exists")
        self.session.refresh(cost)
        return cost

    def end(self, fixed_cost_id: int, end_date: date) -> FixedCost:
        cost = self.get(fixed_cost_id)
        if end_date < cost.start_date:
            raise ValueError("End date must not be before the start date")
        cost.end_date = end_date
        _commit(self.session)
        self.session.refresh(cost)
        logger.info(f"fixed_cost_ended: id={cost.id} end_date={end_date.isoformat()}")
        return cost

    def delete(self, fixed_cost_id: int) -> None:
        cost = self.get(fixed_cost_id)
        self.session.execute(
            delete(OccurrenceOverride).where(
                OccurrenceOverride.source_kind == SourceKind.fixed_cost,
                OccurrenceOverride.definition_id == cost.id,
            )
        )
        self.session.delete(cost)
        _commit(self.session)

    def definitions(self) -> list[RecurringDefinition]:
        return [
            RecurringDefinition(
                id=cost.id,
                label=cost.name,
                amount_cents=cost.amount_cents,
                direction=Direction.outgoing,
                anchor_date=cost.start_date,
                rhythm=cost.rhythm,
                end_date=cost.end_date,
            )
            for cost in self.list_all()
        ]


def _duplicate_override_message(source_kind: SourceKind) -> str:
    noun = "fixed cost" if source_kind == SourceKind.fixed_cost else "simulation"
    return f"An override for this {noun} on this date already exists"


class OverrideService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _definition(self, source_kind: SourceKind, definition_id: int):
        if source_kind == SourceKind.fixed_cost:
            return FixedCostService(self.session, self.user_id).get(definition_id)
        if source_kind == SourceKind.simulation:
            simulation = SimulationService(self.session, self.user_id).get(definition_id)
            if not simulation.recurring:
                raise ValueError("Only recurring simulations can be overridden")
            return simulation
        raise ValueError(f"Overrides are not supported for {source_kind.value}")

    def list_for(
        self, source_kind: SourceKind, definition_id: Optional[int] = None
    ) -> list[OccurrenceOverride]:
        stmt = select(OccurrenceOverride).where(
            OccurrenceOverride.user_id == self.user_id,
            OccurrenceOverride.source_kind == source_kind,
        )
        if definition_id is not None:
            stmt = stmt.where(OccurrenceOverride.definition_id == definition_id)
        stmt = stmt.order_by(OccurrenceOverride.original_date)
        return self.session.scalars(stmt).all()

    def find(
        self, source_kind: SourceKind, definition_id: int, original_date: date
    ) -> Optional[OccurrenceOverride]:
        return self.session.scalar(
            select(OccurrenceOverride).where(
                OccurrenceOverride.source_kind == source_kind,
                OccurrenceOverride.definition_id == definition_id,
                OccurrenceOverride.original_date == original_date,
            )
        )

    def get(self, override_id: int) -> OccurrenceOverride:
        return _owned(
            self.session.get(OccurrenceOverride, override_id), self.user_id, "Override"
        )

    def create(
        self, source_kind: SourceKind, definition_id: int, data: OverrideIn
    ) -> OccurrenceOverride:
        source_kind = SourceKind(source_kind)
        self._definition(source_kind, definition_id)
        duplicate = _duplicate_override_message(source_kind)
        if self.find(source_kind, definition_id, data.original_date) is not None:
            raise ConstraintError(duplicate)
        override = OccurrenceOverride(
            user_id=self.user_id,
            source_kind=source_kind,
            definition_id=definition_id,
            original_date=data.original_date,
            new_date=data.new_date,
            new_amount_cents=data.new_amount_cents,
            is_skipped=data.is_skipped,
            notes=data.notes,
        )
        self.session.add(override)
        _commit(self.session, unique_message=duplicate)
        self.session.refresh(override)
        return override

    def update(self, override_id: int, data: OverrideIn) -> OccurrenceOverride:
        override = self.get(override_id)
        if data.original_date != override.original_date:
            raise ValueError("The original date of an override cannot change")
        override.new_date = data.new_date
        override.new_amount_cents = data.new_amount_cents
        override.is_skipped = data.is_skipped
        override.notes = data.notes
        _commit(self.session)
        self.session.refresh(override)
        return override

    def delete(self, override_id: int) -> None:
        override = self.get(override_id)
        self.session.delete(override)
        _commit(self.session)

    def as_overrides(self, source_kind: SourceKind) -> list[Override]:
        return [
            Override(
                definition_id=row.definition_id,
                original_date=row.original_date,
                new_date=row.new_date,
                new_amount_cents=row.new_amount_cents,
                is_skipped=row.is_skipped,
                notes=row.notes,
            )
            for row in self.list_for(source_kind)
        ]


class EmployeeService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Employee]:
        stmt = (
            select(Employee)
            .options(selectinload(Employee.salaries))
            .where(Employee.user_id == self.user_id)
            .order_by(Employee.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, employee_id: int) -> Employee:
        return _owned(self.session.get(Employee, employee_id), self.user_id, "Employee")

    def create(self, data: EmployeeIn) -> Employee:
        employee = Employee(user_id=self.user_id, name=data.name.strip())
        self.session.add(employee)
        _commit(self.session)
        self.session.refresh(employee)
        return employee

    def rename(self, employee_id: int, data: EmployeeIn) -> Employee:
        employee = self.get(employee_id)
        employee.name = data.name.strip()
        _commit(self.session)
        self.session.refresh(employee)
        return employee

    def delete(self, employee_id: int) -> None:
        employee = self.get(employee_id)
        self.session.delete(employee)
        _commit(self.session)

    def _salary(self, salary_id: int) -> Salary:
        salary = self.session.get(Salary, salary_id)
        if salary is None:
            raise NotFoundError("Salary not found")
        self.get(salary.employee_id)
        return salary

    def add_salary(self, employee_id: int, data: SalaryIn) -> Salary:
        employee = self.get(employee_id)
        salary = Salary(
            employee_id=employee.id,
            start_date=data.start_date,
            end_date=data.end_date,
            amount_cents=data.amount_cents,
        )
        self.session.add(salary)
        _commit(self.session)
        self.session.refresh(salary)
        return salary

    def update_salary(self, salary_id: int, data: SalaryIn) -> Salary:
        salary = self._salary(salary_id)
        salary.start_date = data.start_date
        salary.end_date = data.end_date
        salary.amount_cents = data.amount_cents
        _commit(self.session)
        self.session.refresh(salary)
        return salary

    def delete_salary(self, salary_id: int) -> None:
        salary = self._salary(salary_id)
        self.session.delete(salary)
        _commit(self.session)

    def salary_records(self) -> list[SalaryRecord]:
        return [
            SalaryRecord(
                employee_id=employee.id,
                employee_name=employee.name,
                start_date=salary.start_date,
                amount_cents=salary.amount_cents,
                end_date=salary.end_date,
            )
            for employee in self.list_all()
            for salary in employee.salaries
        ]

    def active_salaries(self, on: date) -> dict[int, Salary]:
        """Salary in force for each employee on ``on``; latest start wins."""
        result: dict[int, Salary] = {}
        for employee in self.list_all():
            active = [
                s
                for s in employee.salaries
                if s.start_date <= on and (s.end_date is None or on <= s.end_date)
            ]
            if active:
                result[employee.id] = max(active, key=lambda s: s.start_date)
        return result


def simulation_label(simulation: Simulation) -> str:
    label = f"{simulation.name}: {simulation.details}" if simulation.details else simulation.name
    if simulation.recurring:
        label += " (wiederkehrend)"
    return label


class SimulationService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, ids: Optional[Sequence[int]] = None) -> list[Simulation]:
        stmt = select(Simulation).where(Simulation.user_id == self.user_id)
        if ids is not None:
            if not ids:
                return []
            stmt = stmt.where(Simulation.id.in_(list(ids)))
        return self.session.scalars(stmt.order_by(Simulation.date, Simulation.id)).all()

    def get(self, simulation_id: int) -> Simulation:
        return _owned(self.session.get(Simulation, simulation_id), self.user_id, "Simulation")

    def _apply(self, simulation: Simulation, data: SimulationIn) -> None:
        simulation.name = data.name.strip()
        simulation.details = data.details.strip()
        simulation.date = data.date
        simulation.amount_cents = data.amount_cents
        simulation.direction = data.direction
        simulation.recurring = data.recurring
        simulation.rhythm = data.rhythm
        simulation.end_date = data.end_date

    def create(self, data: SimulationIn) -> Simulation:
        simulation = Simulation(user_id=self.user_id)
        self._apply(simulation, data)
        self.session.add(simulation)
        _commit(self.session)
        self.session.refresh(simulation)
        return simulation

    def update(self, simulation_id: int, data: SimulationIn) -> Simulation:
        simulation = self.get(simulation_id)
        self._apply(simulation, data)
        _commit(self.session)
        self.session.refresh(simulation)
        return simulation

    def delete(self, simulation_id: int) -> None:
        simulation = self.get(simulation_id)
        self.session.execute(
            delete(OccurrenceOverride).where(
                OccurrenceOverride.source_kind == SourceKind.simulation,
                OccurrenceOverride.definition_id == simulation.id,
            )
        )
        self.session.delete(simulation)
        _commit(self.session)

    def definitions(self, ids: Optional[Sequence[int]] = None) -> list[RecurringDefinition]:
        return [
            RecurringDefinition(
                id=sim.id,
                label=simulation_label(sim),
                amount_cents=sim.amount_cents,
                direction=sim.direction,
                anchor_date=sim.date,
                rhythm=sim.rhythm if sim.recurring else None,
                end_date=sim.end_date if sim.recurring else None,
            )
            for sim in self.list_all(ids)
        ]


class BookingService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list(
        self, start: Optional[date] = None, end: Optional[date] = None, *, include_open: bool = False
    ) -> list[Booking]:
        """Bookings dated in ``[start, end]``.

        With ``include_open`` expected incoming bookings dated before
        ``start`` are returned as well, since they are still outstanding.
        """
        stmt = select(Booking).where(Booking.user_id == self.user_id)
        if start is not None:
            in_range = Booking.date >= start
            if include_open:
                in_range = or_(
                    in_range,
                    and_(
                        Booking.expected.is_(True),
                        Booking.direction == Direction.incoming,
                    ),
                )
            stmt = stmt.where(in_range)
        if end is not None:
            stmt = stmt.where(Booking.date <= end)
        return self.session.scalars(stmt.order_by(Booking.date, Booking.id)).all()

    def get(self, booking_id: int) -> Booking:
        return _owned(self.session.get(Booking, booking_id), self.user_id, "Booking")

    def find_duplicate(self, row: ImportRow) -> Optional[Booking]:
        return self.session.scalar(
            select(Booking).where(
                Booking.user_id == self.user_id,
                Booking.date == row.date,
                Booking.amount_cents == row.amount_cents,
                Booking.direction == row.direction,
                Booking.details == row.details,
            )
        )

    def create(self, data: BookingIn, *, commit: bool = True) -> Booking:
        booking = Booking(
            user_id=self.user_id,
            date=data.date,
            details=data.details.strip(),
            amount_cents=data.amount_cents,
            direction=data.direction,
            category=data.category,
            is_simulation=data.is_simulation,
            expected=data.expected,
            modified=False,
        )
        self.session.add(booking)
        if commit:
            _commit(self.session)
            self.session.refresh(booking)
        return booking

    def update(self, booking_id: int, data: BookingIn) -> Booking:
        booking = self.get(booking_id)
        booking.date = data.date
        booking.details = data.details.strip()
        booking.amount_cents = data.amount_cents
        booking.direction = data.direction
        booking.category = data.category
        booking.is_simulation = data.is_simulation
        booking.expected = data.expected
        booking.modified = True
        _commit(self.session)
        self.session.refresh(booking)
        return booking

    def mark_received(self, booking_id: int, received_on: date) -> Booking:
        booking = self.get(booking_id)
        if not booking.expected:
            raise ValueError("Booking is not an open receivable")
        booking.expected = False
        booking.date = received_on
        booking.modified = True
        _commit(self.session)
        self.session.refresh(booking)
        return booking

    def delete(self, booking_id: int) -> None:
        booking = self.get(booking_id)
        self.session.delete(booking)
        _commit(self.session)


class BalanceService:
    """The shared account balance plus its day-keyed snapshot history."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_current(self) -> Optional[CurrentBalance]:
        return self.session.get(CurrentBalance, 1)

    def current_or_default(self) -> int:
        try:
            current = self.get_current()
        except SQLAlchemyError as exc:
            logger.warning(f"balance_unavailable: error={exc} fallback=0")
            return 0
        if current is None:
            logger.warning("balance_unset: fallback=0")
            return 0
        return current.balance_cents

    def _upsert_snapshot(self, day: date, balance_cents: int) -> DailyBalanceSnapshot:
        snapshot = self.session.scalar(
            select(DailyBalanceSnapshot).where(DailyBalanceSnapshot.date == day)
        )
        if snapshot is None:
            snapshot = DailyBalanceSnapshot(date=day, balance_cents=balance_cents)
            self.session.add(snapshot)
        else:
            snapshot.balance_cents = balance_cents
        return snapshot

    def set_current(
        self,
        balance_cents: int,
        expected_version: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> CurrentBalance:
        today = today or local_today()
        current = self.get_current()
        if current is None:
            if expected_version not in (None, 0):
                raise ConflictError("Balance was changed by someone else; reload and retry")
            current = CurrentBalance(
                id=1,
                balance_cents=balance_cents,
                effective_date=today,
                version=1,
                updated_at=datetime.utcnow(),
            )
            self.session.add(current)
        else:
            # Version check and write are one statement.
            stmt = update(CurrentBalance).where(CurrentBalance.id == 1)
            if expected_version is not None:
                stmt = stmt.where(CurrentBalance.version == expected_version)
            stmt = stmt.values(
                balance_cents=balance_cents,
                effective_date=today,
                version=CurrentBalance.version + 1,
                updated_at=datetime.utcnow(),
            ).execution_options(synchronize_session=False)
            if self.session.execute(stmt).rowcount == 0:
                self.session.rollback()
                raise ConflictError("Balance was changed by someone else; reload and retry")
        self._upsert_snapshot(today, balance_cents)
        _commit(self.session, unique_message="Balance was changed by someone else; reload and retry")
        self.session.refresh(current)
        logger.info(
            f"balance_set: balance_cents={balance_cents} version={current.version} "
            f"effective_date={today.isoformat()}"
        )
        return current

    def snapshot_today(self, *, today: Optional[date] = None) -> Optional[DailyBalanceSnapshot]:
        today = today or local_today()
        current = self.get_current()
        if current is None:
            return None
        snapshot = self._upsert_snapshot(today, current.balance_cents)
        _commit(self.session)
        self.session.refresh(snapshot)
        return snapshot

    def balance_for_date(self, day: date) -> int:
        snapshot = self.session.scalar(
            select(DailyBalanceSnapshot)
            .where(DailyBalanceSnapshot.date <= day)
            .order_by(DailyBalanceSnapshot.date.desc())
            .limit(1)
        )
        if snapshot is not None:
            return snapshot.balance_cents
        return self.current_or_default()

    def history(self, start: date, end: date) -> list[DailyBalanceSnapshot]:
        if end < start:
            raise ValueError("End date must not be before start date")
        stmt = (
            select(DailyBalanceSnapshot)
            .where(DailyBalanceSnapshot.date >= start, DailyBalanceSnapshot.date <= end)
            .order_by(DailyBalanceSnapshot.date)
        )
        return self.session.scalars(stmt).all()


class ProjectionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def transactions(
        self,
        start: date,
        end: date,
        simulation_ids: Optional[Sequence[int]] = None,
        *,
        today: Optional[date] = None,
    ) -> list[NormalizedTransaction]:
        """Bookings plus expanded fixed costs, salaries and simulations in ``[start, end]``.

        ``simulation_ids`` of ``None`` includes every simulation; an empty
        list includes none.
        """
        if end < start:
            raise ValueError("End date must not be before start date")
        today = today or local_today()
        overrides = OverrideService(self.session, self.user_id)
        fixed = expand_anchored(
            FixedCostService(self.session, self.user_id).definitions(),
            start,
            end,
            overrides.as_overrides(SourceKind.fixed_cost),
        )
        salaries = expand_salaries(
            EmployeeService(self.session, self.user_id).salary_records(),
            start,
            end,
            get_settings().salary_payday,
        )
        simulations = expand_anchored(
            SimulationService(self.session, self.user_id).definitions(simulation_ids),
            start,
            end,
            overrides.as_overrides(SourceKind.simulation),
        )
        bookings = BookingService(self.session, self.user_id).list(start, end, include_open=True)
        normalized = normalize_all(bookings, fixed, salaries, simulations, today=today)
        return [txn for txn in normalized if start <= txn.date <= end]

    def project(
        self,
        start: date,
        end: date,
        simulation_ids: Optional[Sequence[int]] = None,
        *,
        today: Optional[date] = None,
    ) -> list[BalancedTransaction]:
        today = today or local_today()
        txns = self.transactions(start, end, simulation_ids, today=today)
        balance = BalanceService(self.session).current_or_default()
        return enhance(txns, balance, today)

    def daily_balance(
        self,
        start: date,
        end: date,
        simulation_ids: Optional[Sequence[int]] = None,
        seed_cents: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> list[BalancePoint]:
        """One balance per day of ``[start, end]``.

        An explicit seed is the balance before ``start`` and every transaction
        of the window is folded onto it. Without a seed the current balance is
        used; it already contains everything up to today, so only later
        transactions move the curve.
        """
        today = today or local_today()
        txns = self.transactions(start, end, simulation_ids, today=today)
        if seed_cents is None:
            seed_cents = BalanceService(self.session).current_or_default()
            txns = [t for t in txns if t.date > today]
        return daily_balance_series(txns, start, end, seed_cents)

    def scenario_impact(self, scenario_id: int, *, today: Optional[date] = None) -> ScenarioImpact:
        today = today or local_today()
        scenario = ScenarioService(self.session, self.user_id).get(scenario_id)
        window = projection_window(today, scenario.projection_months)
        start = window.start + timedelta(days=1)
        baseline = self.transactions(start, window.end, [], today=today)
        with_scenario = self.transactions(
            start, window.end, scenario.simulation_ids, today=today
        )
        seed = BalanceService(self.session).current_or_default()
        return scenario_impact(baseline, with_scenario, start, window.end, seed)


class ScenarioService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Scenario]:
        stmt = select(Scenario).where(Scenario.user_id == self.user_id).order_by(Scenario.name)
        return self.session.scalars(stmt).all()

    def get(self, scenario_id: int) -> Scenario:
        return _owned(self.session.get(Scenario, scenario_id), self.user_id, "Scenario")

    def _check_simulations(self, ids: Sequence[int]) -> list[int]:
        unique = sorted(set(ids))
        found = {s.id for s in SimulationService(self.session, self.user_id).list_all(unique)}
        missing = [i for i in unique if i not in found]
        if missing:
            raise NotFoundError(f"Simulations not found: {', '.join(map(str, missing))}")
        return unique

    def create(self, data: ScenarioIn) -> Scenario:
        scenario = Scenario(
            user_id=self.user_id,
            name=data.name.strip(),
            description=data.description,
            simulation_ids=self._check_simulations(data.simulation_ids),
            projection_months=data.projection_months or get_settings().projection_months,
        )
        self.session.add(scenario)
        _commit(self.session)
        self.session.refresh(scenario)
        return scenario

    def update(self, scenario_id: int, data: ScenarioIn) -> Scenario:
        scenario = self.get(scenario_id)
        scenario.name = data.name.strip()
        scenario.description = data.description
        scenario.simulation_ids = self._check_simulations(data.simulation_ids)
        if data.projection_months is not None:
            scenario.projection_months = data.projection_months
        _commit(self.session)
        self.session.refresh(scenario)
        return scenario

    def delete(self, scenario_id: int) -> None:
        scenario = self.get(scenario_id)
        self.session.delete(scenario)
        _commit(self.session)


class RevenueTargetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, year: int) -> Optional[RevenueTarget]:
        return self.session.scalar(select(RevenueTarget).where(RevenueTarget.year == year))

    def set(self, year: int, target_cents: int) -> RevenueTarget:
        if target_cents < 0:
            raise ValueError("Revenue target must not be negative")
        target = self.get(year)
        if target is None:
            target = RevenueTarget(year=year, target_cents=target_cents)
            self.session.add(target)
        else:
            target.target_cents = target_cents
        target.updated_by = self.user_id
        _commit(self.session)
        self.session.refresh(target)
        return target

    def progress(self, year: int, *, today: Optional[date] = None) -> RevenueProgress:
        target = self.get(year)
        if target is None:
            raise NotFoundError(f"No revenue target for {year}")
        today = today or local_today()
        bookings = BookingService(self.session, self.user_id).list(
            date(year, 1, 1), date(year, 12, 31)
        )
        actual = [b for b in bookings if not b.expected]
        txns = normalize_all(actual, today=today)
        return revenue_progress(txns, year, target.target_cents)


class DashboardService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def summary(self, *, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        projection = ProjectionService(self.session, self.user_id)
        balance = BalanceService(self.session).current_or_default()

        past = projection.transactions(today - timedelta(days=30), today, [], today=today)
        # Open receivables and payables are not money that moved yet.
        settled = [t for t in past if not t.expected]
        income = sum(t.amount_cents for t in settled if t.direction == Direction.incoming)
        expenses = sum(t.amount_cents for t in settled if t.direction == Direction.outgoing)

        ahead_end = today + timedelta(days=90)
        ahead = projection.transactions(today + timedelta(days=1), ahead_end, [], today=today)
        burn = monthly_burn_rate(ahead, today + timedelta(days=1), ahead_end)

        fixed = monthly_fixed_costs(
            FixedCostService(self.session, self.user_id).list_all(), today
        )
        salaries = sum(
            s.amount_cents
            for s in EmployeeService(self.session, self.user_id).active_salaries(today).values()
        )
        return {
            "balance_cents": balance,
            "income_30d_cents": income,
            "expenses_30d_cents": expenses,
            "upcoming": upcoming_payments(ahead, today, days=30),
            "monthly_fixed_cents": fixed,
            "monthly_salaries_cents": salaries,
            "monthly_burn_cents": round(burn),
            "runway_months": cash_runway(balance, burn),
        }


@dataclass
class ImportResult:
    imported: list[Booking] = field(default_factory=list)
    duplicates: int = 0
    reconciled: list[OccurrenceOverride] = field(default_factory=list)


class ImportService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def import_rows(self, rows: Sequence[ImportRow], *, reconcile: bool = True) -> ImportResult:
        bookings = BookingService(self.session, self.user_id)
        result = ImportResult()
        for row in rows:
            if bookings.find_duplicate(row) is not None:
                result.duplicates += 1
                continue
            result.imported.append(
                bookings.create(
                    BookingIn(
                        date=row.date,
                        details=row.details,
                        amount_cents=row.amount_cents,
                        direction=row.direction,
                    ),
                    commit=False,
                )
            )
            # Flush so identical rows later in the same file count as duplicates.
            self.session.flush()
        _commit(self.session)
        logger.info(
            f"import_committed: imported={len(result.imported)} duplicates={result.duplicates}"
        )
        if reconcile:
            for booking in result.imported:
                override = self.reconcile(booking)
                if override is not None:
                    result.reconciled.append(override)
        return result

    def import_csv(self, content: str, *, reconcile: bool = True) -> tuple[ImportResult, list[str]]:
        rows, errors = parse_csv(content)
        if errors:
            logger.warning(f"import_rows_rejected: count={len(errors)}")
        return self.import_rows(rows, reconcile=reconcile), errors

    def reconcile(self, booking: Booking) -> Optional[OccurrenceOverride]:
        """Skip the projected fixed cost an imported booking already pays.

        Failures are logged and swallowed: the booking itself is stored and
        a missing skip only leaves a duplicate in the forecast.
        """
        if booking.direction != Direction.outgoing:
            return None
        overrides = OverrideService(self.session, self.user_id)
        try:
            start, end = candidate_window(booking.date)
            occurrences = expand_anchored(
                FixedCostService(self.session, self.user_id).definitions(),
                start,
                end,
                overrides.as_overrides(SourceKind.fixed_cost),
            )
            match = find_matching_occurrence(
                booking.date, booking.amount_cents, booking.details, booking.direction, occurrences
            )
            if match is None:
                return None
            occurrence = match.occurrence
            if overrides.find(SourceKind.fixed_cost, occurrence.definition_id, occurrence.original_date):
                return None
            override = overrides.create(
                SourceKind.fixed_cost,
                occurrence.definition_id,
                OverrideIn(
                    original_date=occurrence.original_date,
                    is_skipped=True,
                    notes=(
                        "Automatisch übersprungen: Deckungsgleich mit importierter "
                        f'Buchung "{booking.details}"'
                    ),
                ),
            )
        except (StoreError, SQLAlchemyError) as exc:
            self.session.rollback()
            logger.warning(f"reconcile_failed: booking_id={booking.id} error={exc}")
            return None
        logger.info(
            f"reconcile_matched: booking_id={booking.id} fixed_cost_id={occurrence.definition_id} "
            f"original_date={occurrence.original_date.isoformat()} similarity={match.similarity:.2f}"
        )
        return override
