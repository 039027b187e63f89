from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Direction(str, Enum):
    incoming = "Incoming"
    outgoing = "Outgoing"


DIRECTION_ENUM = SAEnum(
    Direction,
    name="direction",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class Rhythm(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    semiannual = "semiannual"
    annual = "annual"


class TransactionCategory(str, Enum):
    standard = "Standard"
    fixed_cost = "Fixkosten"
    salary = "Lohn"
    simulation = "Simulation"
    manual = "Manual"


CATEGORY_ENUM = SAEnum(
    TransactionCategory,
    name="transactioncategory",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class SourceKind(str, Enum):
    booking = "booking"
    fixed_cost = "fixed_cost"
    salary = "salary"
    simulation = "simulation"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class FixedCost(Base, TimestampMixin):
    __tablename__ = "fixed_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    rhythm: Mapped[Rhythm] = mapped_column(SAEnum(Rhythm), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_fixed_cost_user_name"),
        CheckConstraint("amount_cents >= 0", name="ck_fixed_cost_amount_positive"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_fixed_cost_end_after_start",
        ),
    )


class OccurrenceOverride(Base, TimestampMixin):
    """Exception to one scheduled occurrence of a recurring definition.

    Rows are keyed by the undisturbed schedule date, never by the date the
    occurrence is eventually paid on.
    """

    __tablename__ = "occurrence_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_kind: Mapped[SourceKind] = mapped_column(SAEnum(SourceKind), nullable=False)
    definition_id: Mapped[int] = mapped_column(Integer, nullable=False)
    original_date: Mapped[date] = mapped_column(Date, nullable=False)
    new_date: Mapped[Optional[date]] = mapped_column(Date)
    new_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    is_skipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "source_kind",
            "definition_id",
            "original_date",
            name="uq_override_definition_original_date",
        ),
        CheckConstraint(
            "new_amount_cents IS NULL OR new_amount_cents >= 0",
            name="ck_override_amount_positive",
        ),
    )


class Employee(Base, TimestampMixin):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    salaries: Mapped[list["Salary"]] = relationship(
        "Salary",
        back_populates="employee",
        cascade="all, delete-orphan",
        order_by="Salary.start_date",
    )


class Salary(Base, TimestampMixin):
    __tablename__ = "salaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    employee: Mapped["Employee"] = relationship("Employee", back_populates="salaries")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_salary_amount_positive"),
        Index("ix_salaries_employee_start", "employee_id", "start_date"),
    )


class Simulation(Base, TimestampMixin):
    __tablename__ = "simulations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    details: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    direction: Mapped[Direction] = mapped_column(DIRECTION_ENUM, nullable=False)
    recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rhythm: Mapped[Optional[Rhythm]] = mapped_column(SAEnum(Rhythm))

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_simulation_amount_positive"),
    )


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    details: Mapped[str] = mapped_column(String(300), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    direction: Mapped[Direction] = mapped_column(DIRECTION_ENUM, nullable=False)
    category: Mapped[TransactionCategory] = mapped_column(
        CATEGORY_ENUM, nullable=False, default=TransactionCategory.standard
    )
    modified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_simulation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_bookings_user_date", "user_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_bookings_amount_positive"),
    )


class CurrentBalance(Base):
    """The one shared account balance; a single row with id 1."""

    __tablename__ = "current_balance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class DailyBalanceSnapshot(Base, TimestampMixin):
    __tablename__ = "daily_balance_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False)


class Scenario(Base, TimestampMixin):
    __tablename__ = "scenarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    simulation_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    projection_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)

    __table_args__ = (
        CheckConstraint(
            "projection_months > 0", name="ck_scenario_projection_months_positive"
        ),
    )


class RevenueTarget(Base, TimestampMixin):
    __tablename__ = "revenue_targets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    target_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("target_cents >= 0", name="ck_revenue_target_positive"),
    )
