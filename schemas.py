import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import Direction, Rhythm, TransactionCategory


class FixedCostIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    rhythm: Rhythm
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _end_after_start(self) -> "FixedCostIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must not be before the start date")
        return self


class OverrideIn(BaseModel):
    original_date: date
    new_date: Optional[date] = None
    new_amount_cents: Optional[int] = Field(default=None, ge=0)
    is_skipped: bool = False
    notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _changes_something(self) -> "OverrideIn":
        if self.new_date is None and self.new_amount_cents is None and not self.is_skipped:
            raise ValueError(
                "At least one override (new date, new amount, or skip) must be specified"
            )
        return self


class EmployeeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class SalaryIn(BaseModel):
    start_date: date
    end_date: Optional[date] = None
    amount_cents: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _end_after_start(self) -> "SalaryIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("Salary end must not be before its start")
        return self


class SimulationIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    details: str = Field(default="", max_length=200)
    date: dt.date
    amount_cents: int = Field(..., ge=0)
    direction: Direction
    recurring: bool = False
    rhythm: Optional[Rhythm] = None
    end_date: Optional[dt.date] = None

    @model_validator(mode="after")
    def _recurrence_complete(self) -> "SimulationIn":
        if self.recurring and self.rhythm is None:
            raise ValueError("Recurring simulations need a rhythm")
        if not self.recurring:
            self.rhythm = None
            self.end_date = None
        if self.end_date is not None and self.end_date < self.date:
            raise ValueError("End date must not be before the simulation date")
        return self


class BookingIn(BaseModel):
    date: dt.date
    details: str = Field(..., min_length=1, max_length=300)
    amount_cents: int = Field(..., ge=0)
    direction: Direction
    category: TransactionCategory = TransactionCategory.standard
    is_simulation: bool = False
    expected: bool = False


class ImportRow(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: dt.date
    details: str = Field(..., min_length=1, max_length=300)
    amount_cents: int = Field(..., ge=0)
    direction: Direction


class BalanceIn(BaseModel):
    balance_cents: int
    expected_version: Optional[int] = Field(default=None, ge=1)


class ScenarioIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    simulation_ids: list[int] = Field(default_factory=list)
    projection_months: Optional[int] = Field(default=None, ge=1, le=120)


class RevenueTargetIn(BaseModel):
    target_cents: int = Field(..., ge=0)
