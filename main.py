import logging
import math
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from config import get_settings
from csrf import generate_csrf_token, require_csrf
from csv_utils import export_bookings, export_projection
from database import get_db
from ledger import filter_transactions
from models import SourceKind, TransactionCategory
from periods import Period, resolve_period
from reports import category_totals, monthly_summary
from scheduler import SchedulerManager
from schemas import (
    BalanceIn,
    BookingIn,
    EmployeeIn,
    FixedCostIn,
    ImportRow,
    OverrideIn,
    RevenueTargetIn,
    SalaryIn,
    ScenarioIn,
    SimulationIn,
)
from services import (
    BalanceService,
    BookingService,
    ConflictError,
    ConstraintError,
    DashboardService,
    EmployeeService,
    FixedCostService,
    ImportResult,
    ImportService,
    NotFoundError,
    OverrideService,
    PermissionDeniedError,
    ProjectionService,
    RevenueTargetService,
    ScenarioService,
    SimulationService,
)

settings = get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

app = FastAPI(title="Cashflow Planner")
scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if settings.scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (ConstraintError, ConflictError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _ids_param(raw: Optional[str]) -> Optional[list[int]]:
    if raw is None:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid simulation ids") from exc


def _runway(value: float) -> Optional[float]:
    return None if math.isinf(value) else round(value, 1)


def fixed_cost_dict(cost) -> dict:
    return {
        "id": cost.id,
        "name": cost.name,
        "amount_cents": cost.amount_cents,
        "rhythm": cost.rhythm.value,
        "start_date": cost.start_date.isoformat(),
        "end_date": cost.end_date.isoformat() if cost.end_date else None,
    }


def override_dict(override) -> dict:
    return {
        "id": override.id,
        "source_kind": override.source_kind.value,
        "definition_id": override.definition_id,
        "original_date": override.original_date.isoformat(),
        "new_date": override.new_date.isoformat() if override.new_date else None,
        "new_amount_cents": override.new_amount_cents,
        "is_skipped": override.is_skipped,
        "notes": override.notes,
    }


def salary_dict(salary) -> dict:
    return {
        "id": salary.id,
        "employee_id": salary.employee_id,
        "start_date": salary.start_date.isoformat(),
        "end_date": salary.end_date.isoformat() if salary.end_date else None,
        "amount_cents": salary.amount_cents,
    }


def employee_dict(employee) -> dict:
    return {
        "id": employee.id,
        "name": employee.name,
        "salaries": [salary_dict(s) for s in employee.salaries],
    }


def simulation_dict(sim) -> dict:
    return {
        "id": sim.id,
        "name": sim.name,
        "details": sim.details,
        "date": sim.date.isoformat(),
        "amount_cents": sim.amount_cents,
        "direction": sim.direction.value,
        "recurring": sim.recurring,
        "rhythm": sim.rhythm.value if sim.rhythm else None,
        "end_date": sim.end_date.isoformat() if sim.end_date else None,
    }


def booking_dict(booking) -> dict:
    return {
        "id": booking.id,
        "date": booking.date.isoformat(),
        "details": booking.details,
        "amount_cents": booking.amount_cents,
        "direction": booking.direction.value,
        "category": booking.category.value,
        "modified": booking.modified,
        "is_simulation": booking.is_simulation,
        "expected": booking.expected,
    }


def transaction_dict(txn) -> dict:
    return {
        "date": txn.date.isoformat(),
        "details": txn.details,
        "amount_cents": txn.amount_cents,
        "signed_amount_cents": txn.signed_amount_cents,
        "direction": txn.direction.value,
        "category": txn.category.value,
        "source_kind": txn.source_kind.value,
        "source_id": txn.source_id,
        "original_date": txn.original_date.isoformat() if txn.original_date else None,
        "was_date_shifted": txn.was_date_shifted,
        "modified": txn.modified,
        "running_balance_cents": getattr(txn, "running_balance_cents", None),
        "hints": list(getattr(txn, "hints", ())),
    }


def scenario_dict(scenario) -> dict:
    return {
        "id": scenario.id,
        "name": scenario.name,
        "description": scenario.description,
        "simulation_ids": list(scenario.simulation_ids or []),
        "projection_months": scenario.projection_months,
    }


def balance_dict(current) -> dict:
    if current is None:
        return {"balance_cents": 0, "effective_date": None, "version": 0}
    return {
        "balance_cents": current.balance_cents,
        "effective_date": current.effective_date.isoformat(),
        "updated_at": current.updated_at.isoformat(),
        "version": current.version,
    }


def import_result_dict(result: ImportResult, errors: Optional[list[str]] = None) -> dict:
    return {
        "imported": len(result.imported),
        "duplicates": result.duplicates,
        "reconciled": [override_dict(o) for o in result.reconciled],
        "errors": errors or [],
    }


@app.get("/api/csrf-token")
def api_csrf_token():
    return {"token": generate_csrf_token()}


@app.get("/api/fixed-costs")
def api_fixed_costs(include_ended: bool = True, db: Session = Depends(get_db)):
    costs = FixedCostService(db).list_all(include_ended)
    return [fixed_cost_dict(c) for c in costs]


@app.post("/api/fixed-costs", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_fixed_cost(data: FixedCostIn, db: Session = Depends(get_db)):
    try:
        cost = FixedCostService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return fixed_cost_dict(cost)


@app.get("/api/fixed-costs/{fixed_cost_id}")
def api_fixed_cost(fixed_cost_id: int, db: Session = Depends(get_db)):
    try:
        cost = FixedCostService(db).get(fixed_cost_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return fixed_cost_dict(cost)


@app.put("/api/fixed-costs/{fixed_cost_id}", dependencies=[Depends(require_csrf)])
def api_update_fixed_cost(fixed_cost_id: int, data: FixedCostIn, db: Session = Depends(get_db)):
    try:
        cost = FixedCostService(db).update(fixed_cost_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return fixed_cost_dict(cost)


@app.post("/api/fixed-costs/{fixed_cost_id}/end", dependencies=[Depends(require_csrf)])
def api_end_fixed_cost(
    fixed_cost_id: int, end_date: date = Query(...), db: Session = Depends(get_db)
):
    try:
        cost = FixedCostService(db).end(fixed_cost_id, end_date)
    except ValueError as exc:
        raise http_error(exc) from exc
    return fixed_cost_dict(cost)


@app.delete(
    "/api/fixed-costs/{fixed_cost_id}", status_code=204, dependencies=[Depends(require_csrf)]
)
def api_delete_fixed_cost(fixed_cost_id: int, db: Session = Depends(get_db)):
    try:
        FixedCostService(db).delete(fixed_cost_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/{kind}/{definition_id}/overrides")
def api_overrides(kind: str, definition_id: int, db: Session = Depends(get_db)):
    source_kind = _override_kind(kind)
    overrides = OverrideService(db).list_for(source_kind, definition_id)
    return [override_dict(o) for o in overrides]


@app.post(
    "/api/{kind}/{definition_id}/overrides",
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def api_create_override(
    kind: str, definition_id: int, data: OverrideIn, db: Session = Depends(get_db)
):
    source_kind = _override_kind(kind)
    try:
        override = OverrideService(db).create(source_kind, definition_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return override_dict(override)


def _override_kind(kind: str) -> SourceKind:
    if kind == "fixed-costs":
        return SourceKind.fixed_cost
    if kind == "simulations":
        return SourceKind.simulation
    raise HTTPException(status_code=404, detail="Not found")


@app.put("/api/overrides/{override_id}", dependencies=[Depends(require_csrf)])
def api_update_override(override_id: int, data: OverrideIn, db: Session = Depends(get_db)):
    try:
        override = OverrideService(db).update(override_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return override_dict(override)


@app.delete("/api/overrides/{override_id}", status_code=204, dependencies=[Depends(require_csrf)])
def api_delete_override(override_id: int, db: Session = Depends(get_db)):
    try:
        OverrideService(db).delete(override_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/employees")
def api_employees(db: Session = Depends(get_db)):
    return [employee_dict(e) for e in EmployeeService(db).list_all()]


@app.post("/api/employees", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_employee(data: EmployeeIn, db: Session = Depends(get_db)):
    try:
        employee = EmployeeService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return employee_dict(employee)


@app.put("/api/employees/{employee_id}", dependencies=[Depends(require_csrf)])
def api_rename_employee(employee_id: int, data: EmployeeIn, db: Session = Depends(get_db)):
    try:
        employee = EmployeeService(db).rename(employee_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return employee_dict(employee)


@app.delete("/api/employees/{employee_id}", status_code=204, dependencies=[Depends(require_csrf)])
def api_delete_employee(employee_id: int, db: Session = Depends(get_db)):
    try:
        EmployeeService(db).delete(employee_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.post(
    "/api/employees/{employee_id}/salaries",
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def api_add_salary(employee_id: int, data: SalaryIn, db: Session = Depends(get_db)):
    try:
        salary = EmployeeService(db).add_salary(employee_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return salary_dict(salary)


@app.put("/api/salaries/{salary_id}", dependencies=[Depends(require_csrf)])
def api_update_salary(salary_id: int, data: SalaryIn, db: Session = Depends(get_db)):
    try:
        salary = EmployeeService(db).update_salary(salary_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return salary_dict(salary)


@app.delete("/api/salaries/{salary_id}", status_code=204, dependencies=[Depends(require_csrf)])
def api_delete_salary(salary_id: int, db: Session = Depends(get_db)):
    try:
        EmployeeService(db).delete_salary(salary_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/simulations")
def api_simulations(db: Session = Depends(get_db)):
    return [simulation_dict(s) for s in SimulationService(db).list_all()]


@app.post("/api/simulations", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_simulation(data: SimulationIn, db: Session = Depends(get_db)):
    try:
        sim = SimulationService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return simulation_dict(sim)


@app.put("/api/simulations/{simulation_id}", dependencies=[Depends(require_csrf)])
def api_update_simulation(simulation_id: int, data: SimulationIn, db: Session = Depends(get_db)):
    try:
        sim = SimulationService(db).update(simulation_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return simulation_dict(sim)


@app.delete(
    "/api/simulations/{simulation_id}", status_code=204, dependencies=[Depends(require_csrf)]
)
def api_delete_simulation(simulation_id: int, db: Session = Depends(get_db)):
    try:
        SimulationService(db).delete(simulation_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/bookings")
def api_bookings(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    bookings = BookingService(db).list(period.start, period.end)
    return [booking_dict(b) for b in bookings]


@app.get("/api/bookings/export.csv")
def api_export_bookings(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    csv_text = export_bookings(BookingService(db).list(period.start, period.end))
    filename = f"buchungen_{period.start}_{period.end}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/bookings", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_booking(data: BookingIn, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return booking_dict(booking)


@app.put("/api/bookings/{booking_id}", dependencies=[Depends(require_csrf)])
def api_update_booking(booking_id: int, data: BookingIn, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).update(booking_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return booking_dict(booking)


@app.post("/api/bookings/{booking_id}/received", dependencies=[Depends(require_csrf)])
def api_booking_received(
    booking_id: int, received_on: date = Query(...), db: Session = Depends(get_db)
):
    try:
        booking = BookingService(db).mark_received(booking_id, received_on)
    except ValueError as exc:
        raise http_error(exc) from exc
    return booking_dict(booking)


@app.delete("/api/bookings/{booking_id}", status_code=204, dependencies=[Depends(require_csrf)])
def api_delete_booking(booking_id: int, db: Session = Depends(get_db)):
    try:
        BookingService(db).delete(booking_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/balance")
def api_balance(db: Session = Depends(get_db)):
    return balance_dict(BalanceService(db).get_current())


@app.put("/api/balance", dependencies=[Depends(require_csrf)])
def api_set_balance(data: BalanceIn, db: Session = Depends(get_db)):
    try:
        current = BalanceService(db).set_current(data.balance_cents, data.expected_version)
    except ValueError as exc:
        raise http_error(exc) from exc
    return balance_dict(current)


@app.get("/api/balance/history")
def api_balance_history(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    try:
        snapshots = BalanceService(db).history(period.start, period.end)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [{"date": s.date.isoformat(), "balance_cents": s.balance_cents} for s in snapshots]


@app.get("/api/balance/on/{day}")
def api_balance_on(day: date, db: Session = Depends(get_db)):
    return {"date": day.isoformat(), "balance_cents": BalanceService(db).balance_for_date(day)}


@app.get("/api/projection")
def api_projection(
    request: Request,
    simulations: Optional[str] = None,
    q: Optional[str] = None,
    min_amount_cents: Optional[int] = None,
    max_amount_cents: Optional[int] = None,
    category: Optional[list[TransactionCategory]] = Query(default=None),
    only_modified: bool = False,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    try:
        txns = ProjectionService(db).project(period.start, period.end, _ids_param(simulations))
    except ValueError as exc:
        raise http_error(exc) from exc
    txns = filter_transactions(
        txns,
        period.start,
        period.end,
        search=q,
        min_amount_cents=min_amount_cents,
        max_amount_cents=max_amount_cents,
        categories=category,
        only_modified=only_modified,
    )
    return {
        "period": {"slug": period.slug, "start": period.start.isoformat(), "end": period.end.isoformat()},
        "items": [transaction_dict(t) for t in txns],
    }


@app.get("/api/projection/export.csv")
def api_export_projection(
    request: Request, simulations: Optional[str] = None, db: Session = Depends(get_db)
):
    period = period_from_request(request)
    try:
        txns = ProjectionService(db).project(period.start, period.end, _ids_param(simulations))
    except ValueError as exc:
        raise http_error(exc) from exc
    filename = f"prognose_{period.start}_{period.end}.csv"
    return StreamingResponse(
        iter([export_projection(txns)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/reports/monthly")
def api_monthly(request: Request, simulations: Optional[str] = None, db: Session = Depends(get_db)):
    period = period_from_request(request)
    txns = ProjectionService(db).transactions(period.start, period.end, _ids_param(simulations))
    return [
        {
            "month": m.month,
            "income_cents": m.income_cents,
            "expense_cents": m.expense_cents,
            "net_cents": m.net_cents,
        }
        for m in monthly_summary(txns)
    ]


@app.get("/api/reports/categories")
def api_categories(request: Request, simulations: Optional[str] = None, db: Session = Depends(get_db)):
    period = period_from_request(request)
    txns = ProjectionService(db).transactions(period.start, period.end, _ids_param(simulations))
    return [
        {"category": category.value, "amount_cents": amount}
        for category, amount in category_totals(txns).items()
    ]


@app.get("/api/reports/daily-balance")
def api_daily_balance(
    request: Request,
    simulations: Optional[str] = None,
    seed_cents: Optional[int] = None,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    points = ProjectionService(db).daily_balance(
        period.start, period.end, _ids_param(simulations), seed_cents
    )
    return [{"date": p.date.isoformat(), "balance_cents": p.balance_cents} for p in points]


@app.get("/api/dashboard")
def api_dashboard(db: Session = Depends(get_db)):
    summary = DashboardService(db).summary()
    summary["upcoming"] = [transaction_dict(t) for t in summary["upcoming"]]
    summary["runway_months"] = _runway(summary["runway_months"])
    return summary


@app.get("/api/scenarios")
def api_scenarios(db: Session = Depends(get_db)):
    return [scenario_dict(s) for s in ScenarioService(db).list_all()]


@app.post("/api/scenarios", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_scenario(data: ScenarioIn, db: Session = Depends(get_db)):
    try:
        scenario = ScenarioService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return scenario_dict(scenario)


@app.put("/api/scenarios/{scenario_id}", dependencies=[Depends(require_csrf)])
def api_update_scenario(scenario_id: int, data: ScenarioIn, db: Session = Depends(get_db)):
    try:
        scenario = ScenarioService(db).update(scenario_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return scenario_dict(scenario)


@app.delete("/api/scenarios/{scenario_id}", status_code=204, dependencies=[Depends(require_csrf)])
def api_delete_scenario(scenario_id: int, db: Session = Depends(get_db)):
    try:
        ScenarioService(db).delete(scenario_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/scenarios/{scenario_id}/impact")
def api_scenario_impact(scenario_id: int, db: Session = Depends(get_db)):
    try:
        impact = ProjectionService(db).scenario_impact(scenario_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "baseline_end_cents": impact.baseline_end_cents,
        "scenario_end_cents": impact.scenario_end_cents,
        "baseline_low_cents": impact.baseline_low_cents,
        "scenario_low_cents": impact.scenario_low_cents,
        "difference_cents": impact.difference_cents,
    }


@app.put("/api/revenue-targets/{year}", dependencies=[Depends(require_csrf)])
def api_set_revenue_target(year: int, data: RevenueTargetIn, db: Session = Depends(get_db)):
    try:
        target = RevenueTargetService(db).set(year, data.target_cents)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"year": target.year, "target_cents": target.target_cents}


@app.get("/api/revenue-targets/{year}/progress")
def api_revenue_progress(year: int, db: Session = Depends(get_db)):
    try:
        progress = RevenueTargetService(db).progress(year)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "year": progress.year,
        "target_cents": progress.target_cents,
        "achieved_cents": progress.achieved_cents,
        "remaining_cents": progress.remaining_cents,
        "progress_percent": progress.progress_percent,
    }


@app.post("/api/import", dependencies=[Depends(require_csrf)])
async def api_import_csv(
    file: UploadFile = File(...), reconcile: bool = True, db: Session = Depends(get_db)
):
    content = (await file.read()).decode("utf-8")
    try:
        result, errors = ImportService(db).import_csv(content, reconcile=reconcile)
    except ValueError as exc:
        raise http_error(exc) from exc
    return import_result_dict(result, errors)


@app.post("/api/import/rows", dependencies=[Depends(require_csrf)])
def api_import_rows(rows: list[ImportRow], reconcile: bool = True, db: Session = Depends(get_db)):
    try:
        result = ImportService(db).import_rows(rows, reconcile=reconcile)
    except ValueError as exc:
        raise http_error(exc) from exc
    return import_result_dict(result)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
