import logging

from django.db import DatabaseError
from django.http import HttpRequest, HttpResponse
from ninja import NinjaAPI, Swagger

from .exceptions import EmployeeHasShiftsError
from .services import (
    EmployeeService, ShiftService, WeeklySummaryService, WeeklyGridService, ShiftExportService
)
from .schemas import (
    EmployeeSchema, EmployeeCreateSchema, EmployeeUpdateSchema,
    ShiftSchema, ShiftWithEmployeeSchema, ShiftCreateSchema, ShiftUpdateSchema,
    WeeklySummaryEntrySchema, WeeklyGridRowSchema, WeeklyExportRowSchema,
    ShiftExportRowSchema, ErrorSchema
)

logger = logging.getLogger(__name__)

api = NinjaAPI(title="Shift Board API", docs=Swagger(settings={"persistAuthorization": True}))


@api.exception_handler(EmployeeHasShiftsError)
def employee_has_shifts(request: HttpRequest, exc: EmployeeHasShiftsError):
    return api.create_response(request, {"detail": str(exc)}, status=409)


@api.exception_handler(DatabaseError)
def database_error(request: HttpRequest, exc: DatabaseError):
    logger.exception("Store query failed for %s %s", request.method, request.path)
    return api.create_response(request, {"detail": "Database error"}, status=500)


# Employees

@api.post("/employees", response=EmployeeSchema, by_alias=True)
def create_employee(request: HttpRequest, payload: EmployeeCreateSchema):
    return EmployeeService.create_employee(payload.name, payload.role)

@api.get("/employees", response=list[EmployeeSchema], by_alias=True)
def list_employees(request: HttpRequest):
    return EmployeeService.list_employees()

@api.get("/employees/{employee_id}", response={200: EmployeeSchema, 404: ErrorSchema}, by_alias=True)
def get_employee(request: HttpRequest, employee_id: int):
    return EmployeeService.get_employee(employee_id)

@api.put("/employees/{employee_id}", response={200: EmployeeSchema, 404: ErrorSchema}, by_alias=True)
def update_employee(request: HttpRequest, employee_id: int, payload: EmployeeUpdateSchema):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    return EmployeeService.update_employee(employee_id, changes)

@api.delete(
    "/employees/{employee_id}",
    response={200: EmployeeSchema, 404: ErrorSchema, 409: ErrorSchema},
    by_alias=True
)
def delete_employee(request: HttpRequest, employee_id: int):
    """
    Delete an employee.
    Returns 409 while the employee still owns shifts; delete those first.
    """
    return EmployeeService.delete_employee(employee_id)


# Shifts

@api.post("/shifts", response={200: ShiftSchema, 404: ErrorSchema}, by_alias=True)
def create_shift(request: HttpRequest, payload: ShiftCreateSchema):
    """
    Create a shift. Times without an offset are read as local wall-clock time.
    """
    return ShiftService.create_shift(payload.start_time, payload.end_time, payload.employee_id)

@api.get("/shifts", response=list[ShiftWithEmployeeSchema], by_alias=True)
def list_shifts(request: HttpRequest):
    return ShiftService.list_shifts_with_employee()

@api.get("/shifts/export", response=list[ShiftExportRowSchema], by_alias=True)
def export_shifts(request: HttpRequest) -> list[ShiftExportRowSchema]:
    """One row per shift with local display timestamps and the start weekday."""
    return ShiftExportService.get_shift_export()

@api.get("/shifts/by-employee-weekly", response=dict[str, WeeklyGridRowSchema], by_alias=True)
def get_by_employee_weekly(request: HttpRequest) -> dict[str, WeeklyGridRowSchema]:
    """
    Weekly grid keyed by employee name, Monday to Sunday.
    When an employee has several shifts starting on the same weekday only the
    last one is shown.
    """
    return WeeklyGridService.get_by_employee_weekly()

@api.get("/shifts/export-weekly", response=list[WeeklyExportRowSchema], by_alias=True)
def export_weekly(request: HttpRequest) -> list[WeeklyExportRowSchema]:
    """Weekly grid flattened to rows with an Employee column."""
    return WeeklyGridService.get_export_weekly()

@api.get("/shifts/export-weekly.csv")
def export_weekly_csv(request: HttpRequest) -> HttpResponse:
    response = HttpResponse(WeeklyGridService.export_weekly_csv(), content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = 'attachment; filename="weekly-schedule.csv"'
    return response

@api.get("/shifts/{shift_id}", response={200: ShiftWithEmployeeSchema, 404: ErrorSchema}, by_alias=True)
def get_shift(request: HttpRequest, shift_id: int):
    return ShiftService.get_shift(shift_id)

@api.put("/shifts/{shift_id}", response={200: ShiftSchema, 404: ErrorSchema}, by_alias=True)
def update_shift(request: HttpRequest, shift_id: int, payload: ShiftUpdateSchema):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    return ShiftService.update_shift(shift_id, changes)

@api.delete("/shifts/{shift_id}", response={200: ShiftSchema, 404: ErrorSchema}, by_alias=True)
def delete_shift(request: HttpRequest, shift_id: int):
    return ShiftService.delete_shift(shift_id)


# Derived views

@api.get("/summary", response=dict[str, WeeklySummaryEntrySchema], by_alias=True)
def get_summary(request: HttpRequest) -> dict[str, WeeklySummaryEntrySchema]:
    """
    Per-weekday summary (Sunday first) of which employees cover the day
    window (08:00-16:00) and the night window (16:00-21:00).

    Shifts are bucketed by the weekday they start on.
    """
    return WeeklySummaryService.get_weekly_summary()
