import csv
import io
import logging
from datetime import datetime
from typing import Iterable, NamedTuple

from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from django.utils import timezone

from .exceptions import EmployeeHasShiftsError
from .models import Employee, Shift
from .schemas import (
    WeeklySummaryEntrySchema, WeeklyGridRowSchema, WeeklyExportRowSchema,
    ShiftExportRowSchema
)

logger = logging.getLogger(__name__)

# Local wall-clock hours
DAY_START = 8
DAY_END = 16
NIGHT_START = 16
NIGHT_END = 21

# Summary view is Sunday first, the weekly grid is Monday first.
SUMMARY_WEEKDAYS = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
GRID_WEEKDAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

TIME_RANGE_SEPARATOR = '–'


class ShiftWindows(NamedTuple):
    is_day: bool
    is_night: bool


class OrderedNameSet:
    """Set of names that remembers first insertion order."""

    def __init__(self):
        self._seen: set[str] = set()
        self._names: list[str] = []

    def add(self, name: str) -> None:
        if name not in self._seen:
            self._seen.add(name)
            self._names.append(name)

    def __contains__(self, name) -> bool:
        return name in self._seen

    def __iter__(self):
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def to_list(self) -> list[str]:
        return list(self._names)


def to_local(value: datetime) -> datetime:
    """Convert an aware datetime to the configured local time zone."""
    if timezone.is_aware(value):
        return timezone.localtime(value)
    return value


def hour_of_day(value: datetime) -> float:
    return value.hour + value.minute / 60


def format_clock(value: datetime) -> str:
    """Format as a 12-hour clock, e.g. '8:30 AM'."""
    hour = value.hour % 12 or 12
    suffix = 'AM' if value.hour < 12 else 'PM'
    return f"{hour}:{value.minute:02d} {suffix}"


class EmployeeService:
    """Service class for employee records."""

    @staticmethod
    def list_employees():
        return Employee.objects.order_by('id')

    @staticmethod
    def get_employee(employee_id: int) -> Employee:
        return get_object_or_404(Employee, id=employee_id)

    @staticmethod
    def create_employee(name: str, role: str = "") -> Employee:
        employee = Employee.objects.create(name=name, role=role)
        logger.info("Created employee %s (%s)", employee.id, employee.name)
        return employee

    @classmethod
    def update_employee(cls, employee_id: int, changes: dict) -> Employee:
        """Apply only the given fields; missing keys keep their current value."""
        employee = cls.get_employee(employee_id)
        for field, value in changes.items():
            setattr(employee, field, value)
        if changes:
            employee.save(update_fields=list(changes))
        logger.info("Updated employee %s fields=%s", employee_id, sorted(changes))
        return employee

    @classmethod
    def delete_employee(cls, employee_id: int) -> Employee:
        """
        Delete an employee and return the removed record.
        Employees that still own shifts are never deleted.
        """
        employee = cls.get_employee(employee_id)
        try:
            employee.delete()
        except ProtectedError as e:
            raise EmployeeHasShiftsError(employee_id, len(e.protected_objects)) from e

        # delete() clears the primary key
        employee.id = employee_id
        logger.info("Deleted employee %s", employee_id)
        return employee


class ShiftService:
    """Service class for shift records."""

    @staticmethod
    def _aware(value: datetime) -> datetime:
        # Naive request values are local wall-clock times
        if timezone.is_naive(value):
            return timezone.make_aware(value)
        return value

    @staticmethod
    def list_shifts_with_employee():
        """All shifts joined with their owning employee, in id order."""
        return Shift.objects.select_related('employee').order_by('id')

    @classmethod
    def get_shift(cls, shift_id: int) -> Shift:
        return get_object_or_404(cls.list_shifts_with_employee(), id=shift_id)

    @classmethod
    def create_shift(cls, start_time: datetime, end_time: datetime, employee_id: int) -> Shift:
        employee = EmployeeService.get_employee(employee_id)
        shift = Shift.objects.create(
            start_time=cls._aware(start_time),
            end_time=cls._aware(end_time),
            employee=employee
        )
        logger.info("Created shift %s for employee %s", shift.id, employee.id)
        return shift

    @classmethod
    def update_shift(cls, shift_id: int, changes: dict) -> Shift:
        shift = cls.get_shift(shift_id)

        if changes.get('employee_id') is not None:
            shift.employee = EmployeeService.get_employee(changes['employee_id'])
        if changes.get('start_time') is not None:
            shift.start_time = cls._aware(changes['start_time'])
        if changes.get('end_time') is not None:
            shift.end_time = cls._aware(changes['end_time'])

        shift.save()
        logger.info("Updated shift %s", shift_id)
        return shift

    @classmethod
    def delete_shift(cls, shift_id: int) -> Shift:
        shift = cls.get_shift(shift_id)
        shift.delete()
        shift.id = shift_id
        logger.info("Deleted shift %s", shift_id)
        return shift


class WeeklySummaryService:
    """Service class for the per-weekday day/night coverage summary."""

    @staticmethod
    def classify_interval(start_hour: float, end_hour: float) -> ShiftWindows:
        """Open-interval overlap of [start_hour, end_hour] with the day and night windows."""
        return ShiftWindows(
            is_day=end_hour > DAY_START and start_hour < DAY_END,
            is_night=end_hour > NIGHT_START and start_hour < NIGHT_END,
        )

    @classmethod
    def aggregate_weekly_summary(cls, shifts: Iterable[Shift]) -> dict[str, WeeklySummaryEntrySchema]:
        """
        Bucket shifts by the weekday they start on and collect, per weekday,
        the employees overlapping the day and night windows.

        A shift crossing midnight stays in its start day's bucket.
        """
        buckets = {
            weekday: (OrderedNameSet(), OrderedNameSet())
            for weekday in SUMMARY_WEEKDAYS
        }

        for shift in shifts:
            start = to_local(shift.start_time)
            end = to_local(shift.end_time)
            weekday = SUMMARY_WEEKDAYS[start.isoweekday() % 7]

            windows = cls.classify_interval(hour_of_day(start), hour_of_day(end))
            employee_name = shift.employee.name
            day_names, night_names = buckets[weekday]

            if windows.is_day:
                day_names.add(employee_name)
            if windows.is_night:
                night_names.add(employee_name)

        return {
            weekday: WeeklySummaryEntrySchema(
                day_shift=day_names.to_list(),
                night_shift=night_names.to_list()
            )
            for weekday, (day_names, night_names) in buckets.items()
        }

    @classmethod
    def get_weekly_summary(cls) -> dict[str, WeeklySummaryEntrySchema]:
        """Main service method for the weekly summary."""
        shifts = list(ShiftService.list_shifts_with_employee())
        logger.debug("Summarising %d shifts", len(shifts))
        return cls.aggregate_weekly_summary(shifts)


class WeeklyGridService:
    """Service class for the by-employee weekly schedule grid."""

    CSV_COLUMNS = ['Employee'] + GRID_WEEKDAYS

    @staticmethod
    def format_time_range(start: datetime, end: datetime) -> str:
        return f"{format_clock(to_local(start))}{TIME_RANGE_SEPARATOR}{format_clock(to_local(end))}"

    @classmethod
    def pivot_weekly_grid(cls, shifts: Iterable[Shift]) -> dict[str, WeeklyGridRowSchema]:
        """
        Pivot shifts into one row per employee name with a time range per weekday.

        Shifts are taken in the given order; when an employee has several
        shifts starting on the same weekday the last one wins.
        """
        schedule: dict[str, dict[str, str]] = {}

        for shift in shifts:
            name = shift.employee.name
            weekday = GRID_WEEKDAYS[to_local(shift.start_time).weekday()]

            if name not in schedule:
                schedule[name] = {day: '' for day in GRID_WEEKDAYS}

            schedule[name][weekday] = cls.format_time_range(shift.start_time, shift.end_time)

        return {name: WeeklyGridRowSchema(**days) for name, days in schedule.items()}

    @staticmethod
    def build_export_rows(grid: dict[str, WeeklyGridRowSchema]) -> list[WeeklyExportRowSchema]:
        return [
            WeeklyExportRowSchema(employee=name, **row.model_dump())
            for name, row in grid.items()
        ]

    @classmethod
    def get_by_employee_weekly(cls) -> dict[str, WeeklyGridRowSchema]:
        shifts = list(ShiftService.list_shifts_with_employee())
        logger.debug("Pivoting %d shifts into the weekly grid", len(shifts))
        return cls.pivot_weekly_grid(shifts)

    @classmethod
    def get_export_weekly(cls) -> list[WeeklyExportRowSchema]:
        return cls.build_export_rows(cls.get_by_employee_weekly())

    @classmethod
    def render_csv(cls, rows: list[WeeklyExportRowSchema]) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=cls.CSV_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row.model_dump(by_alias=True))
        return buffer.getvalue()

    @classmethod
    def export_weekly_csv(cls) -> str:
        return cls.render_csv(cls.get_export_weekly())


class ShiftExportService:
    """Service class for the flat one-row-per-shift export."""

    @staticmethod
    def format_timestamp(value: datetime) -> str:
        """Format as 'M/D/YYYY, h:mm:ss AM' in local time."""
        value = to_local(value)
        hour = value.hour % 12 or 12
        suffix = 'AM' if value.hour < 12 else 'PM'
        return f"{value.month}/{value.day}/{value.year}, {hour}:{value.minute:02d}:{value.second:02d} {suffix}"

    @classmethod
    def build_export_rows(cls, shifts: Iterable[Shift]) -> list[ShiftExportRowSchema]:
        return [
            ShiftExportRowSchema(
                name=shift.employee.name,
                start_time=cls.format_timestamp(shift.start_time),
                end_time=cls.format_timestamp(shift.end_time),
                day_of_week=GRID_WEEKDAYS[to_local(shift.start_time).weekday()]
            )
            for shift in shifts
        ]

    @classmethod
    def get_shift_export(cls) -> list[ShiftExportRowSchema]:
        return cls.build_export_rows(ShiftService.list_shifts_with_employee())
