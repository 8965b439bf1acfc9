import importlib
import os
from datetime import datetime
from io import StringIO
from unittest import mock

from django.conf import settings
from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from django.test.client import Client
from django.utils import timezone

from .models import Employee, Shift
from .services import (
    OrderedNameSet, WeeklySummaryService, WeeklyGridService, ShiftExportService,
    SUMMARY_WEEKDAYS, GRID_WEEKDAYS
)


def local(year, month, day, hour, minute=0):
    """Aware datetime for a local wall-clock time."""
    return timezone.make_aware(datetime(year, month, day, hour, minute))


def make_shift(employee, start, end):
    """Unsaved shift for the pure aggregation tests."""
    return Shift(employee=employee, start_time=start, end_time=end)


class IntervalClassifierTest(SimpleTestCase):
    """Test classification of shift hours against the day and night windows."""

    def classify(self, start_hour, end_hour):
        windows = WeeklySummaryService.classify_interval(start_hour, end_hour)
        return windows.is_day, windows.is_night

    def test_inside_day_window(self):
        self.assertEqual(self.classify(8, 16), (True, False))
        self.assertEqual(self.classify(9.5, 12), (True, False))

    def test_inside_night_window(self):
        self.assertEqual(self.classify(16, 21), (False, True))
        self.assertEqual(self.classify(17, 20.5), (False, True))

    def test_spanning_both_windows(self):
        self.assertEqual(self.classify(15, 17), (True, True))

    def test_outside_both_windows(self):
        self.assertEqual(self.classify(21, 23), (False, False))
        self.assertEqual(self.classify(5, 8), (False, False))

    def test_boundaries_are_open(self):
        """Touching a window edge does not count as overlap."""
        self.assertEqual(self.classify(6, 8), (False, False))
        self.assertEqual(self.classify(12, 16), (True, False))
        self.assertEqual(self.classify(21, 22), (False, False))

    def test_midnight_crossing_uses_raw_hours(self):
        # 23:30 -> 00:30 compares end hour 0.5 against the windows
        self.assertEqual(self.classify(23.5, 0.5), (False, False))


class OrderedNameSetTest(SimpleTestCase):

    def test_keeps_first_insertion_order(self):
        names = OrderedNameSet()
        for name in ["Carol", "Alice", "Carol", "Bob", "Alice"]:
            names.add(name)

        self.assertEqual(names.to_list(), ["Carol", "Alice", "Bob"])
        self.assertEqual(len(names), 3)
        self.assertIn("Bob", names)
        self.assertNotIn("Dave", names)


class WeeklySummaryAggregationTest(SimpleTestCase):
    """Test the weekday bucketing of the weekly summary."""

    def setUp(self):
        self.alice = Employee(id=1, name="Alice")
        self.bob = Employee(id=2, name="Bob")

    def test_all_weekdays_present_when_empty(self):
        summary = WeeklySummaryService.aggregate_weekly_summary([])

        self.assertEqual(list(summary.keys()), SUMMARY_WEEKDAYS)
        for entry in summary.values():
            self.assertEqual(entry.day_shift, [])
            self.assertEqual(entry.night_shift, [])

    def test_shift_overlapping_both_windows(self):
        """2024-01-01 is a Monday."""
        shifts = [make_shift(self.bob, local(2024, 1, 1, 8, 30), local(2024, 1, 1, 16, 30))]

        summary = WeeklySummaryService.aggregate_weekly_summary(shifts)

        self.assertEqual(summary["Monday"].day_shift, ["Bob"])
        self.assertEqual(summary["Monday"].night_shift, ["Bob"])
        self.assertEqual(summary["Tuesday"].day_shift, [])

    def test_sunday_bucket(self):
        shifts = [make_shift(self.alice, local(2024, 1, 7, 17), local(2024, 1, 7, 20))]

        summary = WeeklySummaryService.aggregate_weekly_summary(shifts)

        self.assertEqual(summary["Sunday"].night_shift, ["Alice"])
        self.assertEqual(summary["Sunday"].day_shift, [])

    def test_same_employee_counted_once_per_day(self):
        shifts = [
            make_shift(self.alice, local(2024, 1, 2, 8), local(2024, 1, 2, 10)),
            make_shift(self.alice, local(2024, 1, 2, 12), local(2024, 1, 2, 14)),
        ]

        summary = WeeklySummaryService.aggregate_weekly_summary(shifts)

        self.assertEqual(summary["Tuesday"].day_shift, ["Alice"])

    def test_names_in_first_seen_order(self):
        shifts = [
            make_shift(self.bob, local(2024, 1, 3, 9), local(2024, 1, 3, 11)),
            make_shift(self.alice, local(2024, 1, 3, 8), local(2024, 1, 3, 12)),
            make_shift(self.bob, local(2024, 1, 3, 13), local(2024, 1, 3, 15)),
        ]

        summary = WeeklySummaryService.aggregate_weekly_summary(shifts)

        self.assertEqual(summary["Wednesday"].day_shift, ["Bob", "Alice"])

    def test_midnight_crossing_bucketed_on_start_day(self):
        """Saturday 23:30 to Sunday 00:30 lands on Saturday and covers no window."""
        shifts = [make_shift(self.alice, local(2024, 1, 6, 23, 30), local(2024, 1, 7, 0, 30))]

        summary = WeeklySummaryService.aggregate_weekly_summary(shifts)

        for entry in summary.values():
            self.assertEqual(entry.day_shift, [])
            self.assertEqual(entry.night_shift, [])

    def test_aggregation_is_idempotent(self):
        shifts = [
            make_shift(self.bob, local(2024, 1, 4, 15), local(2024, 1, 4, 17)),
            make_shift(self.alice, local(2024, 1, 4, 9), local(2024, 1, 4, 18)),
        ]

        first = WeeklySummaryService.aggregate_weekly_summary(shifts)
        second = WeeklySummaryService.aggregate_weekly_summary(shifts)

        self.assertEqual(
            {day: entry.model_dump() for day, entry in first.items()},
            {day: entry.model_dump() for day, entry in second.items()}
        )


class WeeklyGridPivotTest(SimpleTestCase):
    """Test the by-employee weekly grid."""

    def setUp(self):
        self.alice = Employee(id=1, name="Alice")
        self.bob = Employee(id=2, name="Bob")

    def test_time_range_format(self):
        self.assertEqual(
            WeeklyGridService.format_time_range(local(2024, 1, 1, 8, 30), local(2024, 1, 1, 16, 30)),
            "8:30 AM–4:30 PM"
        )
        self.assertEqual(
            WeeklyGridService.format_time_range(local(2024, 1, 1, 0, 5), local(2024, 1, 1, 12, 0)),
            "12:05 AM–12:00 PM"
        )

    def test_new_employee_gets_empty_week(self):
        grid = WeeklyGridService.pivot_weekly_grid(
            [make_shift(self.bob, local(2024, 1, 1, 8, 30), local(2024, 1, 1, 16, 30))]
        )

        self.assertEqual(list(grid.keys()), ["Bob"])
        self.assertEqual(grid["Bob"].model_dump(by_alias=True), {
            "Monday": "8:30 AM–4:30 PM",
            "Tuesday": "",
            "Wednesday": "",
            "Thursday": "",
            "Friday": "",
            "Saturday": "",
            "Sunday": "",
        })

    def test_last_shift_for_a_weekday_wins(self):
        shifts = [
            make_shift(self.alice, local(2024, 1, 1, 9), local(2024, 1, 1, 12)),
            make_shift(self.alice, local(2024, 1, 1, 14), local(2024, 1, 1, 16)),
        ]

        grid = WeeklyGridService.pivot_weekly_grid(shifts)

        self.assertEqual(grid["Alice"].monday, "2:00 PM–4:00 PM")

    def test_weekday_keys_are_monday_first(self):
        grid = WeeklyGridService.pivot_weekly_grid(
            [make_shift(self.alice, local(2024, 1, 7, 10), local(2024, 1, 7, 12))]
        )

        self.assertEqual(list(grid["Alice"].model_dump(by_alias=True).keys()), GRID_WEEKDAYS)
        self.assertEqual(grid["Alice"].sunday, "10:00 AM–12:00 PM")

    def test_midnight_crossing_on_start_day(self):
        grid = WeeklyGridService.pivot_weekly_grid(
            [make_shift(self.alice, local(2024, 1, 6, 23, 30), local(2024, 1, 7, 0, 30))]
        )

        self.assertEqual(grid["Alice"].saturday, "11:30 PM–12:30 AM")
        self.assertEqual(grid["Alice"].sunday, "")

    def test_export_rows_match_grid(self):
        shifts = [
            make_shift(self.alice, local(2024, 1, 1, 9), local(2024, 1, 1, 12)),
            make_shift(self.bob, local(2024, 1, 2, 16), local(2024, 1, 2, 20)),
            make_shift(self.alice, local(2024, 1, 5, 8), local(2024, 1, 5, 16)),
        ]

        grid = WeeklyGridService.pivot_weekly_grid(shifts)
        rows = WeeklyGridService.build_export_rows(grid)

        self.assertEqual([row.employee for row in rows], ["Alice", "Bob"])
        for row in rows:
            exported = row.model_dump(by_alias=True)
            self.assertEqual(exported.pop("Employee"), row.employee)
            self.assertEqual(exported, grid[row.employee].model_dump(by_alias=True))

    def test_render_csv(self):
        grid = WeeklyGridService.pivot_weekly_grid(
            [make_shift(self.bob, local(2024, 1, 2, 9), local(2024, 1, 2, 17))]
        )

        lines = WeeklyGridService.render_csv(WeeklyGridService.build_export_rows(grid)).splitlines()

        self.assertEqual(lines[0], "Employee,Monday,Tuesday,Wednesday,Thursday,Friday,Saturday,Sunday")
        self.assertEqual(lines[1], "Bob,,9:00 AM–5:00 PM,,,,,")


class ShiftExportFormatTest(SimpleTestCase):

    def test_export_row(self):
        bob = Employee(id=2, name="Bob")
        rows = ShiftExportService.build_export_rows(
            [make_shift(bob, local(2024, 1, 1, 8, 30), local(2024, 1, 1, 16, 30))]
        )

        self.assertEqual(rows[0].model_dump(by_alias=True), {
            "name": "Bob",
            "startTime": "1/1/2024, 8:30:00 AM",
            "endTime": "1/1/2024, 4:30:00 PM",
            "dayOfWeek": "Monday",
        })


class ShiftBoardAPITestBase(TestCase):
    """Base test class with common setup and helper methods."""

    def setUp(self):
        """Set up common test data"""
        self.client = Client()

        self.alice = Employee.objects.create(name="Alice", role="Cashier")
        self.bob = Employee.objects.create(name="Bob", role="Stocker")
        self.idle = Employee.objects.create(name="Idle", role="Cashier")

        self._create_base_shifts()

    def _create_base_shifts(self):
        """Create standard test shifts (week of Monday 2024-01-01)."""
        shifts = [
            (self.bob, local(2024, 1, 1, 8, 30), local(2024, 1, 1, 16, 30)),
            (self.alice, local(2024, 1, 1, 9), local(2024, 1, 1, 12)),
            (self.alice, local(2024, 1, 1, 14), local(2024, 1, 1, 16)),
            (self.alice, local(2024, 1, 3, 17), local(2024, 1, 3, 20)),
        ]

        for employee, start, end in shifts:
            Shift.objects.create(employee=employee, start_time=start, end_time=end)

    def post_json(self, path, data):
        return self.client.post(path, data, content_type="application/json")

    def put_json(self, path, data):
        return self.client.put(path, data, content_type="application/json")


class SummaryAPITest(ShiftBoardAPITestBase):

    def test_summary_structure(self):
        response = self.client.get("/api/summary")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(list(data.keys()), SUMMARY_WEEKDAYS)
        for entry in data.values():
            self.assertIn("dayShift", entry)
            self.assertIn("nightShift", entry)

    def test_summary_contents(self):
        data = self.client.get("/api/summary").json()

        self.assertEqual(data["Monday"], {"dayShift": ["Bob", "Alice"], "nightShift": ["Bob"]})
        self.assertEqual(data["Wednesday"], {"dayShift": [], "nightShift": ["Alice"]})
        self.assertEqual(data["Sunday"], {"dayShift": [], "nightShift": []})

    def test_store_failure_is_server_error(self):
        with mock.patch(
            "shifts.services.ShiftService.list_shifts_with_employee",
            side_effect=DatabaseError("connection lost")
        ), self.assertLogs("shifts.api", level="ERROR"):
            response = self.client.get("/api/summary")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Database error"})


class WeeklyScheduleAPITest(ShiftBoardAPITestBase):

    def test_by_employee_weekly(self):
        data = self.client.get("/api/shifts/by-employee-weekly").json()

        self.assertEqual(set(data.keys()), {"Alice", "Bob"})
        self.assertEqual(data["Bob"]["Monday"], "8:30 AM–4:30 PM")
        self.assertEqual(data["Bob"]["Tuesday"], "")
        # second Monday shift replaces the first
        self.assertEqual(data["Alice"]["Monday"], "2:00 PM–4:00 PM")
        self.assertEqual(data["Alice"]["Wednesday"], "5:00 PM–8:00 PM")

    def test_export_weekly_rows(self):
        by_employee = self.client.get("/api/shifts/by-employee-weekly").json()
        rows = self.client.get("/api/shifts/export-weekly").json()

        # employees without shifts are not exported
        self.assertEqual(len(rows), 2)
        for row in rows:
            self.assertEqual(list(row.keys()), ["Employee"] + GRID_WEEKDAYS)
            name = row.pop("Employee")
            self.assertEqual(row, by_employee[name])

    def test_export_weekly_csv(self):
        response = self.client.get("/api/shifts/export-weekly.csv")

        self.assertEqual(response.status_code, 200)
        self.assertIn("text/csv", response["Content-Type"])
        self.assertIn("attachment", response["Content-Disposition"])
        lines = response.content.decode("utf-8").splitlines()
        self.assertEqual(lines[0], "Employee,Monday,Tuesday,Wednesday,Thursday,Friday,Saturday,Sunday")
        self.assertEqual(len(lines), 3)

    def test_shift_export(self):
        rows = self.client.get("/api/shifts/export").json()

        self.assertEqual(len(rows), 4)
        self.assertEqual(rows[0], {
            "name": "Bob",
            "startTime": "1/1/2024, 8:30:00 AM",
            "endTime": "1/1/2024, 4:30:00 PM",
            "dayOfWeek": "Monday",
        })

    def test_empty_store(self):
        Shift.objects.all().delete()

        self.assertEqual(self.client.get("/api/shifts/by-employee-weekly").json(), {})
        self.assertEqual(self.client.get("/api/shifts/export-weekly").json(), [])


class EmployeeAPITest(ShiftBoardAPITestBase):

    def test_create_and_list(self):
        response = self.post_json("/api/employees", {"name": "Carmen", "role": "Supervisor"})

        self.assertEqual(response.status_code, 200)
        created = response.json()
        self.assertEqual(created["name"], "Carmen")
        self.assertEqual(created["role"], "Supervisor")

        names = [e["name"] for e in self.client.get("/api/employees").json()]
        self.assertEqual(names, ["Alice", "Bob", "Idle", "Carmen"])

    def test_get_missing_employee(self):
        response = self.client.get("/api/employees/9999")
        self.assertEqual(response.status_code, 404)

    def test_partial_update(self):
        response = self.put_json(f"/api/employees/{self.bob.id}", {"role": "Lead"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"id": self.bob.id, "name": "Bob", "role": "Lead"})
        self.bob.refresh_from_db()
        self.assertEqual(self.bob.role, "Lead")

    def test_renamed_employee_shows_in_views(self):
        self.put_json(f"/api/employees/{self.bob.id}", {"name": "Robert"})

        data = self.client.get("/api/summary").json()
        self.assertEqual(data["Monday"]["nightShift"], ["Robert"])

    def test_delete_employee_without_shifts(self):
        response = self.client.delete(f"/api/employees/{self.idle.id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["id"], self.idle.id)
        self.assertFalse(Employee.objects.filter(id=self.idle.id).exists())

    def test_delete_employee_with_shifts_is_refused(self):
        response = self.client.delete(f"/api/employees/{self.alice.id}")

        self.assertEqual(response.status_code, 409)
        self.assertIn("detail", response.json())
        self.assertTrue(Employee.objects.filter(id=self.alice.id).exists())
        self.assertEqual(Shift.objects.filter(employee=self.alice).count(), 3)


class ShiftAPITest(ShiftBoardAPITestBase):

    def test_create_shift_with_local_times(self):
        Shift.objects.all().delete()
        response = self.post_json("/api/shifts", {
            "startTime": "2024-01-01T08:30:00",
            "endTime": "2024-01-01T16:30:00",
            "employeeId": self.bob.id,
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["employeeId"], self.bob.id)

        summary = self.client.get("/api/summary").json()
        self.assertEqual(summary["Monday"], {"dayShift": ["Bob"], "nightShift": ["Bob"]})

        grid = self.client.get("/api/shifts/by-employee-weekly").json()
        self.assertEqual(grid, {"Bob": {
            "Monday": "8:30 AM–4:30 PM",
            "Tuesday": "",
            "Wednesday": "",
            "Thursday": "",
            "Friday": "",
            "Saturday": "",
            "Sunday": "",
        }})

    def test_create_shift_for_missing_employee(self):
        response = self.post_json("/api/shifts", {
            "startTime": "2024-01-01T08:00:00",
            "endTime": "2024-01-01T12:00:00",
            "employeeId": 9999,
        })

        self.assertEqual(response.status_code, 404)
        self.assertEqual(Shift.objects.count(), 4)

    def test_create_shift_requires_fields(self):
        response = self.post_json("/api/shifts", {"startTime": "2024-01-01T08:00:00"})
        self.assertEqual(response.status_code, 422)

    def test_list_shifts_includes_employee(self):
        data = self.client.get("/api/shifts").json()

        self.assertEqual(len(data), 4)
        first = data[0]
        self.assertEqual(first["employee"], {"id": self.bob.id, "name": "Bob", "role": "Stocker"})
        self.assertEqual(first["employeeId"], self.bob.id)
        self.assertIn("startTime", first)
        self.assertIn("endTime", first)

    def test_get_shift(self):
        shift = Shift.objects.filter(employee=self.bob).first()

        response = self.client.get(f"/api/shifts/{shift.id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["employee"]["name"], "Bob")
        self.assertEqual(self.client.get("/api/shifts/9999").status_code, 404)

    def test_update_shift_moves_it(self):
        shift = Shift.objects.filter(employee=self.bob).first()

        response = self.put_json(f"/api/shifts/{shift.id}", {
            "startTime": "2024-01-02T17:00:00",
            "endTime": "2024-01-02T20:00:00",
            "employeeId": self.idle.id,
        })

        self.assertEqual(response.status_code, 200)
        summary = self.client.get("/api/summary").json()
        self.assertEqual(summary["Monday"]["nightShift"], [])
        self.assertEqual(summary["Tuesday"]["nightShift"], ["Idle"])

    def test_update_shift_partial(self):
        shift = Shift.objects.filter(employee=self.bob).first()

        response = self.put_json(f"/api/shifts/{shift.id}", {"endTime": "2024-01-01T15:00:00"})

        self.assertEqual(response.status_code, 200)
        shift.refresh_from_db()
        self.assertEqual(shift.employee_id, self.bob.id)
        self.assertEqual(shift.start_time, local(2024, 1, 1, 8, 30))
        self.assertEqual(shift.end_time, local(2024, 1, 1, 15))

    def test_delete_shift(self):
        shift = Shift.objects.filter(employee=self.bob).first()

        response = self.client.delete(f"/api/shifts/{shift.id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["id"], shift.id)
        self.assertFalse(Shift.objects.filter(id=shift.id).exists())
        self.assertEqual(self.client.delete(f"/api/shifts/{shift.id}").status_code, 404)


class LoadSeedDataCommandTest(TestCase):

    def test_loads_seed_files(self):
        out = StringIO()
        call_command("load_seed_data", dir=str(settings.BASE_DIR / "seed_data"), stdout=out)

        self.assertEqual(Employee.objects.count(), 4)
        self.assertEqual(Shift.objects.count(), 7)
        self.assertIn("Loaded", out.getvalue())

        summary = WeeklySummaryService.get_weekly_summary()
        self.assertEqual(summary["Monday"].day_shift, ["Alice", "Bob"])

    def test_missing_directory(self):
        from django.core.management.base import CommandError

        with self.assertRaises(CommandError):
            call_command("load_seed_data", dir="/nonexistent/seed", stdout=StringIO())


class CorsHeadersTest(ShiftBoardAPITestBase):
    """Test that browser frontends on other origins can read the API."""

    def test_summary_allows_any_origin(self):
        response = self.client.get("/api/summary", HTTP_ORIGIN="http://localhost:3000")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Access-Control-Allow-Origin"], "*")

    def test_csv_export_exposes_filename(self):
        response = self.client.get("/api/shifts/export-weekly.csv", HTTP_ORIGIN="http://localhost:3000")

        self.assertEqual(response["Access-Control-Allow-Origin"], "*")
        self.assertIn("Content-Disposition", response["Access-Control-Expose-Headers"])

    def test_preflight_request(self):
        response = self.client.options(
            "/api/shifts",
            HTTP_ORIGIN="http://localhost:3000",
            HTTP_ACCESS_CONTROL_REQUEST_METHOD="POST",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Access-Control-Allow-Origin"], "*")


class SettingsDefaultsTest(SimpleTestCase):
    """Test the environment defaults of the settings module."""

    def load_settings(self, environ):
        """Return (DEBUG, CORS_ALLOW_ALL_ORIGINS) as read under the given environment."""
        from shiftboard import settings as settings_module

        try:
            with mock.patch.dict(os.environ, environ, clear=True):
                module = importlib.reload(settings_module)
                return module.DEBUG, module.CORS_ALLOW_ALL_ORIGINS
        finally:
            importlib.reload(settings_module)

    def test_debug_off_by_default(self):
        debug, allow_all_origins = self.load_settings({})

        self.assertFalse(debug)
        self.assertTrue(allow_all_origins)

    def test_debug_enabled_from_environment(self):
        debug, allow_all_origins = self.load_settings({"DJANGO_DEBUG": "1", "CORS_ALLOW_ALL_ORIGINS": "0"})

        self.assertTrue(debug)
        self.assertFalse(allow_all_origins)
