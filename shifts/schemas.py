from datetime import datetime
from typing import Optional

from ninja import Schema
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel, to_pascal


class CamelSchema(Schema):
    """Schema serialized with camelCase keys (``startTime``, ``dayShift``...)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmployeeSchema(CamelSchema):
    id: int
    name: str
    role: str


class EmployeeCreateSchema(CamelSchema):
    name: str
    role: str = ""


class EmployeeUpdateSchema(CamelSchema):
    """Only the fields present in the request body are written."""
    name: Optional[str] = None
    role: Optional[str] = None


class ShiftSchema(CamelSchema):
    id: int
    start_time: datetime
    end_time: datetime
    employee_id: int


class ShiftWithEmployeeSchema(ShiftSchema):
    """Shift joined with its owning employee."""
    employee: EmployeeSchema


class ShiftCreateSchema(CamelSchema):
    start_time: datetime
    end_time: datetime
    employee_id: int


class ShiftUpdateSchema(CamelSchema):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    employee_id: Optional[int] = None


class WeeklySummaryEntrySchema(CamelSchema):
    """Employees covering the day and night windows on one weekday."""
    day_shift: list[str]
    night_shift: list[str]


class WeeklyGridRowSchema(Schema):
    """One employee's week, Monday first. Each slot is a time range or ''."""
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    monday: str = ""
    tuesday: str = ""
    wednesday: str = ""
    thursday: str = ""
    friday: str = ""
    saturday: str = ""
    sunday: str = ""


class WeeklyExportRowSchema(Schema):
    """Weekly grid row flattened for table/CSV export, Employee column first."""
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    employee: str
    monday: str = ""
    tuesday: str = ""
    wednesday: str = ""
    thursday: str = ""
    friday: str = ""
    saturday: str = ""
    sunday: str = ""


class ShiftExportRowSchema(CamelSchema):
    """Single shift rendered with local display timestamps."""
    name: str
    start_time: str
    end_time: str
    day_of_week: str


class ErrorSchema(Schema):
    detail: str
