class ShiftBoardError(Exception):
    """Base error for the shift board services."""


class EmployeeHasShiftsError(ShiftBoardError):
    """Raised when deleting an employee that still owns shifts."""

    def __init__(self, employee_id: int, shift_count: int):
        self.employee_id = employee_id
        self.shift_count = shift_count
        super().__init__(
            f"Employee {employee_id} still has {shift_count} shift(s); delete them first"
        )
