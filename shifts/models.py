from django.db import models

class Employee(models.Model):
    id   = models.BigAutoField(primary_key=True)
    name = models.CharField(max_length=100)
    role = models.CharField(max_length=100, blank=True, default="")

    def __str__(self):
        return self.name

class Shift(models.Model):
    id         = models.BigAutoField(primary_key=True)
    employee   = models.ForeignKey(
        Employee,
        on_delete=models.PROTECT,
        related_name="shifts"
    )
    start_time = models.DateTimeField()
    end_time   = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=["start_time"], name="shift_start_time_idx"),
            models.Index(fields=["employee", "start_time"], name="shift_employee_start_idx"),
        ]

    def __str__(self):
        return f"{self.employee_id}: {self.start_time} - {self.end_time}"
