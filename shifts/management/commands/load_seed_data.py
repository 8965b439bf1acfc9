import json
from pathlib import Path
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from shifts.models import Employee, Shift


class Command(BaseCommand):
    help = "Load demo employees and shifts from JSON files in seed_data/."

    def add_arguments(self, parser):
        parser.add_argument(
            "--truncate",
            action="store_true",
            help="Delete existing data before loading.",
        )
        parser.add_argument(
            "--dir",
            default="seed_data",
            help="Directory containing JSON files (default: seed_data).",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        base_dir = Path(options["dir"]).resolve()

        # 1. optional clean, shifts first since employees are protected
        if options["truncate"]:
            self.stdout.write("Deleting existing records…")
            Shift.objects.all().delete()
            Employee.objects.all().delete()

        # 2. load json helpers
        def load_json(name):
            path = base_dir / f"{name}.json"
            if not path.exists():
                raise CommandError(f"{path} not found")
            with open(path) as f:
                return json.load(f)

        def load_datetime(value):
            parsed = parse_datetime(value)
            if parsed is None:
                raise CommandError(f"Invalid datetime: {value!r}")
            # naive values are local wall-clock times
            return timezone.make_aware(parsed) if timezone.is_naive(parsed) else parsed

        employees = load_json("employees")
        shifts    = load_json("shifts")

        # 3. create records (bulk for speed)
        Employee.objects.bulk_create(
            [
                Employee(id=e["id"], name=e["name"], role=e.get("role", ""))
                for e in employees
            ],
            ignore_conflicts=True,
        )
        Shift.objects.bulk_create(
            [
                Shift(
                    id=s["id"],
                    employee_id=s["employee_id"],
                    start_time=load_datetime(s["start_time"]),
                    end_time=load_datetime(s["end_time"]),
                )
                for s in shifts
            ],
            ignore_conflicts=True,
        )

        self.stdout.write(self.style.SUCCESS(
            f"Loaded {len(employees)} employees and {len(shifts)} shifts"
        ))
