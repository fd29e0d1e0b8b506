import datetime

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from clinic.models import Doctor, DoctorSchedule, User

STAFF_USERS = [
    ("admin@clinic.local", "Clinic", "Admin", User.ROLE_ADMIN),
    ("frontdesk@clinic.local", "Front", "Desk", User.ROLE_STAFF),
]

DOCTORS = [
    ("asha.rao@clinic.local", "Asha", "Rao", "LIC-1001", "General Medicine", "General"),
    ("vikram.mehta@clinic.local", "Vikram", "Mehta", "LIC-1002", "Cardiology", "Cardiology"),
    ("nina.das@clinic.local", "Nina", "Das", "LIC-1003", "Dermatology", "Dermatology"),
]

# Monday..Friday, 0=Sunday
WEEKDAYS = (1, 2, 3, 4, 5)
DAY_START = datetime.time(9, 0)
DAY_END = datetime.time(17, 0)


class Command(BaseCommand):
    help = "Create demo staff, doctors and Mon-Fri 09:00-17:00 schedules (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="clinic-demo-2024", help="Password for newly created users.")

    @transaction.atomic
    def handle(self, *args, **opts):
        password = make_password(opts["password"])

        for email, first, last, role in STAFF_USERS:
            user = self._ensure_user(email, first, last, role, password)
            if role == User.ROLE_ADMIN and not user.is_superuser:
                user.is_staff = user.is_superuser = True
                user.save(update_fields=["is_staff", "is_superuser"])
            self.stdout.write(self.style.SUCCESS(f"ok: {email} ({role})"))

        for email, first, last, license_number, specialization, department in DOCTORS:
            user = self._ensure_user(email, first, last, User.ROLE_DOCTOR, password)
            doctor, _ = Doctor.objects.get_or_create(
                user=user,
                defaults={
                    "license_number": license_number,
                    "specialization": specialization,
                    "department": department,
                },
            )
            for dow in WEEKDAYS:
                DoctorSchedule.objects.update_or_create(
                    doctor=doctor, day_of_week=dow,
                    defaults={"start_time": DAY_START, "end_time": DAY_END, "is_active": True},
                )
            self.stdout.write(self.style.SUCCESS(f"ok: doctor {doctor.pk} {specialization}"))

        self.stdout.write(self.style.SUCCESS("Clinic demo data ensured."))

    def _ensure_user(self, email, first, last, role, password_hash):
        user, created = User.objects.get_or_create(
            username=email,
            defaults={
                "email": email,
                "first_name": first,
                "last_name": last,
                "role": role,
                "password": password_hash,
                "is_active": True,
            },
        )
        if not created and user.role != role:
            user.role = role
            user.save(update_fields=["role"])
        return user
