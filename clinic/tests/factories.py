"""Model factories shared by the test modules."""
import datetime

from clinic.models import Appointment, Doctor, DoctorSchedule, Patient, User
from clinic.services.timeslots import parse_hhmm

# 2030-01-06 is a Sunday
SUNDAY = datetime.date(2030, 1, 6)
MONDAY = datetime.date(2030, 1, 7)


def create_user(email, role, first_name='Test', last_name='User', password='S3cure-pass!'):
    return User.objects.create_user(
        username=email, email=email, password=password,
        first_name=first_name, last_name=last_name, role=role,
    )


def create_doctor(email='doc@clinic.test', license_number='LIC-1', *, windows=None, is_available=True):
    user = create_user(email, User.ROLE_DOCTOR, 'Gregory', 'House')
    doctor = Doctor.objects.create(
        user=user, license_number=license_number, specialization='Diagnostics', is_available=is_available,
    )
    # Monday 09:00-12:00 by default
    for dow, start, end in windows if windows is not None else [(1, '09:00', '12:00')]:
        DoctorSchedule.objects.create(
            doctor=doctor, day_of_week=dow, start_time=parse_hhmm(start), end_time=parse_hhmm(end),
        )
    return doctor


def create_patient(email='pat@clinic.test', first_name='Jane', last_name='Doe'):
    user = create_user(email, User.ROLE_PATIENT, first_name, last_name)
    return Patient.objects.create(user=user, kind=Patient.KIND_FULL, date_of_birth=datetime.date(1990, 5, 1))


def create_appointment(doctor, time, *, day=MONDAY, duration=30, status=Appointment.STATUS_SCHEDULED, patient=None):
    return Appointment.objects.create(
        doctor=doctor, patient=patient,
        first_name=None if patient else 'Walk', last_name=None if patient else 'In',
        date=day, time=parse_hhmm(time), duration=duration, status=status,
    )


