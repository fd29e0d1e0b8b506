"""
ORM-backed collaborators for the booking service.

Each repository wraps one aggregate and hides the query details from
the service so that the service can be constructed with alternative
implementations in tests.  Store-level uniqueness failures are
translated here: the appointment backstop becomes ``SlotConflict`` and
a taken email becomes ``DuplicateEmail``.  Anything else propagates.
"""
from __future__ import annotations

import datetime
import logging
from typing import Iterable, Optional

from django.db import IntegrityError, transaction
from django.db.models import Q

from clinic.exceptions import ResourceNotFound, SlotConflict
from clinic.models import Appointment, AppointmentTransition, Doctor, DoctorSchedule, Patient, User
from clinic.services.timeslots import BookedInterval, ScheduleWindow

logger = logging.getLogger(__name__)


class DuplicateEmail(Exception):
    """Raised when a user insert collides with an existing email."""


def _pk(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DoctorRepository:
    def get(self, doctor_id, *, for_update: bool = False) -> Doctor:
        pk = _pk(doctor_id)
        qs = Doctor.objects.select_related('user')
        if for_update:
            # lock only the doctor row; nullable joins cannot be locked on every backend
            qs = Doctor.objects.select_for_update()
        doctor = qs.filter(pk=pk).first() if pk is not None else None
        if doctor is None:
            raise ResourceNotFound('Doctor not found.')
        return doctor


class ScheduleRepository:
    def get_active_windows(self, doctor_id: int, day_of_week: int) -> list[ScheduleWindow]:
        rows = DoctorSchedule.objects.filter(
            doctor_id=doctor_id, day_of_week=day_of_week, is_active=True
        ).order_by('start_time')
        return [ScheduleWindow(r.start_time, r.end_time) for r in rows]

    def list_for_doctor(self, doctor_id: int):
        return DoctorSchedule.objects.filter(doctor_id=doctor_id).order_by('day_of_week')

    @transaction.atomic
    def replace_for_doctor(self, doctor_id: int, windows: Iterable[dict]) -> list[DoctorSchedule]:
        DoctorSchedule.objects.filter(doctor_id=doctor_id).delete()
        DoctorSchedule.objects.bulk_create([DoctorSchedule(doctor_id=doctor_id, **w) for w in windows])
        return list(self.list_for_doctor(doctor_id))


class AppointmentRepository:
    def list_for_doctor_on_date(self, doctor_id: int, day: datetime.date) -> list[BookedInterval]:
        rows = (
            Appointment.objects.filter(doctor_id=doctor_id, date=day)
            .exclude(status=Appointment.STATUS_CANCELLED)
            .values_list('time', 'duration', 'status')
        )
        return [BookedInterval(t, d, s) for t, d, s in rows]

    def slot_taken(self, doctor_id: int, day: datetime.date, time: datetime.time) -> bool:
        return (
            Appointment.objects.filter(doctor_id=doctor_id, date=day, time=time)
            .exclude(status=Appointment.STATUS_CANCELLED)
            .exists()
        )

    def insert(self, **fields) -> Appointment:
        try:
            with transaction.atomic():
                return Appointment.objects.create(**fields)
        except IntegrityError as exc:
            if self.slot_taken(fields['doctor_id'], fields['date'], fields['time']):
                raise SlotConflict() from exc
            raise

    def get(self, appointment_id) -> Appointment:
        pk = _pk(appointment_id)
        appt = (
            Appointment.objects.select_related('doctor__user', 'patient__user', 'booked_by')
            .filter(pk=pk).first() if pk is not None else None
        )
        if appt is None:
            raise ResourceNotFound('Appointment not found.')
        return appt

    def get_for_update(self, appointment_id) -> Appointment:
        pk = _pk(appointment_id)
        appt = Appointment.objects.select_for_update().filter(pk=pk).first() if pk is not None else None
        if appt is None:
            raise ResourceNotFound('Appointment not found.')
        return appt

    def overdue_ids(self, day: datetime.date, time: Optional[datetime.time] = None) -> list[int]:
        """Open appointments that start before ``day`` (at ``time`` when given)."""
        before = Q(date__lt=day)
        if time is not None:
            before |= Q(date=day, time__lt=time)
        return list(
            Appointment.objects.filter(before)
            .filter(status__in=[Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED])
            .order_by('date', 'time')
            .values_list('pk', flat=True)
        )

    def set_status(self, appointment: Appointment, new_status: str, *, operator=None, reason: str = '') -> Appointment:
        old_status = appointment.status
        appointment.status = new_status
        appointment.save(update_fields=['status', 'updated_at'])
        AppointmentTransition.objects.create(
            appointment=appointment,
            from_status=old_status,
            to_status=new_status,
            operator=operator if getattr(operator, 'pk', None) else None,
            reason=reason or '',
        )
        return appointment


class PatientRepository:
    def create(self, user: User, *, kind: str = Patient.KIND_FULL, **defaults) -> Patient:
        return Patient.objects.create(user=user, kind=kind, **defaults)

    def exists(self, patient_id) -> bool:
        pk = _pk(patient_id)
        return pk is not None and Patient.objects.filter(pk=pk).exists()

    def get(self, patient_id) -> Patient:
        pk = _pk(patient_id)
        patient = Patient.objects.select_related('user').filter(pk=pk).first() if pk is not None else None
        if patient is None:
            raise ResourceNotFound('Patient not found.')
        return patient


class UserRepository:
    def create(self, *, email: str, password_hash: str, first_name: str, last_name: str,
               role: str, phone: Optional[str] = None) -> User:
        user = User(
            username=email,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone=phone,
        )
        # already hashed; bypass set_password
        user.password = password_hash
        try:
            with transaction.atomic():
                user.save()
        except IntegrityError as exc:
            if User.objects.filter(Q(email__iexact=email) | Q(username=email)).exists():
                raise DuplicateEmail(email) from exc
            raise
        return user
