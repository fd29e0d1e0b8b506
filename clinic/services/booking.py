"""
Appointment availability and booking.

``BookingService`` is constructed once with its repositories, password
hasher and configuration (see :func:`build_booking_service`) and then
shared by the views and management commands.  It keeps no state of its
own between calls: availability is recomputed from the store each time.

Booking runs as one database transaction.  The doctor row is locked
first so that concurrent bookings for the same doctor queue up behind
each other; the slot is then re-checked against the live appointments
and, if the caller named a patient instead of referencing one, a
placeholder user and patient are created before the appointment is
inserted.  A failure at any step rolls the whole unit back.  The
partial unique index on (doctor, date, time) is the last line of
defence and surfaces as ``SlotConflict``.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Callable, NamedTuple, Optional

from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.db import DatabaseError, transaction

from clinic.exceptions import (
    BookingValidationError,
    DependencyError,
    InvalidTransition,
    ResourceNotFound,
    SlotConflict,
)
from clinic.models import Appointment, Patient, User
from clinic.repositories import (
    AppointmentRepository,
    DoctorRepository,
    DuplicateEmail,
    PatientRepository,
    ScheduleRepository,
    UserRepository,
)
from clinic.services.audit import log_action
from clinic.services.lifecycle import CANCELLED, NO_SHOW, ensure_transition
from clinic.services.patients import clean_text, placeholder_email, temporary_password
from clinic.services.timeslots import (
    compute_available_slots,
    day_of_week,
    fits_window,
    is_free,
    parse_day,
    parse_hhmm,
    to_minutes,
)

logger = logging.getLogger(__name__)

APPOINTMENT_TYPES = frozenset(k for k, _ in Appointment.TYPE_CHOICES)


@dataclass(frozen=True)
class BookingConfig:
    slot_minutes: int = 30
    default_duration: int = 30
    min_duration: int = 15
    max_duration: int = 180
    placeholder_domain: str = 'patients.invalid'
    email_attempts: int = 3

    @classmethod
    def from_settings(cls) -> 'BookingConfig':
        return cls(
            slot_minutes=settings.BOOKING_SLOT_MINUTES,
            default_duration=settings.BOOKING_DEFAULT_DURATION,
            min_duration=settings.BOOKING_MIN_DURATION,
            max_duration=settings.BOOKING_MAX_DURATION,
            placeholder_domain=settings.PLACEHOLDER_EMAIL_DOMAIN,
            email_attempts=settings.PLACEHOLDER_EMAIL_ATTEMPTS,
        )


@dataclass
class BookingRequest:
    doctor_id: Any
    date: Any
    time: Any
    duration: Optional[int] = None
    type: str = 'CONSULTATION'
    patient_id: Any = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    notes: Optional[str] = None
    symptoms: Optional[str] = None


@dataclass
class BookingResult:
    appointment: Appointment
    patient_created: bool


class Availability(NamedTuple):
    slots: list
    windows: list


class _ValidatedBooking(NamedTuple):
    doctor_id: Any
    day: datetime.date
    time: datetime.time
    duration: int
    type: str
    patient_id: Any
    first_name: Optional[str]
    last_name: Optional[str]
    notes: Optional[str]
    symptoms: Optional[str]


class BookingService:
    def __init__(self, *, doctors: DoctorRepository, schedules: ScheduleRepository,
                 appointments: AppointmentRepository, patients: PatientRepository,
                 users: UserRepository, hasher: Callable[[str], str], config: BookingConfig):
        self.doctors = doctors
        self.schedules = schedules
        self.appointments = appointments
        self.patients = patients
        self.users = users
        self.hasher = hasher
        self.config = config

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------
    def availability(self, doctor_id, day) -> Availability:
        """Return free slot start times plus the windows they came from."""
        day = parse_day(day)
        try:
            doctor = self.doctors.get(doctor_id)
            if not doctor.is_available:
                return Availability([], [])
            windows = self.schedules.get_active_windows(doctor.pk, day_of_week(day))
            if not windows:
                return Availability([], [])
            booked = self.appointments.list_for_doctor_on_date(doctor.pk, day)
        except DatabaseError as exc:
            raise self._dependency_failure('availability', exc)
        return Availability(compute_available_slots(windows, booked, self.config.slot_minutes), windows)

    def get_available_slots(self, doctor_id, day) -> list[str]:
        return self.availability(doctor_id, day).slots

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------
    def book_appointment(self, request: BookingRequest, *, booked_by: Optional[User]) -> BookingResult:
        params = self._validate(request)
        try:
            with transaction.atomic():
                result = self._book(params, booked_by)
        except SlotConflict:
            logger.info('Slot conflict for doctor %s on %s at %s', params.doctor_id, params.day, params.time)
            raise
        except DatabaseError as exc:
            raise self._dependency_failure('book_appointment', exc)
        logger.info(
            'Appointment %s booked for doctor %s (patient_created=%s)',
            result.appointment.pk, result.appointment.doctor_id, result.patient_created,
        )
        return result

    def _validate(self, request: BookingRequest) -> _ValidatedBooking:
        if request.doctor_id in (None, ''):
            raise BookingValidationError('doctorId is required.')
        if request.date in (None, ''):
            raise BookingValidationError('date is required.')
        if request.time in (None, ''):
            raise BookingValidationError('time is required.')
        day = parse_day(request.date)
        time = parse_hhmm(request.time)

        duration = request.duration if request.duration not in (None, '') else self.config.default_duration
        try:
            duration = int(duration)
        except (TypeError, ValueError):
            raise BookingValidationError('duration must be a whole number of minutes.') from None
        if not self.config.min_duration <= duration <= self.config.max_duration:
            raise BookingValidationError(
                f'duration must be between {self.config.min_duration} and {self.config.max_duration} minutes.'
            )

        appt_type = (request.type or 'CONSULTATION').upper()
        if appt_type not in APPOINTMENT_TYPES:
            raise BookingValidationError(f'Unknown appointment type "{request.type}".')

        first_name = clean_text(request.first_name)
        last_name = clean_text(request.last_name)
        has_patient = request.patient_id not in (None, '')
        if has_patient and (first_name or last_name):
            raise BookingValidationError('Provide either patientId or firstName/lastName, not both.')
        if not has_patient and not (first_name and last_name):
            raise BookingValidationError('Either patientId or both firstName and lastName must be provided.')

        return _ValidatedBooking(
            doctor_id=request.doctor_id,
            day=day,
            time=time,
            duration=duration,
            type=appt_type,
            patient_id=request.patient_id if has_patient else None,
            first_name=first_name,
            last_name=last_name,
            notes=clean_text(request.notes),
            symptoms=clean_text(request.symptoms),
        )

    def _book(self, params: _ValidatedBooking, booked_by: Optional[User]) -> BookingResult:
        doctor = self.doctors.get(params.doctor_id, for_update=True)
        if not doctor.is_available:
            raise BookingValidationError('Doctor is not accepting appointments.')

        start = to_minutes(params.time)
        windows = self.schedules.get_active_windows(doctor.pk, day_of_week(params.day))
        if not fits_window(start, params.duration, windows):
            raise BookingValidationError('Doctor is not available at the requested time.')
        booked = self.appointments.list_for_doctor_on_date(doctor.pk, params.day)
        if not is_free(start, params.duration, booked):
            raise SlotConflict()

        patient_created = False
        if params.patient_id is not None:
            if not self.patients.exists(params.patient_id):
                raise ResourceNotFound('Patient not found.')
            patient_id = int(params.patient_id)
        else:
            patient = self._create_placeholder(params.first_name, params.last_name, booked_by)
            patient_id = patient.pk
            patient_created = True

        appointment = self.appointments.insert(
            patient_id=patient_id,
            first_name=params.first_name,
            last_name=params.last_name,
            doctor_id=doctor.pk,
            booked_by=booked_by,
            date=params.day,
            time=params.time,
            duration=params.duration,
            type=params.type,
            status=Appointment.STATUS_SCHEDULED,
            notes=params.notes,
            symptoms=params.symptoms,
        )
        log_action(user=booked_by, action='appointment_book', object_type='appointment', object_id=appointment.pk,
                   detail={'doctorId': doctor.pk, 'patientId': patient_id, 'patientCreated': patient_created})
        return BookingResult(self.appointments.get(appointment.pk), patient_created)

    def _create_placeholder(self, first_name: str, last_name: str, booked_by: Optional[User]) -> Patient:
        password_hash = self.hasher(temporary_password())
        attempts = self.config.email_attempts
        user = None
        for attempt in range(1, attempts + 1):
            try:
                user = self.users.create(
                    email=placeholder_email(first_name, last_name, self.config.placeholder_domain),
                    password_hash=password_hash,
                    first_name=first_name,
                    last_name=last_name,
                    role=User.ROLE_PATIENT,
                )
                break
            except DuplicateEmail:
                logger.warning('Placeholder email collision (attempt %s/%s)', attempt, attempts)
        if user is None:
            logger.error('Could not allocate a placeholder email after %s attempts', attempts)
            raise DependencyError()

        patient = self.patients.create(user, kind=Patient.KIND_PLACEHOLDER, gender='OTHER')
        log_action(user=booked_by, action='patient_placeholder_create', object_type='patient', object_id=patient.pk)
        logger.info('Placeholder patient %s created (user %s)', patient.pk, user.pk)
        return patient

    # ------------------------------------------------------------------
    # Status lifecycle
    # ------------------------------------------------------------------
    def transition_status(self, appointment_id, new_status: str, *, operator: Optional[User] = None,
                          reason: str = '') -> Appointment:
        new_status = (new_status or '').strip().upper()
        try:
            with transaction.atomic():
                appointment = self.appointments.get_for_update(appointment_id)
                old_status = appointment.status
                ensure_transition(old_status, new_status)
                self.appointments.set_status(appointment, new_status, operator=operator, reason=reason)
        except DatabaseError as exc:
            raise self._dependency_failure('transition_status', exc)
        logger.info('Appointment %s: %s -> %s', appointment.pk, old_status, new_status)
        return self.appointments.get(appointment.pk)

    def cancel_appointment(self, appointment_id, *, operator: Optional[User] = None,
                           reason: str = 'Cancelled') -> Appointment:
        return self.transition_status(appointment_id, CANCELLED, operator=operator, reason=reason)

    def sweep_no_shows(self, cutoff_day: datetime.date, cutoff_time: Optional[datetime.time] = None,
                       *, operator: Optional[User] = None) -> list[int]:
        """Mark every open appointment starting before the cutoff as NO_SHOW."""
        marked = []
        for appointment_id in self.appointments.overdue_ids(cutoff_day, cutoff_time):
            try:
                self.transition_status(appointment_id, NO_SHOW, operator=operator, reason='No check-in before slot time')
            except (InvalidTransition, ResourceNotFound):
                # changed or removed since the overdue query ran
                logger.info('No-show sweep skipped appointment %s', appointment_id)
                continue
            marked.append(appointment_id)
        logger.info('No-show sweep before %s %s marked %s appointment(s)', cutoff_day, cutoff_time or '', len(marked))
        return marked

    def _dependency_failure(self, operation: str, exc: Exception) -> DependencyError:
        logger.error('Store failure during %s', operation, exc_info=exc)
        return DependencyError()


def build_booking_service() -> BookingService:
    """Wire the ORM repositories, Django's password hasher and settings."""
    return BookingService(
        doctors=DoctorRepository(),
        schedules=ScheduleRepository(),
        appointments=AppointmentRepository(),
        patients=PatientRepository(),
        users=UserRepository(),
        hasher=make_password,
        config=BookingConfig.from_settings(),
    )
