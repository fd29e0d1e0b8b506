"""
Booking service tests.

These run against the real ORM repositories.  Collaborators are swapped
for subclasses where a test needs the store to misbehave: a stale
availability read, a failing insert, or colliding placeholder emails.
"""
import datetime
import threading
import time

import pytest
from django.db import DatabaseError, connections

from clinic.exceptions import (
    GENERIC_FAILURE_MESSAGE,
    BookingValidationError,
    DependencyError,
    InvalidTransition,
    ResourceNotFound,
    SlotConflict,
)
from clinic.models import Appointment, AppointmentTransition, AuditEvent, Patient, User
from clinic.repositories import AppointmentRepository
from clinic.services import booking as booking_module
from clinic.services.booking import BookingRequest, BookingService
from clinic.tests.factories import MONDAY, SUNDAY, create_appointment, create_doctor

pytestmark = pytest.mark.django_db


def by_name(doctor, time='10:00', **kwargs):
    fields = dict(doctor_id=doctor.pk, date=MONDAY.isoformat(), time=time, first_name='John', last_name='Smith')
    fields.update(kwargs)
    return BookingRequest(**fields)


def rebuild(service, **overrides):
    deps = dict(
        doctors=service.doctors, schedules=service.schedules, appointments=service.appointments,
        patients=service.patients, users=service.users, hasher=service.hasher, config=service.config,
    )
    deps.update(overrides)
    return BookingService(**deps)


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------
def test_slots_for_empty_day(service, doctor):
    assert service.get_available_slots(doctor.pk, MONDAY) == [
        '09:00', '09:30', '10:00', '10:30', '11:00', '11:30',
    ]


def test_slots_accept_iso_string(service, doctor):
    assert service.get_available_slots(doctor.pk, '2030-01-07') == service.get_available_slots(doctor.pk, MONDAY)


def test_cancelled_appointments_do_not_block(service, doctor):
    create_appointment(doctor, '10:00', status=Appointment.STATUS_CANCELLED)
    create_appointment(doctor, '11:00', status=Appointment.STATUS_NO_SHOW)
    slots = service.get_available_slots(doctor.pk, MONDAY)
    assert '10:00' in slots
    assert '11:00' not in slots


def test_confirmed_appointment_blocks_its_slot(service, doctor):
    create_appointment(doctor, '09:30', status=Appointment.STATUS_CONFIRMED)
    assert service.get_available_slots(doctor.pk, MONDAY) == ['09:00', '10:00', '10:30', '11:00', '11:30']


def test_day_without_window_has_no_slots(service, doctor):
    assert service.get_available_slots(doctor.pk, SUNDAY) == []


def test_unavailable_doctor_has_no_slots(service):
    doctor = create_doctor(is_available=False)
    assert service.get_available_slots(doctor.pk, MONDAY) == []


@pytest.mark.parametrize('doctor_id', [987654, 'abc', None])
def test_unknown_doctor_is_not_found(service, doctor_id):
    with pytest.raises(ResourceNotFound):
        service.get_available_slots(doctor_id, MONDAY)


def test_malformed_date_is_rejected(service, doctor):
    with pytest.raises(BookingValidationError):
        service.get_available_slots(doctor.pk, '2030-13-01')


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------
def test_booking_by_name_creates_placeholder_patient(service, doctor, staff):
    result = service.book_appointment(by_name(doctor), booked_by=staff)

    assert result.patient_created is True
    appt = result.appointment
    assert appt.status == Appointment.STATUS_SCHEDULED
    assert appt.time == datetime.time(10, 0)
    assert appt.duration == 30
    assert appt.booked_by == staff
    assert (appt.first_name, appt.last_name) == ('John', 'Smith')

    patient = appt.patient
    assert patient.kind == Patient.KIND_PLACEHOLDER
    assert patient.date_of_birth is None
    assert patient.gender == 'OTHER'
    user = patient.user
    assert user.role == User.ROLE_PATIENT
    assert user.email.startswith('john.smith.')
    assert user.email.endswith('@patients.invalid')
    assert user.password.startswith('bcrypt_sha256$')
    assert AuditEvent.objects.filter(action='appointment_book', object_id=appt.pk).exists()


def test_identical_names_get_distinct_placeholders(service, doctor, staff):
    first = service.book_appointment(by_name(doctor, time='09:00'), booked_by=staff).appointment
    second = service.book_appointment(by_name(doctor, time='09:30'), booked_by=staff).appointment
    assert first.patient_id != second.patient_id
    assert first.patient.user.email != second.patient.user.email


def test_booking_for_existing_patient(service, doctor, staff, patient):
    before = Patient.objects.count()
    result = service.book_appointment(
        by_name(doctor, first_name=None, last_name=None, patient_id=patient.pk), booked_by=staff,
    )
    assert result.patient_created is False
    assert result.appointment.patient_id == patient.pk
    assert Patient.objects.count() == before


def test_booked_slot_disappears_from_availability(service, doctor, staff):
    service.book_appointment(by_name(doctor, time='09:30', duration=60), booked_by=staff)
    assert service.get_available_slots(doctor.pk, MONDAY) == ['09:00', '10:30', '11:00', '11:30']


def test_default_duration_comes_from_config(service, doctor, staff):
    result = service.book_appointment(by_name(doctor, duration=None), booked_by=staff)
    assert result.appointment.duration == service.config.default_duration


@pytest.mark.parametrize('names', [
    {'first_name': None, 'last_name': None},
    {'first_name': 'John', 'last_name': None},
    {'first_name': '   ', 'last_name': 'Smith'},
])
def test_missing_identity_is_rejected_without_side_effects(service, doctor, staff, names):
    users, patients = User.objects.count(), Patient.objects.count()
    with pytest.raises(BookingValidationError):
        service.book_appointment(by_name(doctor, **names), booked_by=staff)
    assert User.objects.count() == users
    assert Patient.objects.count() == patients
    assert not Appointment.objects.exists()


def test_patient_id_and_names_together_are_rejected(service, doctor, staff, patient):
    with pytest.raises(BookingValidationError):
        service.book_appointment(by_name(doctor, patient_id=patient.pk), booked_by=staff)


def test_unknown_patient_is_not_found(service, doctor, staff):
    with pytest.raises(ResourceNotFound):
        service.book_appointment(
            by_name(doctor, first_name=None, last_name=None, patient_id=424242), booked_by=staff,
        )
    assert not Appointment.objects.exists()


def test_unknown_doctor_is_not_found_before_patient_creation(service, staff):
    with pytest.raises(ResourceNotFound):
        service.book_appointment(BookingRequest(
            doctor_id=999999, date=MONDAY, time='10:00', first_name='John', last_name='Smith',
        ), booked_by=staff)
    assert not Patient.objects.exists()


@pytest.mark.parametrize('kwargs', [
    {'time': None},
    {'time': '25:00'},
    {'date': 'tomorrow'},
    {'duration': 10},
    {'duration': 181},
    {'duration': 'long'},
    {'type': 'MASSAGE'},
])
def test_invalid_fields_are_rejected(service, doctor, staff, kwargs):
    with pytest.raises(BookingValidationError):
        service.book_appointment(by_name(doctor, **kwargs), booked_by=staff)


@pytest.mark.parametrize('time, duration', [('08:30', 30), ('11:45', 30), ('11:00', 90)])
def test_outside_schedule_window_is_rejected(service, doctor, staff, time, duration):
    with pytest.raises(BookingValidationError):
        service.book_appointment(by_name(doctor, time=time, duration=duration), booked_by=staff)


def test_unavailable_doctor_cannot_be_booked(service, staff):
    doctor = create_doctor(is_available=False)
    with pytest.raises(BookingValidationError):
        service.book_appointment(by_name(doctor), booked_by=staff)


def test_taken_slot_conflicts(service, doctor, staff):
    service.book_appointment(by_name(doctor), booked_by=staff)
    patients = Patient.objects.count()
    with pytest.raises(SlotConflict):
        service.book_appointment(by_name(doctor, first_name='Mary', last_name='Major'), booked_by=staff)
    # the second placeholder was rolled back
    assert Patient.objects.count() == patients


def test_overlapping_interval_conflicts(service, doctor, staff):
    service.book_appointment(by_name(doctor, time='10:00', duration=60), booked_by=staff)
    with pytest.raises(SlotConflict):
        service.book_appointment(by_name(doctor, time='10:30'), booked_by=staff)


def test_back_to_back_appointments_are_allowed(service, doctor, staff):
    service.book_appointment(by_name(doctor, time='10:00'), booked_by=staff)
    result = service.book_appointment(by_name(doctor, time='10:30'), booked_by=staff)
    assert result.appointment.time == datetime.time(10, 30)


def test_cancelled_slot_can_be_rebooked(service, doctor, staff):
    first = service.book_appointment(by_name(doctor), booked_by=staff).appointment
    service.cancel_appointment(first.pk, operator=staff)
    second = service.book_appointment(by_name(doctor), booked_by=staff).appointment
    assert second.pk != first.pk
    assert Appointment.objects.filter(doctor=doctor, date=MONDAY, time=datetime.time(10, 0)).count() == 2


def test_free_text_is_sanitised(service, doctor, staff):
    result = service.book_appointment(
        by_name(doctor, first_name='<b>John</b>', notes='<script>x</script>Knee pain'), booked_by=staff,
    )
    assert result.appointment.first_name == 'John'
    assert '<script>' not in result.appointment.notes


def test_free_text_is_stored_unescaped(service, doctor, staff):
    result = service.book_appointment(
        by_name(doctor, last_name="O'Brien", notes='Pain & swelling', symptoms='BP < 120'), booked_by=staff,
    )
    appt = Appointment.objects.get(pk=result.appointment.pk)
    assert appt.last_name == "O'Brien"
    assert appt.notes == 'Pain & swelling'
    assert appt.symptoms == 'BP < 120'


# ---------------------------------------------------------------------------
# Concurrency backstop and atomicity
# ---------------------------------------------------------------------------
class StaleAppointments(AppointmentRepository):
    """Reports the day as empty, as a concurrent reader would have seen it."""

    def list_for_doctor_on_date(self, doctor_id, day):
        return []


def test_unique_index_catches_a_stale_availability_read(service, doctor, staff):
    create_appointment(doctor, '10:00')
    users, patients = User.objects.count(), Patient.objects.count()
    stale = rebuild(service, appointments=StaleAppointments())

    with pytest.raises(SlotConflict):
        stale.book_appointment(by_name(doctor), booked_by=staff)

    assert Appointment.objects.filter(doctor=doctor).count() == 1
    assert User.objects.count() == users
    assert Patient.objects.count() == patients


class SlowAvailability(AppointmentRepository):
    """Holds the first reader inside its transaction until a rival has started."""

    def __init__(self, started, rival):
        self.started = started
        self.rival = rival

    def list_for_doctor_on_date(self, doctor_id, day):
        booked = super().list_for_doctor_on_date(doctor_id, day)
        if not self.started.is_set():
            self.started.set()
            self.rival.wait(timeout=5)
            time.sleep(0.2)
        return booked


@pytest.mark.django_db(transaction=True)
def test_concurrent_bookings_for_one_slot(service, doctor, staff):
    started, rival = threading.Event(), threading.Event()
    service = rebuild(service, appointments=SlowAvailability(started, rival))
    outcomes = []

    def book():
        try:
            service.book_appointment(by_name(doctor), booked_by=staff)
            outcomes.append('ok')
        except Exception as exc:
            outcomes.append(type(exc).__name__)
        finally:
            connections.close_all()

    first = threading.Thread(target=book)
    first.start()
    assert started.wait(timeout=5)
    second = threading.Thread(target=book)
    second.start()
    rival.set()
    first.join(timeout=30)
    second.join(timeout=30)

    assert sorted(outcomes) == ['SlotConflict', 'ok']
    assert Appointment.objects.filter(doctor=doctor, date=MONDAY, time=datetime.time(10, 0)).count() == 1
    assert Patient.objects.count() == 1


class ExplodingInsert(AppointmentRepository):
    def __init__(self, exc):
        self.exc = exc

    def insert(self, **fields):
        raise self.exc


def test_failure_after_placeholder_creation_leaves_no_rows(service, doctor, staff):
    users = User.objects.count()
    broken = rebuild(service, appointments=ExplodingInsert(RuntimeError('boom')))
    with pytest.raises(RuntimeError):
        broken.book_appointment(by_name(doctor), booked_by=staff)
    assert User.objects.count() == users
    assert not Patient.objects.exists()
    assert not AuditEvent.objects.exists()


def test_store_failure_becomes_dependency_error(service, doctor, staff):
    broken = rebuild(service, appointments=ExplodingInsert(DatabaseError('connection reset')))
    with pytest.raises(DependencyError) as excinfo:
        broken.book_appointment(by_name(doctor), booked_by=staff)
    assert str(excinfo.value.detail) == GENERIC_FAILURE_MESSAGE
    assert not Patient.objects.exists()


def _email_sequence(monkeypatch, *emails):
    it = iter(emails)
    monkeypatch.setattr(booking_module, 'placeholder_email', lambda first, last, domain: next(it))


def test_placeholder_email_collision_is_retried(service, doctor, staff, monkeypatch):
    User.objects.create_user(username='taken@patients.invalid', email='taken@patients.invalid', password='x')
    _email_sequence(monkeypatch, 'taken@patients.invalid', 'taken@patients.invalid', 'fresh@patients.invalid')

    result = service.book_appointment(by_name(doctor), booked_by=staff)

    assert result.patient_created is True
    assert result.appointment.patient.user.email == 'fresh@patients.invalid'


def test_placeholder_email_retries_are_bounded(service, doctor, staff, monkeypatch):
    User.objects.create_user(username='taken@patients.invalid', email='taken@patients.invalid', password='x')
    _email_sequence(monkeypatch, *['taken@patients.invalid'] * service.config.email_attempts)

    with pytest.raises(DependencyError):
        service.book_appointment(by_name(doctor), booked_by=staff)
    assert not Patient.objects.exists()
    assert not Appointment.objects.exists()


# ---------------------------------------------------------------------------
# Status lifecycle
# ---------------------------------------------------------------------------
def test_transition_is_recorded(service, doctor, staff):
    appt = create_appointment(doctor, '10:00')
    updated = service.transition_status(appt.pk, 'confirmed', operator=staff, reason='Called ahead')

    assert updated.status == Appointment.STATUS_CONFIRMED
    transition = AppointmentTransition.objects.get(appointment=appt)
    assert (transition.from_status, transition.to_status) == ('SCHEDULED', 'CONFIRMED')
    assert transition.operator == staff
    assert transition.reason == 'Called ahead'


def test_full_visit_path(service, doctor, staff):
    appt = create_appointment(doctor, '10:00')
    for status in ('CONFIRMED', 'IN_PROGRESS', 'COMPLETED'):
        service.transition_status(appt.pk, status, operator=staff)
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_COMPLETED
    assert appt.transitions.count() == 3


def test_terminal_status_cannot_change(service, doctor, staff):
    appt = create_appointment(doctor, '10:00', status=Appointment.STATUS_COMPLETED)
    with pytest.raises(InvalidTransition):
        service.transition_status(appt.pk, 'SCHEDULED', operator=staff)
    with pytest.raises(InvalidTransition):
        service.cancel_appointment(appt.pk, operator=staff)
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_COMPLETED
    assert not appt.transitions.exists()


def test_skipping_a_step_is_rejected(service, doctor, staff):
    appt = create_appointment(doctor, '10:00')
    with pytest.raises(InvalidTransition):
        service.transition_status(appt.pk, 'COMPLETED', operator=staff)


def test_unknown_status_is_a_validation_error(service, doctor, staff):
    appt = create_appointment(doctor, '10:00')
    with pytest.raises(BookingValidationError):
        service.transition_status(appt.pk, 'ARCHIVED', operator=staff)


def test_transition_on_missing_appointment(service):
    with pytest.raises(ResourceNotFound):
        service.transition_status(123456, 'CONFIRMED')


def test_no_show_sweep(service, doctor):
    past = MONDAY - datetime.timedelta(days=7)
    scheduled = create_appointment(doctor, '09:00', day=past)
    confirmed = create_appointment(doctor, '10:00', day=past, status=Appointment.STATUS_CONFIRMED)
    in_progress = create_appointment(doctor, '11:00', day=past, status=Appointment.STATUS_IN_PROGRESS)
    later_today = create_appointment(doctor, '11:30', day=MONDAY)
    earlier_today = create_appointment(doctor, '09:00', day=MONDAY)

    marked = service.sweep_no_shows(MONDAY, datetime.time(10, 0))

    assert sorted(marked) == sorted([scheduled.pk, confirmed.pk, earlier_today.pk])
    statuses = dict(Appointment.objects.values_list('pk', 'status'))
    assert statuses[scheduled.pk] == Appointment.STATUS_NO_SHOW
    assert statuses[confirmed.pk] == Appointment.STATUS_NO_SHOW
    assert statuses[in_progress.pk] == Appointment.STATUS_IN_PROGRESS
    assert statuses[later_today.pk] == Appointment.STATUS_SCHEDULED


class OverdueThenCompleted(AppointmentRepository):
    """The first overdue row is completed right after the overdue query."""

    def overdue_ids(self, day, time=None):
        ids = super().overdue_ids(day, time)
        Appointment.objects.filter(pk=ids[0]).update(status=Appointment.STATUS_COMPLETED)
        return ids


def test_no_show_sweep_skips_rows_that_changed(service, doctor):
    past = MONDAY - datetime.timedelta(days=7)
    first = create_appointment(doctor, '09:00', day=past)
    second = create_appointment(doctor, '10:00', day=past)
    sweeper = rebuild(service, appointments=OverdueThenCompleted())

    assert sweeper.sweep_no_shows(MONDAY) == [second.pk]

    statuses = dict(Appointment.objects.values_list('pk', 'status'))
    assert statuses[first.pk] == Appointment.STATUS_COMPLETED
    assert statuses[second.pk] == Appointment.STATUS_NO_SHOW
