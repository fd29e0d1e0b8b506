import datetime
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from clinic.models import Appointment, Doctor, DoctorSchedule, User
from clinic.tests.factories import MONDAY, create_appointment

pytestmark = pytest.mark.django_db


def test_seed_clinic_is_idempotent():
    call_command('seed_clinic', stdout=StringIO())
    call_command('seed_clinic', stdout=StringIO())

    assert Doctor.objects.count() == 3
    assert DoctorSchedule.objects.count() == 15
    assert set(DoctorSchedule.objects.values_list('day_of_week', flat=True)) == {1, 2, 3, 4, 5}
    assert User.objects.get(email='admin@clinic.local').is_superuser
    assert User.objects.filter(role=User.ROLE_STAFF).count() == 1


def test_seeded_doctors_offer_a_full_weekday(service):
    call_command('seed_clinic', stdout=StringIO())
    doctor = Doctor.objects.first()
    slots = service.get_available_slots(doctor.pk, MONDAY)
    assert slots[0] == '09:00' and slots[-1] == '16:30'
    assert len(slots) == 16


def test_mark_no_shows_with_date(doctor):
    overdue = create_appointment(doctor, '10:00')
    confirmed = create_appointment(doctor, '11:00', status=Appointment.STATUS_CONFIRMED)
    upcoming = create_appointment(doctor, '10:00', day=MONDAY + datetime.timedelta(days=7))
    out = StringIO()

    call_command('mark_no_shows', '--date', (MONDAY + datetime.timedelta(days=1)).isoformat(), stdout=out)

    assert 'Marked 2 appointment(s)' in out.getvalue()
    assert Appointment.objects.get(pk=overdue.pk).status == Appointment.STATUS_NO_SHOW
    assert Appointment.objects.get(pk=confirmed.pk).status == Appointment.STATUS_NO_SHOW
    assert Appointment.objects.get(pk=upcoming.pk).status == Appointment.STATUS_SCHEDULED
    assert Appointment.objects.get(pk=overdue.pk).transitions.get().to_status == 'NO_SHOW'


def test_mark_no_shows_defaults_to_now(doctor):
    # MONDAY is in 2030, so nothing is overdue yet
    create_appointment(doctor, '10:00')
    past = create_appointment(doctor, '10:00', day=datetime.date(2020, 3, 2))
    call_command('mark_no_shows', stdout=StringIO())
    assert Appointment.objects.get(pk=past.pk).status == Appointment.STATUS_NO_SHOW
    assert Appointment.objects.filter(status=Appointment.STATUS_SCHEDULED).count() == 1


def test_mark_no_shows_rejects_bad_date(db):
    with pytest.raises(CommandError):
        call_command('mark_no_shows', '--date', '01/02/2030')
