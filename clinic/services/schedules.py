import logging
from typing import Optional

from django.db import DatabaseError
from rest_framework import serializers
from rest_framework.exceptions import PermissionDenied

from clinic.exceptions import BookingValidationError, DependencyError
from clinic.models import Doctor, DoctorSchedule, User
from clinic.repositories import DoctorRepository, ScheduleRepository
from clinic.services.audit import log_action
from clinic.services.timeslots import format_time, parse_hhmm

logger = logging.getLogger(__name__)

DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


def serialize_schedule(s: DoctorSchedule) -> dict:
    return {
        'id': s.id,
        'dayOfWeek': s.day_of_week,
        'dayName': DAY_NAMES[s.day_of_week],
        'startTime': format_time(s.start_time),
        'endTime': format_time(s.end_time),
        'isActive': s.is_active,
    }


def list_schedules(doctor_id, *, doctors: Optional[DoctorRepository]=None,
                   schedules: Optional[ScheduleRepository]=None) -> list[dict]:
    doctors = doctors or DoctorRepository()
    schedules = schedules or ScheduleRepository()
    doctor = doctors.get(doctor_id)
    return [serialize_schedule(s) for s in schedules.list_for_doctor(doctor.pk)]


def _clean_windows(entries) -> list[dict]:
    if not isinstance(entries, list):
        raise BookingValidationError('schedules must be a list.')
    seen = set()
    windows = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise BookingValidationError(f'schedules[{i}] must be an object.')
        try:
            dow = int(entry.get('dayOfWeek'))
        except (TypeError, ValueError):
            raise BookingValidationError(f'schedules[{i}].dayOfWeek must be 0..6.') from None
        if not 0 <= dow <= 6:
            raise BookingValidationError(f'schedules[{i}].dayOfWeek must be 0..6.')
        if dow in seen:
            raise BookingValidationError(f'Duplicate window for {DAY_NAMES[dow]}.')
        seen.add(dow)
        start = parse_hhmm(entry.get('startTime'))
        end = parse_hhmm(entry.get('endTime'))
        if start >= end:
            raise BookingValidationError(f'schedules[{i}]: startTime must be before endTime.')
        try:
            active = serializers.BooleanField().to_internal_value(entry.get('isActive', True))
        except serializers.ValidationError:
            raise BookingValidationError(f'schedules[{i}].isActive must be a boolean.') from None
        windows.append({
            'day_of_week': dow,
            'start_time': start,
            'end_time': end,
            'is_active': active,
        })
    return windows


def can_manage_schedule(user: User, doctor: Doctor) -> bool:
    if user.role in (User.ROLE_ADMIN, User.ROLE_STAFF):
        return True
    return user.role == User.ROLE_DOCTOR and doctor.user_id == user.pk


def replace_schedules(doctor_id, entries, *, operator: User, doctors: Optional[DoctorRepository]=None,
                      schedules: Optional[ScheduleRepository]=None) -> list[dict]:
    """Replace a doctor's weekly windows with ``entries`` in one transaction.

    Existing appointments are left untouched even when they no longer
    fall inside a window.
    """
    doctors = doctors or DoctorRepository()
    schedules = schedules or ScheduleRepository()
    doctor = doctors.get(doctor_id)
    if not can_manage_schedule(operator, doctor):
        raise PermissionDenied('You may only change your own schedule.')
    windows = _clean_windows(entries)
    try:
        rows = schedules.replace_for_doctor(doctor.pk, windows)
    except DatabaseError as exc:
        logger.error('Store failure replacing schedules for doctor %s', doctor.pk, exc_info=exc)
        raise DependencyError()
    log_action(user=operator, action='schedule_replace', object_type='doctor', object_id=doctor.pk,
               detail={'days': sorted(w['day_of_week'] for w in windows)})
    logger.info('Doctor %s schedule replaced (%s window(s))', doctor.pk, len(rows))
    return [serialize_schedule(s) for s in rows]
