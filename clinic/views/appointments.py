"""
Appointment views.

Clinic personnel book appointments and move them through their
lifecycle; doctors and patients see only the appointments they take
part in.  All business rules live in :mod:`clinic.services.booking`;
these views validate the request shape, apply role scoping and shape
the response.
"""
from __future__ import annotations

import datetime
import math

from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment, User
from clinic.permissions import IsStaffRole
from clinic.repositories import AppointmentRepository
from clinic.serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    StatusChangeSerializer,
    serialize_appointment,
)
from clinic.services.booking import BookingRequest, build_booking_service

DEFAULT_PAGE_SIZE = 20


def _scoped_queryset(user):
    qs = Appointment.objects.select_related('doctor__user', 'patient__user')
    if user.role == User.ROLE_DOCTOR:
        return qs.filter(doctor__user=user)
    if user.role == User.ROLE_PATIENT:
        return qs.filter(patient__user=user)
    return qs


def _in_scope(user, appt: Appointment) -> bool:
    if user.role in (User.ROLE_ADMIN, User.ROLE_STAFF):
        return True
    if user.role == User.ROLE_DOCTOR:
        return appt.doctor.user_id == user.pk
    if user.role == User.ROLE_PATIENT:
        return appt.patient_id is not None and appt.patient.user_id == user.pk
    return False


def _get_in_scope(user, appointment_id) -> Appointment:
    appt = AppointmentRepository().get(appointment_id)
    if not _in_scope(user, appt):
        raise PermissionDenied('You do not have access to this appointment.')
    return appt


def _require_staff(request):
    if not IsStaffRole().has_permission(request, None):
        raise PermissionDenied('Only clinic staff may perform this action.')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointments(request):
    if request.method == 'POST':
        return _create_appointment(request)
    return _list_appointments(request)


def _create_appointment(request):
    _require_staff(request)
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    result = build_booking_service().book_appointment(
        BookingRequest(
            doctor_id=d['doctorId'],
            date=d['date'],
            time=d['time'],
            duration=d.get('duration'),
            type=d.get('type') or 'CONSULTATION',
            patient_id=d.get('patientId'),
            first_name=d.get('firstName'),
            last_name=d.get('lastName'),
            notes=d.get('notes'),
            symptoms=d.get('symptoms'),
        ),
        booked_by=request.user,
    )
    return Response({
        'ok': True,
        'message': 'Appointment booked successfully.',
        'appointment': serialize_appointment(result.appointment),
        'patientCreated': result.patient_created,
    }, status=status.HTTP_201_CREATED)


def _list_appointments(request):
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    params = q.validated_data
    qs = _scoped_queryset(request.user)

    search = (params.get('patientSearch') or '').strip()
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(patient__user__first_name__icontains=search) | Q(patient__user__last_name__icontains=search)
        )
    if params.get('createdDate'):
        # calendar day in the configured time zone
        start = timezone.make_aware(datetime.datetime.combine(params['createdDate'], datetime.time.min))
        qs = qs.filter(created_at__gte=start, created_at__lt=start + datetime.timedelta(days=1))
    if params.get('status'):
        qs = qs.filter(status=params['status'])

    page = params.get('page') or 1
    limit = params.get('limit') or DEFAULT_PAGE_SIZE
    total = qs.count()
    offset = (page - 1) * limit
    items = qs.order_by('date', 'time', 'id')[offset:offset + limit]
    return Response({
        'ok': True,
        'data': [serialize_appointment(a) for a in items],
        'pagination': {
            'total': total,
            'page': page,
            'limit': limit,
            'totalPages': math.ceil(total / limit) if total else 0,
        },
    })


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk: int):
    appt = _get_in_scope(request.user, pk)
    if request.method == 'DELETE':
        reason = (request.data.get('reason') if hasattr(request.data, 'get') else None) or 'Cancelled'
        appt = build_booking_service().cancel_appointment(appt.pk, operator=request.user, reason=str(reason)[:255])
        return Response({'ok': True, 'message': 'Appointment cancelled.', 'appointment': serialize_appointment(appt)})
    return Response({'ok': True, 'appointment': serialize_appointment(appt)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_status(request, pk: int):
    s = StatusChangeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = _get_in_scope(request.user, pk)
    appt = build_booking_service().transition_status(
        appt.pk, s.validated_data['status'], operator=request.user, reason=s.validated_data.get('reason', ''),
    )
    return Response({'ok': True, 'appointment': serialize_appointment(appt)})
