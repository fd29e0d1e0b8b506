"""
Patient registration views.

Clinic personnel register patients directly or complete the profile of
a placeholder patient that was created while booking.  A patient may
also complete their own profile.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsStaffRole
from clinic.repositories import PatientRepository
from clinic.serializers.patient import PatientCompleteProfileSerializer, PatientRegisterSerializer
from clinic.services.patients import (
    complete_patient_profile,
    patient_identity,
    register_patient,
    serialize_identity,
)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_register(request):
    s = PatientRegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    user, patient, password = register_patient(
        request.user,
        first_name=d['firstName'],
        last_name=d['lastName'],
        email=d['email'],
        phone=d.get('phone'),
        password=d.get('password') or None,
        **s.profile_kwargs(),
    )
    body = {'ok': True, 'patient': serialize_identity(patient_identity(patient))}
    if not d.get('password'):
        # generated; shown once so staff can hand it over
        body['temporaryPassword'] = password
    return Response(body, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def patient_complete_profile(request, pk: int):
    patient = PatientRepository().get(pk)
    if not (IsStaffRole().has_permission(request, None) or patient.user_id == request.user.pk):
        raise PermissionDenied('You may only complete your own profile.')
    s = PatientCompleteProfileSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    patient = complete_patient_profile(
        patient.pk,
        operator=request.user,
        first_name=d.get('firstName'),
        last_name=d.get('lastName'),
        email=d.get('email'),
        phone=d.get('phone'),
        **s.profile_kwargs(),
    )
    return Response({'ok': True, 'patient': serialize_identity(patient_identity(patient))})
