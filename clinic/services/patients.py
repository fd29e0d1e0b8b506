"""
Patient identities.

A patient is either fully registered or a placeholder created while
booking an appointment for someone who has no record yet.  Consumers
receive one of two explicit variants from :func:`patient_identity`
instead of probing nullable fields.
"""
from __future__ import annotations

import datetime
import html
import logging
import secrets
import uuid
from dataclasses import dataclass, asdict
from typing import Optional, Union

import bleach
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils.text import slugify

from clinic.exceptions import BookingValidationError
from clinic.models import Patient, User
from clinic.repositories import DuplicateEmail, PatientRepository, UserRepository
from clinic.services.audit import log_action

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    'date_of_birth', 'gender', 'address', 'emergency_contact_name', 'emergency_contact_phone',
    'medical_history', 'allergies', 'blood_group', 'notes',
)


@dataclass(frozen=True)
class FullPatient:
    patient_id: int
    user_id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    date_of_birth: Optional[datetime.date]
    gender: str
    kind: str = Patient.KIND_FULL


@dataclass(frozen=True)
class PlaceholderPatient:
    patient_id: int
    user_id: int
    first_name: str
    last_name: str
    kind: str = Patient.KIND_PLACEHOLDER


PatientIdentity = Union[FullPatient, PlaceholderPatient]


def patient_identity(patient: Patient) -> PatientIdentity:
    user = patient.user
    if patient.is_placeholder:
        return PlaceholderPatient(
            patient_id=patient.pk, user_id=user.pk,
            first_name=user.first_name, last_name=user.last_name,
        )
    return FullPatient(
        patient_id=patient.pk, user_id=user.pk,
        first_name=user.first_name, last_name=user.last_name,
        email=user.email, phone=user.phone,
        date_of_birth=patient.date_of_birth, gender=patient.gender,
    )


def serialize_identity(identity: PatientIdentity) -> dict:
    data = asdict(identity)
    if isinstance(identity, FullPatient):
        dob = data.pop('date_of_birth')
        data['dateOfBirth'] = dob.isoformat() if dob else None
    return {
        'kind': data.pop('kind'),
        'id': data.pop('patient_id'),
        'userId': data.pop('user_id'),
        'firstName': data.pop('first_name'),
        'lastName': data.pop('last_name'),
        **data,
    }


def clean_text(value) -> Optional[str]:
    """Strip markup from free text.  Stored text is plain; escaping is left to the renderer."""
    if value is None:
        return None
    return html.unescape(bleach.clean(str(value).strip(), tags=set(), strip=True)).strip() or None


def placeholder_email(first_name: str, last_name: str, domain: str) -> str:
    """Build ``first.last.<random hex>@domain`` for a placeholder user."""
    first = slugify(first_name)[:30] or 'patient'
    last = slugify(last_name)[:30] or 'unknown'
    return f"{first}.{last}.{uuid.uuid4().hex}@{domain}"


def temporary_password() -> str:
    return secrets.token_urlsafe(32)


@transaction.atomic
def register_patient(current_user, *, first_name: str, last_name: str, email: str, phone: Optional[str]=None,
                     password: Optional[str]=None, users: Optional[UserRepository]=None,
                     patients: Optional[PatientRepository]=None, **profile):
    """Create a fully registered patient.

    Returns ``(user, patient, initial_password)``; the initial password
    is generated when none is supplied so that staff can hand it over.
    """
    users = users or UserRepository()
    patients = patients or PatientRepository()
    if password:
        try:
            validate_password(password)
        except ValidationError as e:
            raise BookingValidationError({'password': e.messages})
    else:
        password = temporary_password()

    try:
        user = users.create(
            email=email.strip().lower(),
            password_hash=make_password(password),
            first_name=clean_text(first_name) or '',
            last_name=clean_text(last_name) or '',
            role=User.ROLE_PATIENT,
            phone=phone or None,
        )
    except DuplicateEmail:
        raise BookingValidationError({'email': ['A user with this email already exists.']})

    fields = {k: profile[k] for k in PROFILE_FIELDS if profile.get(k) not in (None, '')}
    patient = patients.create(user, kind=Patient.KIND_FULL, **fields)
    log_action(user=current_user, action='patient_register', object_type='patient', object_id=patient.pk)
    return user, patient, password


@transaction.atomic
def complete_patient_profile(patient_id, *, operator=None, patients: Optional[PatientRepository]=None, **data) -> Patient:
    """Fill in a patient's details; a placeholder becomes a full patient."""
    patients = patients or PatientRepository()
    patient = patients.get(patient_id)
    user = patient.user

    email = (data.get('email') or '').strip().lower()
    if email and email != user.email:
        if User.objects.filter(email__iexact=email).exclude(pk=user.pk).exists():
            raise BookingValidationError({'email': ['A user with this email already exists.']})
        user.email = email
        user.username = email
    for field in ('first_name', 'last_name'):
        if data.get(field):
            setattr(user, field, clean_text(data[field]))
    if data.get('phone'):
        user.phone = data['phone']
    user.save()

    for field in PROFILE_FIELDS:
        if data.get(field) not in (None, ''):
            value = data[field]
            setattr(patient, field, clean_text(value) if isinstance(value, str) else value)
    was_placeholder = patient.is_placeholder
    patient.kind = Patient.KIND_FULL
    patient.save()

    if was_placeholder:
        logger.info('Placeholder patient %s completed', patient.pk)
    log_action(user=operator, action='patient_complete_profile', object_type='patient', object_id=patient.pk,
               detail={'wasPlaceholder': was_placeholder})
    return patient
