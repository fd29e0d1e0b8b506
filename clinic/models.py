"""
Database models for the clinic backend.

These models capture the records the booking workflow works with:
user identities, doctors and their weekly schedule windows, patients
and appointments.  An appointment references its doctor and patient by
foreign key only; demographic and medical data stay on the patient.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q, F


class User(AbstractUser):
    """Root identity for staff, doctors and patients.

    Doctor and patient profiles extend a user through a one-to-one key.
    The email is unique so that auto-created placeholder identities
    must generate a collision-free address.
    """
    ROLE_ADMIN = 'ADMIN'
    ROLE_DOCTOR = 'DOCTOR'
    ROLE_STAFF = 'STAFF'
    ROLE_PATIENT = 'PATIENT'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_STAFF, 'Staff'),
        (ROLE_PATIENT, 'Patient'),
    ]
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)
    phone = models.CharField(max_length=20, blank=True, null=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Doctor(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor_profile')
    license_number = models.CharField(max_length=64, unique=True)
    specialization = models.CharField(max_length=255)
    qualification = models.CharField(max_length=255, blank=True)
    department = models.CharField(max_length=255, blank=True)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    # unavailable doctors accept no new bookings; existing ones stay
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Dr. {self.user.get_full_name() or self.user.username} ({self.specialization})"


class DoctorSchedule(models.Model):
    """A recurring weekly availability window.

    ``day_of_week`` follows the 0=Sunday .. 6=Saturday convention.  A
    doctor has at most one window per weekday; the window is half-open,
    ``[start_time, end_time)``.
    """
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='schedules')
    day_of_week = models.PositiveSmallIntegerField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['day_of_week']
        constraints = [
            models.UniqueConstraint(fields=['doctor', 'day_of_week'], name='uniq_schedule_doctor_day'),
            models.CheckConstraint(condition=Q(start_time__lt=F('end_time')), name='schedule_start_before_end'),
            models.CheckConstraint(condition=Q(day_of_week__lte=6), name='schedule_day_of_week_range'),
        ]

    def __str__(self) -> str:
        return f"Schedule(d={self.doctor_id}, dow={self.day_of_week}, {self.start_time:%H:%M}-{self.end_time:%H:%M})"


class Patient(models.Model):
    """Patient profile owned by exactly one user.

    ``kind`` distinguishes fully registered patients from placeholder
    identities created at booking time.  A placeholder only knows the
    patient's name (held on the user); every other field stays empty
    until the profile is completed.
    """
    KIND_FULL = 'FULL'
    KIND_PLACEHOLDER = 'PLACEHOLDER'
    KIND_CHOICES = [
        (KIND_FULL, 'Full'),
        (KIND_PLACEHOLDER, 'Placeholder'),
    ]
    GENDER_CHOICES = [
        ('MALE', 'Male'),
        ('FEMALE', 'Female'),
        ('OTHER', 'Other'),
    ]
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='patient_profile')
    kind = models.CharField(max_length=12, choices=KIND_CHOICES, default=KIND_FULL, db_index=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, default='OTHER')
    address = models.TextField(null=True, blank=True)
    emergency_contact_name = models.CharField(max_length=255, null=True, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, null=True, blank=True)
    medical_history = models.TextField(null=True, blank=True)
    allergies = models.TextField(null=True, blank=True)
    blood_group = models.CharField(max_length=3, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_placeholder(self) -> bool:
        return self.kind == self.KIND_PLACEHOLDER

    def __str__(self) -> str:
        return f"{self.user.get_full_name() or self.user.username} ({self.kind})"


class Appointment(models.Model):
    """A booked visit.

    Either ``patient`` is set or both ``first_name`` and ``last_name``
    are.  Two live appointments never share (doctor, date, time); the
    partial unique index ignores cancelled rows so a freed slot can be
    booked again.
    """
    STATUS_SCHEDULED = 'SCHEDULED'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_NO_SHOW = 'NO_SHOW'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No show'),
    ]
    TYPE_CHOICES = [
        ('CONSULTATION', 'Consultation'),
        ('FOLLOW_UP', 'Follow-up'),
        ('CHECK_UP', 'Check-up'),
        ('EMERGENCY', 'Emergency'),
        ('SURGERY', 'Surgery'),
    ]

    patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    first_name = models.CharField(max_length=150, null=True, blank=True)
    last_name = models.CharField(max_length=150, null=True, blank=True)
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='appointments')
    booked_by = models.ForeignKey(
        User, null=True, on_delete=models.SET_NULL, related_name='appointments_booked'
    )
    date = models.DateField()
    time = models.TimeField()
    duration = models.PositiveIntegerField(default=30, help_text="Length in minutes")
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='CONSULTATION')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    notes = models.TextField(null=True, blank=True)
    symptoms = models.TextField(null=True, blank=True)
    diagnosis = models.TextField(null=True, blank=True)
    prescription = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['date', 'time']
        indexes = [
            models.Index(fields=['doctor', 'date'], name='appt_doctor_date_idx'),
            models.Index(fields=['created_at'], name='appt_created_at_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'date', 'time'],
                condition=~Q(status='CANCELLED'),
                name='uniq_live_appointment_slot',
            ),
            models.CheckConstraint(
                condition=Q(patient__isnull=False)
                | (Q(first_name__isnull=False) & ~Q(first_name='') & Q(last_name__isnull=False) & ~Q(last_name='')),
                name='appointment_has_identity',
            ),
        ]

    def __str__(self) -> str:
        return f"Appointment #{self.pk} d={self.doctor_id} {self.date} {self.time:%H:%M} [{self.status}]"


class AppointmentTransition(models.Model):
    """Records a status transition for an appointment."""
    appointment = models.ForeignKey(Appointment, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=20)
    to_status = models.CharField(max_length=20)
    operator = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointment_transitions'
    )
    reason = models.CharField(max_length=255, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self) -> str:
        return f"{self.appointment_id}: {self.from_status} → {self.to_status}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]
