from rest_framework import serializers

from clinic.models import Appointment
from clinic.services.patients import patient_identity, serialize_identity
from clinic.services.timeslots import format_time

TYPE_CHOICES = [k for k, _ in Appointment.TYPE_CHOICES]
STATUS_CHOICES = [k for k, _ in Appointment.STATUS_CHOICES]


class AppointmentCreateSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    patientId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    firstName = serializers.CharField(max_length=150, required=False, allow_blank=True, allow_null=True)
    lastName = serializers.CharField(max_length=150, required=False, allow_blank=True, allow_null=True)
    date = serializers.CharField(max_length=10)
    time = serializers.CharField(max_length=5)
    duration = serializers.IntegerField(required=False, allow_null=True)
    type = serializers.ChoiceField(choices=TYPE_CHOICES, required=False)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)
    symptoms = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)


class AppointmentListQuerySerializer(serializers.Serializer):
    patientSearch = serializers.CharField(max_length=64, required=False, allow_blank=True)
    createdDate = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=STATUS_CHOICES, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=20)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SlotsQuerySerializer(serializers.Serializer):
    date = serializers.CharField(max_length=10)


def serialize_appointment(appt: Appointment) -> dict:
    doctor_user = appt.doctor.user
    return {
        'id': appt.id,
        'doctorId': appt.doctor_id,
        'doctorName': doctor_user.get_full_name() or doctor_user.username,
        'specialization': appt.doctor.specialization,
        'patient': serialize_identity(patient_identity(appt.patient)) if appt.patient_id else None,
        'firstName': appt.first_name,
        'lastName': appt.last_name,
        'date': appt.date.isoformat(),
        'time': format_time(appt.time),
        'duration': appt.duration,
        'type': appt.type,
        'status': appt.status,
        'notes': appt.notes,
        'symptoms': appt.symptoms,
        'bookedBy': appt.booked_by_id,
        'createdAt': appt.created_at.isoformat() if appt.created_at else None,
    }
