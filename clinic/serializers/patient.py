from rest_framework import serializers

from clinic.models import Patient
from clinic.services.patients import clean_text

GENDER_CHOICES = [k for k, _ in Patient.GENDER_CHOICES]

# request key -> model field
PROFILE_KEYS = {
    'dateOfBirth': 'date_of_birth',
    'gender': 'gender',
    'address': 'address',
    'emergencyContactName': 'emergency_contact_name',
    'emergencyContactPhone': 'emergency_contact_phone',
    'medicalHistory': 'medical_history',
    'allergies': 'allergies',
    'bloodGroup': 'blood_group',
    'notes': 'notes',
}


class PatientProfileFields(serializers.Serializer):
    phone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    dateOfBirth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.ChoiceField(choices=GENDER_CHOICES, required=False)
    address = serializers.CharField(required=False, allow_blank=True, max_length=500)
    emergencyContactName = serializers.CharField(required=False, allow_blank=True, max_length=255)
    emergencyContactPhone = serializers.CharField(required=False, allow_blank=True, max_length=20)
    medicalHistory = serializers.CharField(required=False, allow_blank=True, max_length=4000)
    allergies = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    bloodGroup = serializers.CharField(required=False, allow_blank=True, max_length=3)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)

    def validate_phone(self, v):
        return clean_text(v) or ''

    def profile_kwargs(self) -> dict:
        data = self.validated_data
        return {field: data[key] for key, field in PROFILE_KEYS.items() if key in data}


class PatientRegisterSerializer(PatientProfileFields):
    firstName = serializers.CharField(max_length=150)
    lastName = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate_firstName(self, v):
        v = clean_text(v)
        if not v:
            raise serializers.ValidationError('First name is required.')
        return v

    def validate_lastName(self, v):
        v = clean_text(v)
        if not v:
            raise serializers.ValidationError('Last name is required.')
        return v


class PatientCompleteProfileSerializer(PatientProfileFields):
    firstName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    lastName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
