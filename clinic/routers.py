"""
URL mappings for the clinic API.

Trailing slashes are deliberately omitted; ``APPEND_SLASH`` is off.
"""
from django.urls import path, include

from .views import appointments
from .views import doctors
from .views import health
from .views import patients


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Doctors
    path('api/doctors/<int:pk>/available-slots', doctors.available_slots),
    path('api/doctors/<int:pk>/schedules', doctors.doctor_schedules),
    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/status', appointments.appointment_status),
    # Patients
    path('api/patients/register', patients.patient_register),
    path('api/patients/<int:pk>/complete-profile', patients.patient_complete_profile),
]
