"""
Django admin registrations for the clinic models.

Superusers can inspect bookings, schedules and the audit trail via the
``/admin/`` URL.  Appointment transitions are shown inline and are
read-only; status changes go through the booking service.
"""

from django.contrib import admin

from .models import (
    User,
    Doctor,
    DoctorSchedule,
    Patient,
    Appointment,
    AppointmentTransition,
    AuditEvent,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'role', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'email', 'first_name', 'last_name')


class DoctorScheduleInline(admin.TabularInline):
    model = DoctorSchedule
    extra = 0


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('user', 'specialization', 'department', 'license_number', 'is_available')
    list_filter = ('is_available', 'department')
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'license_number')
    inlines = [DoctorScheduleInline]


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('user', 'kind', 'gender', 'date_of_birth', 'created_at')
    list_filter = ('kind', 'gender')
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'user__email')


class AppointmentTransitionInline(admin.TabularInline):
    model = AppointmentTransition
    extra = 0
    can_delete = False
    readonly_fields = ('from_status', 'to_status', 'operator', 'reason', 'timestamp')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'doctor', 'patient', 'date', 'time', 'duration', 'type', 'status')
    list_filter = ('status', 'type', 'date')
    search_fields = ('first_name', 'last_name', 'patient__user__first_name', 'patient__user__last_name')
    readonly_fields = ('status', 'created_at', 'updated_at')
    inlines = [AppointmentTransitionInline]


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'action', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type')
