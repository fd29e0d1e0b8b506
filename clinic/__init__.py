"""Clinic application: doctor schedules, appointment booking and patients.

This package contains models, repositories, services, serializers, views
and route registrations for the clinic booking API.
"""
