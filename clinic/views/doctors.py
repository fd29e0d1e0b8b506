from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsStaffRole
from clinic.serializers.appointments import SlotsQuerySerializer
from clinic.serializers.schedules import ScheduleReplaceSerializer
from clinic.services.booking import build_booking_service
from clinic.services.schedules import list_schedules, replace_schedules
from clinic.services.timeslots import format_time


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def available_slots(request, pk: int):
    q = SlotsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    slots, windows = build_booking_service().availability(pk, q.validated_data['date'])
    data = {
        'availableSlots': slots,
        'schedule': [{'startTime': format_time(w.start), 'endTime': format_time(w.end)} for w in windows],
    }
    if not windows:
        data['message'] = 'Doctor is not available on this day.'
    elif not slots:
        data['message'] = 'No free slots on this day.'
    return Response(data)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def doctor_schedules(request, pk: int):
    if request.method == 'PUT':
        if not IsStaffRole().has_permission(request, None):
            raise PermissionDenied('Only clinic staff may change schedules.')
        payload = {'schedules': request.data} if isinstance(request.data, list) else request.data
        s = ScheduleReplaceSerializer(data=payload)
        s.is_valid(raise_exception=True)
        data = replace_schedules(pk, s.validated_data['schedules'], operator=request.user)
        return Response({'ok': True, 'schedules': data})
    return Response({'ok': True, 'schedules': list_schedules(pk)})
