from rest_framework import serializers


class ScheduleReplaceSerializer(serializers.Serializer):
    # entries are validated by the schedules service
    schedules = serializers.ListField(child=serializers.DictField(), allow_empty=True)
