"""
Notification serializers.
"""
from rest_framework import serializers
from apps.notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    """Read-only view of a notification for its recipient."""
    record_id = serializers.UUIDField(read_only=True, allow_null=True)
    correction_request_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Notification
        fields = [
            'id',
            'type',
            'title',
            'message',
            'record_id',
            'correction_request_id',
            'metadata',
            'is_read',
            'read_at',
            'created_at',
        ]
        read_only_fields = fields
