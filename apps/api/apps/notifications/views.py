"""
Notification views.

Endpoints:
- GET  /api/v1/notifications/                 - Own notifications, newest first
- GET  /api/v1/notifications/unread-count/    - Number of unread notifications
- POST /api/v1/notifications/{id}/read/       - Mark one as read
- POST /api/v1/notifications/read-all/        - Mark all as read

Query parameters for list:
- ?is_read=true|false
- ?type=<notification type>

RBAC:
- Any approved principal, own notifications only
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz.permissions import IsApprovedUser
from apps.core.exceptions import NotFoundError
from apps.notifications import services
from apps.notifications.models import Notification
from apps.notifications.serializers import NotificationSerializer


class NotificationViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = NotificationSerializer
    permission_classes = [IsApprovedUser]
    lookup_value_regex = '[0-9a-f-]{36}'

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user)

        is_read = self.request.query_params.get('is_read')
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() == 'true')

        notification_type = self.request.query_params.get('type')
        if notification_type:
            queryset = queryset.filter(type=notification_type)

        return queryset.order_by('-created_at')

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return Response({'unread_count': services.unread_count(request.user)})

    @action(detail=True, methods=['post'], url_path='read')
    def read(self, request, pk=None):
        notification = services.mark_as_read(request.user, pk)
        if notification is None:
            raise NotFoundError('Notification not found', operation='mark_notification_read')
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        updated = services.mark_all_as_read(request.user)
        return Response({'updated': updated}, status=status.HTTP_200_OK)
