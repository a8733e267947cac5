"""
User Administration ViewSet.
"""
from django.db import models, transaction
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz import services
from apps.authz.models import User, UserAuditLog, UserAuditActionChoices
from apps.authz.permissions import IsAdmin
from apps.authz.serializers_users import (
    ChangeRoleSerializer,
    ReasonSerializer,
    UserDetailSerializer,
    UserListSerializer,
    UserUpdateSerializer,
)


class UserAdminViewSet(mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       mixins.UpdateModelMixin,
                       viewsets.GenericViewSet):
    """
    ViewSet for User Administration endpoints (Admin only).

    Endpoints:
    - GET   /api/v1/users/                   - List users with search
    - GET   /api/v1/users/{id}/              - Get user detail
    - PATCH /api/v1/users/{id}/              - Update profile fields
    - POST  /api/v1/users/{id}/approve/      - Approve account (notifies account_verified)
    - POST  /api/v1/users/{id}/reject/       - Reject registration (notifies account_rejected)
    - POST  /api/v1/users/{id}/suspend/      - Suspend account (notifies account_suspended)
    - POST  /api/v1/users/{id}/change-role/  - Change role (notifies role_updated)
    - GET   /api/v1/users/statistics/        - Totals by status and role

    Query parameters for list:
    - ?q=search_term - Search by email, first_name, last_name
    - ?status=pending|approved|rejected|suspended
    - ?role=patient|doctor|management|admin

    RBAC:
    - Admin only
    """
    permission_classes = [IsAdmin]
    http_method_names = ['get', 'post', 'patch', 'head', 'options']
    lookup_value_regex = '[0-9a-f-]{36}'

    def get_queryset(self):
        queryset = User.objects.select_related('status_changed_by').all()

        q = self.request.query_params.get('q')
        if q:
            queryset = queryset.filter(
                models.Q(email__icontains=q) |
                models.Q(first_name__icontains=q) |
                models.Q(last_name__icontains=q)
            )

        account_status = self.request.query_params.get('status')
        if account_status:
            queryset = queryset.filter(status=account_status)

        role = self.request.query_params.get('role')
        if role:
            queryset = queryset.filter(role=role)

        return queryset.order_by('-created_at')

    def get_serializer_class(self):
        if self.action == 'list':
            return UserListSerializer
        elif self.action in ['update', 'partial_update']:
            return UserUpdateSerializer
        elif self.action in ['reject', 'suspend']:
            return ReasonSerializer
        elif self.action == 'change_role':
            return ChangeRoleSerializer
        return UserDetailSerializer

    @transaction.atomic
    def update(self, request, *args, **kwargs):
        """Update profile fields with audit log."""
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        tracked = UserUpdateSerializer.Meta.fields

        before_state = {f: str(getattr(instance, f)) for f in tracked}
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        after_state = {f: str(getattr(user, f)) for f in tracked}

        changed_fields = {
            key: {'before': before_state[key], 'after': after_state[key]}
            for key in tracked
            if before_state[key] != after_state[key]
        }

        UserAuditLog.objects.create(
            actor_user=request.user,
            target_user=user,
            action=UserAuditActionChoices.UPDATE_USER,
            metadata={
                'changed_fields': changed_fields,
                'ip_address': services._get_client_ip(request),
            }
        )

        return Response(UserDetailSerializer(user).data)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        user = services.approve_user(request.user, pk, request=request)
        return Response(UserDetailSerializer(user).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.reject_user(request.user, pk, serializer.validated_data['reason'], request=request)
        return Response(UserDetailSerializer(user).data)

    @action(detail=True, methods=['post'])
    def suspend(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.suspend_user(request.user, pk, serializer.validated_data['reason'], request=request)
        return Response(UserDetailSerializer(user).data)

    @action(detail=True, methods=['post'], url_path='change-role')
    def change_role(self, request, pk=None):
        serializer = ChangeRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.change_role(request.user, pk, serializer.validated_data['role'], request=request)
        return Response(UserDetailSerializer(user).data)

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        return Response(services.user_statistics())
