"""
User Administration Serializers.
"""
from rest_framework import serializers
from apps.authz.models import RoleChoices, User


class UserListSerializer(serializers.ModelSerializer):
    """
    Serializer for User list view (Admin only).

    Used for:
    - GET /api/v1/users/ - List all users
    """
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'full_name',
            'role',
            'status',
            'is_active',
            'last_login',
            'created_at',
        ]
        read_only_fields = fields


class UserDetailSerializer(serializers.ModelSerializer):
    """
    Serializer for User detail view (Admin only).

    Used for:
    - GET /api/v1/users/{id}/ - Get user detail
    """
    full_name = serializers.CharField(read_only=True)
    status_changed_by = serializers.EmailField(source='status_changed_by.email', read_only=True, default=None)

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'full_name',
            'phone',
            'role',
            'status',
            'specialization',
            'date_of_birth',
            'rejection_reason',
            'status_changed_by',
            'status_changed_at',
            'is_active',
            'last_login',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class UserUpdateSerializer(serializers.ModelSerializer):
    """
    Profile edits by an admin. Role and status change only through the
    dedicated actions so they are audited and notified.

    Used for:
    - PATCH /api/v1/users/{id}/
    """

    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'phone', 'specialization', 'date_of_birth', 'is_active']


class ReasonSerializer(serializers.Serializer):
    """
    Used for:
    - POST /api/v1/users/{id}/reject/
    - POST /api/v1/users/{id}/suspend/
    """
    reason = serializers.CharField(max_length=1000)


class ChangeRoleSerializer(serializers.Serializer):
    """
    Used for:
    - POST /api/v1/users/{id}/change-role/
    """
    role = serializers.ChoiceField(choices=RoleChoices.choices)
