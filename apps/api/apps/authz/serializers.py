"""
Authz serializers: registration, own profile, JWT claims, directories.
"""
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from apps.authz.models import RoleChoices, User
from apps.authz.services import SELF_REGISTRATION_ROLES


class RoleTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Adds role and account status claims to issued tokens."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['role'] = user.role
        token['status'] = user.status
        return token


class RegisterSerializer(serializers.Serializer):
    """
    Used for:
    - POST /api/v1/auth/register/
    """
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    role = serializers.ChoiceField(choices=sorted(SELF_REGISTRATION_ROLES))
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    specialization = serializers.CharField(max_length=150, required=False, allow_blank=True)
    date_of_birth = serializers.DateField(required=False, allow_null=True)

    def validate_password(self, value):
        validate_password(value)
        return value

    def validate(self, attrs):
        if attrs['role'] == RoleChoices.DOCTOR and not attrs.get('specialization'):
            raise serializers.ValidationError({'specialization': 'Doctors must provide a specialization.'})
        if attrs['role'] != RoleChoices.DOCTOR:
            attrs.pop('specialization', None)
        return attrs


class MeSerializer(serializers.ModelSerializer):
    """
    Used for:
    - GET/PATCH /api/v1/auth/me/
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
            'phone',
            'role',
            'status',
            'specialization',
            'date_of_birth',
            'created_at',
        ]
        read_only_fields = ['id', 'email', 'full_name', 'role', 'status', 'created_at']


class DirectoryUserSerializer(serializers.ModelSerializer):
    """
    Minimal public view of a doctor or patient.

    Used for:
    - GET /api/v1/doctors/
    - GET /api/v1/patients/search/
    """
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'full_name', 'phone', 'role', 'specialization']
        read_only_fields = fields
