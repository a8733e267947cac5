"""
Authz views: registration, own profile, doctor and patient directories.

Endpoints:
- POST      /api/v1/auth/register/        - Public self-registration
- GET/PATCH /api/v1/auth/me/              - Own profile
- GET       /api/v1/doctors/              - Approved doctors (record entry)
- GET       /api/v1/patients/search/?q=   - Approved patients (record entry)

RBAC:
- register: anonymous
- me: any authenticated principal (also pending/suspended, so the UI can
  show the account state)
- doctors: management, admin, patient
- patients/search: management, admin
"""
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from apps.authz import services
from apps.authz.models import RoleChoices
from apps.authz.permissions import HasRole, IsManagementOrAdmin
from apps.authz.serializers import DirectoryUserSerializer, MeSerializer, RegisterSerializer
from apps.core.observability.correlation import bind_user


class RegisterView(generics.GenericAPIView):
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'registration'

    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        user = services.register_user(
            email=data.pop('email'),
            password=data.pop('password'),
            role=data.pop('role'),
            request=request,
            **data
        )
        return Response(MeSerializer(user).data, status=status.HTTP_201_CREATED)


class MeView(generics.RetrieveUpdateAPIView):
    serializer_class = MeSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'patch', 'head', 'options']

    def get_object(self):
        bind_user(self.request.user)
        return self.request.user


class CanListDoctors(HasRole):
    allowed_roles = frozenset({RoleChoices.MANAGEMENT, RoleChoices.ADMIN, RoleChoices.PATIENT})


class DoctorListView(generics.ListAPIView):
    serializer_class = DirectoryUserSerializer
    permission_classes = [CanListDoctors]

    def get_queryset(self):
        queryset = services.approved_doctors()
        specialization = self.request.query_params.get('specialization')
        if specialization:
            queryset = queryset.filter(specialization__icontains=specialization)
        return queryset


class PatientSearchView(generics.ListAPIView):
    serializer_class = DirectoryUserSerializer
    permission_classes = [IsManagementOrAdmin]

    def get_queryset(self):
        return services.search_patients(self.request.query_params.get('q'))
