"""
Record entry consent views.

Endpoints:
- POST /api/v1/consents/initiate/       - Check patient credentials, e-mail OTP
- POST /api/v1/consents/verify/         - Verify OTP
- POST /api/v1/consents/{id}/resend/    - Issue a new OTP

RBAC:
- Management only; a session is visible only to the user who started it
"""
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.authz.permissions import IsManagement
from apps.consents import services
from apps.consents.serializers import (
    ConsentInitiateSerializer,
    ConsentSerializer,
    ConsentVerifySerializer,
)


class _ConsentView(APIView):
    permission_classes = [IsManagement]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'otp'


class ConsentInitiateView(_ConsentView):
    serializer_class = ConsentInitiateSerializer

    def post(self, request):
        serializer = ConsentInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        consent = services.initiate_consent(
            request.user,
            serializer.validated_data['patient_email'],
            serializer.validated_data['patient_password'],
        )
        return Response(ConsentSerializer(consent).data, status=status.HTTP_201_CREATED)


class ConsentVerifyView(_ConsentView):
    serializer_class = ConsentVerifySerializer

    def post(self, request):
        serializer = ConsentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        consent = services.verify_consent(
            request.user,
            serializer.validated_data['consent_id'],
            serializer.validated_data['otp'],
        )
        return Response(ConsentSerializer(consent).data)


class ConsentResendView(_ConsentView):

    def post(self, request, pk):
        consent = services.resend_otp(request.user, pk)
        return Response(ConsentSerializer(consent).data)
