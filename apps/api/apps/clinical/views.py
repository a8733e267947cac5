"""
Clinical viewsets for medical records, correction requests, dashboards
and patient history.

Endpoints:
- GET    /api/v1/clinical/records/                 - Role-scoped record list
- POST   /api/v1/clinical/records/                 - Enter a record (management)
- GET    /api/v1/clinical/records/{id}/            - Record detail
- POST   /api/v1/clinical/records/{id}/verify/     - Verify (assigned doctor)
- POST   /api/v1/clinical/records/{id}/reject/     - Reject with reason (assigned doctor)
- PATCH  /api/v1/clinical/records/{id}/edit/       - Edit fields, optionally re-verify (assigned doctor)
- POST   /api/v1/clinical/records/{id}/images/     - Attach a JPEG/PNG report image
- DELETE /api/v1/clinical/records/{id}/            - Soft delete (admin)
- GET    /api/v1/clinical/corrections/             - Role-scoped correction requests
- POST   /api/v1/clinical/corrections/             - File a correction request (patient)
- POST   /api/v1/clinical/corrections/{id}/resolve/ - Approve or reject (record's doctor)
- GET    /api/v1/clinical/dashboard/               - Role-specific statistics
- GET    /api/v1/clinical/history/                 - Patient history summary

Query parameters for record list:
- ?state=pending_verification|verified|rejected
- ?patient_id=<uuid>
- ?q=<text> (diagnosis, patient name)
"""
import logging
import uuid

from django.conf import settings
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.models import RoleChoices, User
from apps.authz.permissions import IsApprovedUser
from apps.clinical import selectors, services
from apps.clinical.permissions import CorrectionRequestPermission, MedicalRecordPermission
from apps.clinical.serializers import (
    CorrectionRequestCreateSerializer,
    CorrectionRequestSerializer,
    EditRecordSerializer,
    ImageUploadSerializer,
    MedicalRecordCreateSerializer,
    MedicalRecordDetailSerializer,
    MedicalRecordListSerializer,
    RejectRecordSerializer,
    ResolveCorrectionSerializer,
    VersionedActionSerializer,
)
from apps.core.exceptions import AuthorizationError, NotFoundError
from apps.core.observability import metrics

logger = logging.getLogger(__name__)


class MedicalRecordViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [MedicalRecordPermission]
    lookup_value_regex = '[0-9a-f-]{36}'

    def get_queryset(self):
        queryset = selectors.records_visible_to(self.request.user)

        state = self.request.query_params.get('state')
        if state:
            queryset = queryset.filter(state=state)

        patient_id = _parse_uuid(self.request.query_params.get('patient_id'))
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)

        q = self.request.query_params.get('q')
        if q:
            queryset = queryset.filter(
                Q(diagnosed_disease__icontains=q) |
                Q(patient__first_name__icontains=q) |
                Q(patient__last_name__icontains=q)
            )

        return queryset.order_by('-visit_date', '-created_at')

    def get_serializer_class(self):
        if self.action == 'list':
            return MedicalRecordListSerializer
        return MedicalRecordDetailSerializer

    def get_object(self):
        record = self.get_queryset().filter(pk=self.kwargs['pk']).first()
        if record is None:
            raise NotFoundError('Medical record not found', operation=self.action)
        return record

    def _detail(self, record, status_code=status.HTTP_200_OK):
        return Response(MedicalRecordDetailSerializer(record).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = MedicalRecordCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with metrics.lifecycle_operation_duration_seconds.labels(operation='create_record').time():
            record = services.create_record(
                request.user,
                patient_id=data['patient_id'],
                doctor_id=data['doctor_id'],
                fields=serializer.clinical_fields(),
                consent_id=data.get('consent_id'),
                require_consent=settings.RECORDS_REQUIRE_PATIENT_CONSENT,
                request=request,
            )
        return self._detail(record, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def verify(self, request, pk=None):
        serializer = VersionedActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with metrics.lifecycle_operation_duration_seconds.labels(operation='verify_record').time():
            record = services.verify_record(
                request.user, pk,
                expected_version=serializer.validated_data.get('row_version'),
                request=request,
            )
        return self._detail(record)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        serializer = RejectRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with metrics.lifecycle_operation_duration_seconds.labels(operation='reject_record').time():
            record = services.reject_record(
                request.user, pk,
                reason=serializer.validated_data['reason'],
                expected_version=serializer.validated_data.get('row_version'),
                request=request,
            )
        return self._detail(record)

    @action(detail=True, methods=['patch'])
    def edit(self, request, pk=None):
        """
        Body: {"changes": {...}, "reverify": false, "row_version": 3}

        With ``reverify`` the doctor edits and verifies again in one step.
        """
        serializer = EditRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        operation = 'edit_and_reverify_record' if data['reverify'] else 'edit_record'
        edit = services.edit_and_reverify_record if data['reverify'] else services.edit_record
        with metrics.lifecycle_operation_duration_seconds.labels(operation=operation).time():
            record = edit(
                request.user, pk, data['changes'],
                expected_version=data.get('row_version'),
                request=request,
            )
        return self._detail(record)

    @action(detail=True, methods=['post'], parser_classes=[MultiPartParser, FormParser])
    def images(self, request, pk=None):
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = services.attach_record_image(
            request.user, pk, serializer.validated_data['file'], request=request
        )
        return self._detail(record, status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        services.soft_delete_record(request.user, kwargs['pk'], request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CorrectionRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = CorrectionRequestSerializer
    permission_classes = [CorrectionRequestPermission]
    lookup_value_regex = '[0-9a-f-]{36}'

    def get_queryset(self):
        queryset = selectors.corrections_visible_to(self.request.user)

        state = self.request.query_params.get('state')
        if state:
            queryset = queryset.filter(state=state)

        record_id = _parse_uuid(self.request.query_params.get('record_id'))
        if record_id:
            queryset = queryset.filter(record_id=record_id)

        return queryset.order_by('-created_at')

    def get_object(self):
        correction = self.get_queryset().filter(pk=self.kwargs['pk']).first()
        if correction is None:
            raise NotFoundError('Correction request not found', operation=self.action)
        return correction

    def create(self, request, *args, **kwargs):
        serializer = CorrectionRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with metrics.lifecycle_operation_duration_seconds.labels(operation='request_correction').time():
            correction = services.request_correction(
                request.user,
                data['record_id'],
                reason=data['reason'],
                proposed_changes=data['proposed_changes'],
                priority=data['priority'],
                description=data['description'],
                request=request,
            )
        return Response(CorrectionRequestSerializer(correction).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        serializer = ResolveCorrectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with metrics.lifecycle_operation_duration_seconds.labels(operation='resolve_correction').time():
            correction = services.resolve_correction(
                request.user, pk,
                action=data['action'],
                response_text=data['response_text'],
                record_changes=data.get('record_changes'),
                request=request,
            )
        correction.refresh_from_db()
        return Response(CorrectionRequestSerializer(correction).data)


class DashboardView(APIView):
    """Role-specific statistics for the signed-in principal."""
    permission_classes = [IsApprovedUser]

    def get(self, request):
        user = request.user
        if user.role == RoleChoices.DOCTOR:
            return Response(selectors.doctor_dashboard(user))
        if user.role == RoleChoices.MANAGEMENT:
            return Response(selectors.management_dashboard(user))
        if user.role == RoleChoices.ADMIN:
            return Response(selectors.admin_dashboard())
        return Response(selectors.patient_history_summary(user))


class PatientHistoryView(APIView):
    """
    Verified-history summary.

    Patients get their own. Doctors and admins pass ?patient_id=; a doctor
    only for patients who have a record addressed to them.
    """
    permission_classes = [IsApprovedUser]

    def get(self, request):
        user = request.user
        if user.role == RoleChoices.PATIENT:
            return Response(selectors.patient_history_summary(user))

        if user.role not in (RoleChoices.DOCTOR, RoleChoices.ADMIN):
            raise AuthorizationError('Not allowed to view patient history', operation='patient_history')

        patient_id = _parse_uuid(request.query_params.get('patient_id'))
        patient = User.objects.filter(id=patient_id, role=RoleChoices.PATIENT).first() if patient_id else None
        if patient is None:
            raise NotFoundError('Patient not found', operation='patient_history')

        if user.role == RoleChoices.DOCTOR and not patient.patient_records.filter(doctor=user).exists():
            raise AuthorizationError('Patient has no records addressed to you', operation='patient_history')

        return Response(selectors.patient_history_summary(patient))


def _parse_uuid(value):
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
