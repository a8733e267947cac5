"""
Record entry consent serializers.
"""
from rest_framework import serializers

from apps.authz.serializers import DirectoryUserSerializer
from apps.consents.models import RecordEntryConsent


class ConsentInitiateSerializer(serializers.Serializer):
    patient_email = serializers.EmailField()
    patient_password = serializers.CharField(write_only=True, trim_whitespace=False)


class ConsentVerifySerializer(serializers.Serializer):
    consent_id = serializers.UUIDField()
    otp = serializers.RegexField(r'^\d{6}$', error_messages={'invalid': 'OTP must be 6 digits.'})


class ConsentSerializer(serializers.ModelSerializer):
    patient = DirectoryUserSerializer(read_only=True)
    usable_until = serializers.DateTimeField(read_only=True)

    class Meta:
        model = RecordEntryConsent
        fields = [
            'id',
            'patient',
            'state',
            'expires_at',
            'attempts',
            'resend_count',
            'verified_at',
            'usable_until',
            'consumed_at',
            'created_at',
        ]
        read_only_fields = fields
