# Initial migration for consents app: OTP-gated record entry consent

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='RecordEntryConsent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('otp_hash', models.CharField(help_text='Hashed one-time code (never stored in clear)', max_length=128)),
                ('expires_at', models.DateTimeField()),
                ('attempts', models.PositiveSmallIntegerField(default=0)),
                ('resend_count', models.PositiveSmallIntegerField(default=0)),
                ('state', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('verified', 'Verified'),
                        ('consumed', 'Consumed'),
                        ('locked', 'Locked'),
                    ],
                    default='pending',
                    max_length=10,
                )),
                ('verified_at', models.DateTimeField(blank=True, null=True)),
                ('consumed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='record_entry_consents',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('requested_by', models.ForeignKey(
                    help_text='Management user who started the consent session',
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='initiated_record_entry_consents',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'verbose_name': 'Record Entry Consent',
                'verbose_name_plural': 'Record Entry Consents',
                'db_table': 'record_entry_consent',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['requested_by', 'state'], name='idx_consent_requester_state'),
                    models.Index(fields=['patient', 'state'], name='idx_consent_patient_state'),
                    models.Index(fields=['expires_at'], name='idx_consent_expires'),
                ],
            },
        ),
    ]
