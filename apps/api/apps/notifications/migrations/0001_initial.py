# Initial migration for notifications app: in-app notifications with e-mail delivery tracking

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('clinical', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('type', models.CharField(
                    choices=[
                        ('new_record_verification', 'New Record Awaiting Verification'),
                        ('record_added', 'Record Added'),
                        ('record_verified', 'Record Verified'),
                        ('record_rejected', 'Record Rejected'),
                        ('record_updated', 'Record Updated'),
                        ('correction_requested', 'Correction Requested'),
                        ('correction_approved', 'Correction Approved'),
                        ('correction_rejected', 'Correction Rejected'),
                        ('account_verified', 'Account Verified'),
                        ('account_rejected', 'Account Rejected'),
                        ('account_suspended', 'Account Suspended'),
                        ('role_updated', 'Role Updated'),
                    ],
                    max_length=40,
                )),
                ('title', models.CharField(max_length=255)),
                ('message', models.TextField()),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('is_read', models.BooleanField(default=False)),
                ('read_at', models.DateTimeField(blank=True, null=True)),
                ('email_status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('sent', 'Sent'),
                        ('failed', 'Failed'),
                        ('skipped', 'Skipped'),
                    ],
                    default='pending',
                    max_length=10,
                )),
                ('email_attempts', models.PositiveSmallIntegerField(default=0)),
                ('emailed_at', models.DateTimeField(blank=True, null=True)),
                ('email_error', models.CharField(blank=True, max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('recipient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='notifications',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('record', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='notifications',
                    to='clinical.medicalrecord',
                )),
                ('correction_request', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='notifications',
                    to='clinical.correctionrequest',
                )),
            ],
            options={
                'verbose_name': 'Notification',
                'verbose_name_plural': 'Notifications',
                'db_table': 'notification',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['recipient', 'is_read'], name='idx_notification_unread'),
                    models.Index(fields=['recipient', '-created_at'], name='idx_notification_recent'),
                    models.Index(fields=['email_status'], name='idx_notification_email'),
                    models.Index(fields=['created_at'], name='idx_notification_created'),
                ],
            },
        ),
    ]
