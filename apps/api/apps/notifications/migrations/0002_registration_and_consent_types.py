# Notification types for admin approval requests and verified record entry consent

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('notifications', '0001_initial'),
    ]

    operations = [
        migrations.AlterField(
            model_name='notification',
            name='type',
            field=models.CharField(
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
                    ('user_approval', 'New User Awaiting Approval'),
                    ('consent_verified', 'Patient Consent Verified'),
                ],
                max_length=40,
            ),
        ),
    ]
