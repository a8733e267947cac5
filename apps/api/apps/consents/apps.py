"""Consents app configuration."""
from django.apps import AppConfig


class ConsentsConfig(AppConfig):
    """Patient consent (password + e-mailed OTP) for record entry."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.consents'
    verbose_name = 'Record Entry Consents'
