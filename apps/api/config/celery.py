"""
Celery application for background work (notification e-mail delivery).
"""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('medverify')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
