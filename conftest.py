"""
Pytest configuration for the entire test suite.

This file configures the test database to use SQLite and keeps every
side channel (task queue, e-mail, file storage) in-process.
"""
from django.conf import settings


def pytest_configure():
    """Configure Django settings for tests."""
    # Force SQLite for tests (faster, no Docker dependency)
    settings.DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',  # In-memory database for speed
        }
    }
    # pytest-django runs django.setup() before this hook, so the connection
    # handler may already have cached the original DATABASES; rebuild it.
    from django.db import connections
    connections.close_all()
    connections._settings = None
    connections.__dict__.pop('settings', None)
    for alias in settings.DATABASES:
        if hasattr(connections._connections, alias):
            del connections[alias]

    # Faster password hashing
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

    # Celery tasks run inline
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True
    settings.CELERY_BROKER_URL = 'memory://'
    settings.CELERY_RESULT_BACKEND = 'cache+memory://'

    # Report images never leave the process
    settings.STORAGES = {
        'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
        'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
    }

    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.NOTIFICATION_EMAIL_ENABLED = True
