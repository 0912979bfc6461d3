"""
Root pytest configuration for the Django project.

Sets environment defaults before Django settings are imported so the suite
runs against SQLite and the local-memory cache, with Celery tasks executed
inline. App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os
import tempfile

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("CACHE_BACKEND", "locmem")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("SECURE_SSL_REDIRECT", "False")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "settlement-logs"))


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()
