"""
WSGI config for the settlement service.

Webhook intake and the order API are plain synchronous Django views, so
gunicorn serving this callable is the primary deployment target.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
