"""
WSGI config for the AffSync project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "affsync.settings")

application = get_wsgi_application()
