"""
Celery Configuration for AffSync
"""

import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'affsync.settings')

app = Celery('affsync')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
