"""
Shared pytest configuration.

Configures Django once for the whole run so tests can import views,
signals and settings without a database.
"""

import os

import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "affsync.settings")
os.environ.setdefault("DJANGO_ENV", "development")

django.setup()
