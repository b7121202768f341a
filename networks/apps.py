"""
Networks App Configuration
==========================

Validates the environment configuration once Django is up, before any
adapter or the manager is built from it.
"""

from django.apps import AppConfig


class NetworksConfig(AppConfig):
    name = "networks"
    verbose_name = "Affiliate Networks"

    def ready(self):
        from core.config import validate_config_on_startup
        validate_config_on_startup()
