"""
Tests for configuration validation.

Run with: python -m pytest core/tests/test_validators.py -v
"""

from dataclasses import fields
from unittest.mock import MagicMock, patch

import pytest
from django.core.exceptions import ImproperlyConfigured

from affsync.config import APIKeysConfig, AppConfig, SecurityConfig, SyncConfig
from core.config.validators import (
    collect_config_issues,
    partially_configured_networks,
    validate_config_on_startup,
)


def api_keys(**values):
    blank = {f.name: "" for f in fields(APIKeysConfig)}
    blank.update(values)
    return APIKeysConfig(**blank)


class TestApiKeys:

    def test_configured_services(self):
        apis = api_keys(cj_api_token="t", cj_developer_id="d", cj_website_id="w", rakuten_api_token="r")
        assert apis.configured_services == ["cj"]

    def test_credentials_drop_empty_values(self):
        apis = api_keys(rakuten_api_token="r", rakuten_site_id="s")
        assert apis.credentials_for("rakuten") == {"publisherId": "s", "apiKey": "r"}
        assert apis.credentials_for("awin") == {}


class TestPartiallyConfigured:

    def test_none_configured(self):
        assert partially_configured_networks(api_keys()) == []

    def test_complete_network_is_fine(self):
        apis = api_keys(impact_account_sid="a", impact_auth_token="b", impact_partner_id="c")
        assert partially_configured_networks(apis) == []

    def test_partial_networks_reported(self):
        apis = api_keys(impact_account_sid="a", cj_api_token="t")
        assert partially_configured_networks(apis) == ["cj", "impact"]

    def test_optional_fields_ignored(self):
        apis = api_keys(rakuten_secret_key="s", shareasale_api_version="3.0")
        assert partially_configured_networks(apis) == []


class TestAppConfigValidate:

    def test_production_issues(self):
        app_config = AppConfig(
            environment="production",
            debug=True,
            apis=api_keys(),
            security=SecurityConfig(secret_key="django-insecure-x"),
        )
        issues = app_config.validate()
        assert "CRITICAL: Using insecure SECRET_KEY in production!" in issues
        assert "WARNING: DEBUG=True in production!" in issues

    def test_concurrency_must_be_positive(self):
        app_config = AppConfig(environment="development", apis=api_keys(), sync=SyncConfig(max_concurrent_syncs=0))
        assert "CRITICAL: AFFSYNC_MAX_CONCURRENT_SYNCS must be at least 1" in app_config.validate()


class TestStartupValidation:

    def _config(self, issues, production=False, apis=None):
        config = MagicMock()
        config.validate.return_value = list(issues)
        config.is_production = production
        config.apis = apis or api_keys()
        return config

    def test_collect_adds_partial_networks(self):
        config = self._config(["INFO: x"], apis=api_keys(cj_developer_id="d"))
        assert collect_config_issues(config) == [
            "INFO: x", "WARNING: cj credentials are incomplete; network disabled",
        ]

    def test_critical_in_production_raises(self):
        config = self._config(["CRITICAL: broken"], production=True)
        with patch("affsync.config.config", config):
            with pytest.raises(ImproperlyConfigured):
                validate_config_on_startup()

    def test_critical_in_development_only_logs(self):
        config = self._config(["CRITICAL: broken"])
        with patch("affsync.config.config", config):
            validate_config_on_startup()
        config.log_status.assert_called_once()
