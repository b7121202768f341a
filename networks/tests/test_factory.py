"""
Tests for the adapter factory.

Run with: python -m pytest networks/tests/test_factory.py -v
"""

import pytest

from core.exceptions import ValidationError
from networks.services.adapters import CJAdapter, ImpactAdapter
from networks.services.factory import AdapterFactory
from networks.types import NetworkConfig, NetworkType, ProductFilters


class TestValidateConfig:

    def test_valid(self, factory, config_for):
        assert factory.validate_config(config_for(NetworkType.CJ)) == (True, [])

    def test_missing_credentials_listed(self, factory, config_for):
        valid, errors = factory.validate_config(config_for(NetworkType.IMPACT, credentials={"accountSid": "x"}))
        assert valid is False
        assert errors == ["Missing credential: authToken", "Missing credential: partnerId"]

    def test_missing_tenant(self, factory, config_for):
        valid, errors = factory.validate_config(config_for(NetworkType.CJ, tenant_id=""))
        assert "tenantId is required" in errors

    def test_webhook_secret_required_for_signing_networks(self, factory, config_for):
        config = config_for(
            NetworkType.IMPACT, webhook_enabled=True,
        )
        valid, errors = factory.validate_config(config)
        assert valid is False
        assert "Webhook secret is required when webhooks are enabled" in errors

        config.settings.webhook_secret = "s3cret"
        assert factory.validate_config(config) == (True, [])

    def test_shareasale_secret_key_doubles_as_webhook_secret(self, factory, config_for):
        assert factory.validate_config(config_for(NetworkType.SHAREASALE, webhook_enabled=True))[0] is True

    def test_inverted_price_range(self, factory, config_for):
        config = config_for(NetworkType.CJ, product_filters=ProductFilters(price_min=100, price_max=10))
        valid, errors = factory.validate_config(config)
        assert valid is False
        assert errors == ["productFilters.priceRange min must not exceed max"]

    def test_unknown_network(self):
        config = NetworkConfig(tenant_id="t", network_type=NetworkType.CJ)
        impact_only = AdapterFactory(adapters={NetworkType.IMPACT: ImpactAdapter})
        valid, errors = impact_only.validate_config(config)
        assert valid is False
        assert errors[0].startswith("Unsupported network type")


class TestCreate:

    def test_builds_the_right_adapter(self, factory, config_for):
        assert isinstance(factory.create(config_for(NetworkType.CJ)), CJAdapter)
        assert isinstance(factory.create(config_for(NetworkType.IMPACT)), ImpactAdapter)

    def test_cached_per_network_and_tenant(self, factory, config_for):
        config = config_for(NetworkType.CJ)
        assert factory.create(config) is factory.create(config)
        other_tenant = factory.create(config_for(NetworkType.CJ, tenant_id="tenant-b"))
        assert other_tenant is not factory.create(config)
        assert len(factory.cached_keys) == 2

    def test_new_config_object_rebuilds(self, factory, config_for):
        first = factory.create(config_for(NetworkType.CJ))
        second = factory.create(config_for(NetworkType.CJ))
        assert first is not second
        assert second.config.tenant_id == "tenant-a"

    def test_invalid_config_raises(self, factory, config_for):
        with pytest.raises(ValidationError) as exc_info:
            factory.create(config_for(NetworkType.CJ, credentials={}))
        assert len(exc_info.value.errors) == 3

    def test_remove_and_clear(self, factory, config_for):
        factory.create(config_for(NetworkType.CJ))
        assert factory.remove(NetworkType.CJ, "tenant-a") is True
        assert factory.remove("cj", "tenant-a") is False

        factory.create(config_for(NetworkType.IMPACT))
        factory.clear_cache()
        assert factory.cached_keys == []

    def test_test_connection(self, factory, config_for, transport):
        config = config_for(NetworkType.CJ)
        transport.add(json_body={})
        transport.add(json_body={})

        assert factory.test_connection(config) is True
        assert len(transport.requests) == 2
        assert factory.create(config).is_authenticated is True

    def test_test_connection_rejected(self, factory, config_for, transport):
        config = config_for(NetworkType.CJ)
        transport.add(status=401)

        assert factory.test_connection(config) is False
        assert len(transport.requests) == 1
        assert factory.create(config).is_authenticated is False

    def test_available_networks_and_capabilities(self, factory):
        assert set(factory.available_networks()) == set(NetworkType)
        assert factory.capabilities_for("rakuten").max_batch_size == 200
        with pytest.raises(ValidationError):
            factory.capabilities_for("awin")
