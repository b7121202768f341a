"""
Adapter Factory
===============

Builds and caches one adapter per ``(network_type, tenant_id)``.

Usage::

    from networks.services.factory import adapter_factory

    valid, errors = adapter_factory.validate_config(config)
    adapter = adapter_factory.create(config)
"""

import logging
import threading
from typing import Dict, List, Tuple

from core.exceptions import AffiliateNetworkError, ValidationError
from networks.services.adapters import ADAPTERS, NetworkAdapter
from networks.types import AdapterCapabilities, NetworkConfig, NetworkType

logger = logging.getLogger(__name__)


class AdapterFactory:
    """Adapter construction, validation and per-tenant caching."""

    def __init__(self, adapters: Dict[NetworkType, type] = None, **adapter_kwargs):
        self._adapters = dict(adapters or ADAPTERS)
        # Forwarded to every adapter (session, sleep, clock...); used by tests
        self._adapter_kwargs = adapter_kwargs
        self._cache: Dict[Tuple[NetworkType, str], NetworkAdapter] = {}
        self._lock = threading.Lock()

    def available_networks(self) -> List[NetworkType]:
        return list(self._adapters)

    def _adapter_class(self, network_type) -> type:
        try:
            return self._adapters[NetworkType(network_type)]
        except (KeyError, ValueError):
            raise ValidationError(f"Unsupported network type: {network_type}", field="networkType") from None

    def capabilities_for(self, network_type) -> AdapterCapabilities:
        return self._adapter_class(network_type).CAPABILITIES

    def validate_config(self, config: NetworkConfig) -> Tuple[bool, List[str]]:
        """Static checks only; never touches the network."""
        errors: List[str] = []
        if not config.tenant_id:
            errors.append("tenantId is required")

        try:
            adapter_class = self._adapter_class(config.network_type)
        except ValidationError as exc:
            return False, errors + [exc.message]

        for key in adapter_class.missing_credentials(config.credentials):
            errors.append(f"Missing credential: {key}")

        settings = config.settings
        if settings.webhook_enabled:
            if adapter_class.CAPABILITIES.requires_webhook_signature and not (
                settings.webhook_secret or config.credentials.get("secretKey")
            ):
                errors.append("Webhook secret is required when webhooks are enabled")
            if not adapter_class.CAPABILITIES.supports_webhooks:
                errors.append(f"{config.network_type.display_name} does not support webhooks")

        filters = settings.product_filters
        if filters is not None:
            if filters.price_min is not None and filters.price_max is not None and filters.price_min > filters.price_max:
                errors.append("productFilters.priceRange min must not exceed max")
            if (filters.min_commission_rate is not None and filters.max_commission_rate is not None
                    and filters.min_commission_rate > filters.max_commission_rate):
                errors.append("productFilters minCommissionRate must not exceed maxCommissionRate")

        return not errors, errors

    def create(self, config: NetworkConfig) -> NetworkAdapter:
        """Cached adapter for the config's ``(network_type, tenant_id)``."""
        valid, errors = self.validate_config(config)
        if not valid:
            raise ValidationError(
                f"Invalid {config.network_type.value} configuration", field="config", errors=errors,
            )

        with self._lock:
            adapter = self._cache.get(config.key)
            if adapter is None or adapter.config is not config:
                if adapter is not None:
                    adapter.close()
                adapter = self._adapter_class(config.network_type)(config, **self._adapter_kwargs)
                self._cache[config.key] = adapter
                logger.debug(f"Created {type(adapter).__name__} for tenant {config.tenant_id}")
            return adapter

    def test_connection(self, config: NetworkConfig) -> bool:
        """Build the adapter, authenticate it, then make one cheap read."""
        adapter = self.create(config)
        try:
            if not adapter.authenticate():
                return False
        except AffiliateNetworkError as exc:
            logger.info(f"Connection test for {config.network_type.value}/{config.tenant_id} failed: {exc.code}")
            return False
        return adapter.test_connection()

    def remove(self, network_type, tenant_id: str) -> bool:
        with self._lock:
            adapter = self._cache.pop((NetworkType(network_type), tenant_id), None)
        if adapter is None:
            return False
        adapter.close()
        return True

    def clear_cache(self) -> None:
        with self._lock:
            adapters, self._cache = list(self._cache.values()), {}
        for adapter in adapters:
            adapter.close()

    @property
    def cached_keys(self) -> List[Tuple[NetworkType, str]]:
        return list(self._cache)


# Singleton instance
adapter_factory = AdapterFactory()
