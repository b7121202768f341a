"""
Inbound webhook dispatch.

Pipeline for every request::

    resolve config → verify (signature, or explicit trust) → parse body
        → adapter.handle_webhook(payload)

Nothing reaches an adapter's ``handle_webhook`` until the trust check has
passed. Networks with a signature scheme must present a valid
``X-<Network>-Signature``; networks without one are accepted only when the
tenant opted in to unverified webhooks or the source IP is allow-listed,
and their payloads are marked ``verified=False``.
"""

import ipaddress
import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from requests.structures import CaseInsensitiveDict

from affsync.config import get_config
from core.exceptions import AffSyncError, ConfigurationError, WebhookError
from networks.services.factory import AdapterFactory, adapter_factory
from networks.types import NetworkConfig, NetworkType, WebhookEventType

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    success: bool
    event_type: Optional[WebhookEventType] = None
    error: Optional[str] = None
    should_retry: bool = False

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        # 5xx tells the network to redeliver
        return 500 if self.should_retry else 400

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "eventType": self.event_type.value if self.event_type else None}
        return {"success": False, "error": self.error, "shouldRetry": self.should_retry}


def get_webhook_url(network_type, base_url: str = None) -> str:
    base_url = (base_url or get_config().webhooks.base_url).rstrip("/")
    if not base_url:
        raise ConfigurationError("Webhook base URL is not set", setting="AFFSYNC_WEBHOOK_BASE_URL")
    return f"{base_url}/api/webhooks/affiliates/{NetworkType(network_type).value}/"


def generate_webhook_secret() -> str:
    return secrets.token_hex(32)


def ip_allowed(remote_addr: Optional[str], allowlist: Iterable[str]) -> bool:
    """Match an address against plain IPs or CIDR ranges."""
    if not remote_addr:
        return False
    try:
        address = ipaddress.ip_address(remote_addr.strip())
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if address in ipaddress.ip_network(entry.strip(), strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring invalid webhook allowlist entry {entry!r}")
    return False


class WebhookDispatcher:
    """Routes inbound webhook requests to the right tenant's adapter."""

    def __init__(self, factory: AdapterFactory = None):
        self.factory = factory or adapter_factory
        self._configs: Dict[Tuple[NetworkType, str], NetworkConfig] = {}
        self._lock = threading.Lock()

    # ── Config registry ─────────────────────────────────────────────

    def register(self, config: NetworkConfig) -> None:
        with self._lock:
            self._configs[config.key] = config

    def unregister(self, network_type, tenant_id: str) -> None:
        with self._lock:
            self._configs.pop((NetworkType(network_type), tenant_id), None)

    @property
    def configs(self) -> List[NetworkConfig]:
        return list(self._configs.values())

    def resolve(self, network_type: NetworkType, tenant_id: str = None) -> NetworkConfig:
        """
        Config that should receive a webhook for ``network_type``.

        Without a tenant id the first config with webhooks enabled wins, so a
        deployment with several tenants on one network should route by
        tenant.
        """
        with self._lock:
            if tenant_id is not None:
                config = self._configs.get((network_type, tenant_id))
                candidates = [config] if config else []
            else:
                candidates = [c for key, c in self._configs.items() if key[0] == network_type]

        if not candidates:
            raise WebhookError(
                f"No {network_type.value} configuration for webhooks", network=network_type, code="NOT_CONFIGURED",
            )
        for config in candidates:
            if config.settings.webhook_enabled:
                return config
        raise WebhookError(
            f"Webhooks are disabled for {network_type.value}", network=network_type, code="WEBHOOKS_DISABLED",
        )

    # ── Dispatch ────────────────────────────────────────────────────

    def _verify(self, adapter, config: NetworkConfig, raw_body: bytes, headers: Mapping[str, str],
                remote_addr: Optional[str]) -> bool:
        """True when signature-verified, False when trusted without one. Raises otherwise."""
        if adapter.signs_webhooks:
            signature = headers.get(adapter.SIGNATURE_HEADER, "")
            if not adapter.validate_webhook_signature(raw_body, signature):
                raise WebhookError(
                    "Invalid webhook signature", network=config.network_type, code="INVALID_SIGNATURE",
                )
            return True

        defaults = get_config().webhooks
        allowlist = list(config.settings.webhook_ip_allowlist) + list(defaults.ip_allowlist)
        if ip_allowed(remote_addr, allowlist):
            return False
        if config.settings.allow_unverified_webhooks or defaults.allow_unverified:
            return False
        raise WebhookError(
            f"Unverified {config.network_type.value} webhook from {remote_addr or 'unknown address'} rejected",
            network=config.network_type,
            code="UNTRUSTED_SOURCE",
        )

    def dispatch(self, network_type, raw_body: bytes, headers: Mapping[str, str] = None,
                 remote_addr: str = None, tenant_id: str = None) -> WebhookResult:
        headers = CaseInsensitiveDict(headers or {})
        try:
            if not get_config().webhooks.enabled:
                raise WebhookError("Webhooks are disabled", code="WEBHOOKS_DISABLED")
            try:
                network = NetworkType(network_type)
            except ValueError:
                raise WebhookError(f"Unknown network type: {network_type}", code="UNKNOWN_NETWORK") from None

            config = self.resolve(network, tenant_id)
            adapter = self.factory.create(config)
            adapter.ensure_capability("webhooks", "handle_webhook")

            verified = self._verify(adapter, config, raw_body, headers, remote_addr)
            payload = adapter.parse_webhook_body(raw_body)
            payload.verified = verified
            adapter.handle_webhook(payload)

        except AffSyncError as exc:
            should_retry = getattr(exc, "retryable", True)
            logger.warning(f"Webhook for {network_type} rejected: {exc.message} (retry={should_retry})")
            return WebhookResult(success=False, error=exc.message, should_retry=should_retry)
        except Exception as exc:
            logger.exception(f"Unexpected error handling {network_type} webhook")
            return WebhookResult(success=False, error=str(exc) or type(exc).__name__, should_retry=True)

        return WebhookResult(success=True, event_type=payload.event_type)


# Singleton instance
webhook_dispatcher = WebhookDispatcher()
