"""
Tests for inbound webhook dispatch and the webhook endpoint.

Run with: python -m pytest networks/tests/test_webhooks.py -v
"""

import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIRequestFactory

from core.exceptions import ConfigurationError
from networks.services.adapters import ShareASaleAdapter
from networks.services.webhooks import (
    WebhookResult,
    generate_webhook_secret,
    get_webhook_url,
    ip_allowed,
)
from networks.types import ConversionStatus, NetworkType, WebhookEventType
from networks.views import AffiliateWebhookView

SHAREASALE_BODY = b"transID=T1&status=pending&amount=80.00&commission=8.00&merchantID=m1"
CJ_BODY = json.dumps({"type": "commission_create", "data": {"commission-id": "K1", "sale-amount": "20"}}).encode()


def sign(body, secret="shh"):
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# =============================================================================
# Helpers
# =============================================================================

class TestIpAllowed:

    @pytest.mark.parametrize("addr,allowlist,expected", [
        ("10.0.0.7", ["10.0.0.7"], True),
        ("10.0.0.7", ["10.0.0.0/24"], True),
        ("10.0.1.7", ["10.0.0.0/24"], False),
        ("2001:db8::1", ["2001:db8::/32"], True),
        (None, ["10.0.0.0/8"], False),
        ("not-an-ip", ["10.0.0.0/8"], False),
        ("10.0.0.7", [], False),
    ])
    def test_match(self, addr, allowlist, expected):
        assert ip_allowed(addr, allowlist) is expected

    def test_invalid_entries_are_skipped(self):
        assert ip_allowed("10.0.0.7", ["garbage", "10.0.0.0/8"]) is True


class TestWebhookHelpers:

    def test_url(self):
        assert get_webhook_url("cj", "https://hooks.example/") == "https://hooks.example/api/webhooks/affiliates/cj/"

    def test_url_needs_a_base(self):
        settings = MagicMock()
        settings.webhooks.base_url = ""
        with patch("networks.services.webhooks.get_config", return_value=settings):
            with pytest.raises(ConfigurationError):
                get_webhook_url("cj")

    def test_url_rejects_unknown_network(self):
        with pytest.raises(ValueError):
            get_webhook_url("awin", "https://hooks.example")

    def test_secret_is_random_hex(self):
        first, second = generate_webhook_secret(), generate_webhook_secret()
        assert len(first) == 64
        int(first, 16)
        assert first != second

    def test_result_status_codes(self):
        assert WebhookResult(success=True).status_code == 200
        assert WebhookResult(success=False, should_retry=True).status_code == 500
        assert WebhookResult(success=False).status_code == 400
        assert WebhookResult(success=False, error="bad").to_dict() == {
            "success": False, "error": "bad", "shouldRetry": False,
        }


# =============================================================================
# Dispatcher
# =============================================================================

class TestSignedNetworks:

    @pytest.fixture
    def registered(self, dispatcher, config_for):
        config = config_for(NetworkType.SHAREASALE, webhook_enabled=True)
        dispatcher.register(config)
        return config

    def test_valid_signature(self, dispatcher, registered, received):
        result = dispatcher.dispatch(
            "shareasale", SHAREASALE_BODY, headers={"X-ShareASale-Signature": sign(SHAREASALE_BODY)},
        )

        assert result.success is True
        assert result.event_type is WebhookEventType.CONVERSION_CREATED
        name, sender, kwargs = received[-1]
        assert name == "conversion_received"
        assert sender is NetworkType.SHAREASALE
        assert kwargs["conversion"].id == "shareasale-T1"
        assert kwargs["conversion"].status is ConversionStatus.PENDING

    def test_header_lookup_is_case_insensitive(self, dispatcher, registered):
        result = dispatcher.dispatch(
            "shareasale", SHAREASALE_BODY, headers={"x-shareasale-signature": "sha256=" + sign(SHAREASALE_BODY)},
        )
        assert result.success is True

    def test_invalid_signature_never_reaches_adapter(self, dispatcher, registered):
        with patch.object(ShareASaleAdapter, "handle_webhook") as handle:
            result = dispatcher.dispatch(
                "shareasale", SHAREASALE_BODY, headers={"X-ShareASale-Signature": sign(SHAREASALE_BODY, "wrong")},
            )

        handle.assert_not_called()
        assert result.success is False
        assert result.error == "Invalid webhook signature"
        assert result.should_retry is False
        assert result.status_code == 400

    def test_missing_signature(self, dispatcher, registered):
        result = dispatcher.dispatch("shareasale", SHAREASALE_BODY, headers={})
        assert result.success is False
        assert result.should_retry is False

    def test_tampered_body(self, dispatcher, registered):
        signature = sign(SHAREASALE_BODY)
        result = dispatcher.dispatch(
            "shareasale", SHAREASALE_BODY + b"&amount=1", headers={"X-ShareASale-Signature": signature},
        )
        assert result.success is False


class TestUnsignedNetworks:

    def test_rejected_without_opt_in(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.CJ, webhook_enabled=True))

        with patch("networks.services.adapters.cj.CJAdapter.handle_webhook") as handle:
            result = dispatcher.dispatch("cj", CJ_BODY, remote_addr="203.0.113.9")

        handle.assert_not_called()
        assert result.success is False
        assert "rejected" in result.error
        assert result.should_retry is False

    def test_accepted_when_tenant_opts_in(self, dispatcher, config_for, received):
        dispatcher.register(config_for(NetworkType.CJ, webhook_enabled=True, allow_unverified_webhooks=True))

        with patch("networks.services.adapters.cj.CJAdapter.handle_webhook") as handle:
            result = dispatcher.dispatch("cj", CJ_BODY)

        assert result.success is True
        payload = handle.call_args[0][0]
        assert payload.verified is False
        assert payload.data["commission-id"] == "K1"

    def test_accepted_from_allowlisted_range(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.CJ, webhook_enabled=True, webhook_ip_allowlist=["198.51.100.0/24"]))

        result = dispatcher.dispatch("cj", CJ_BODY, remote_addr="198.51.100.20")

        assert result.success is True
        assert result.event_type is WebhookEventType.CONVERSION_CREATED


class TestRouting:

    def test_unknown_network(self, dispatcher):
        result = dispatcher.dispatch("awin", b"{}")
        assert result.success is False
        assert result.error == "Unknown network type: awin"
        assert result.should_retry is False

    def test_not_configured(self, dispatcher):
        result = dispatcher.dispatch("impact", b"{}")
        assert result.success is False
        assert "No impact configuration" in result.error

    def test_webhooks_disabled_for_config(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.IMPACT))
        result = dispatcher.dispatch("impact", b"{}")
        assert result.error == "Webhooks are disabled for impact"

    def test_webhooks_disabled_globally(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.SHAREASALE, webhook_enabled=True))
        settings = MagicMock()
        settings.webhooks.enabled = False

        with patch("networks.services.webhooks.get_config", return_value=settings):
            result = dispatcher.dispatch("shareasale", SHAREASALE_BODY)

        assert result.error == "Webhooks are disabled"

    def test_routes_by_tenant(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.SHAREASALE, tenant_id="tenant-a"))
        dispatcher.register(config_for(
            NetworkType.SHAREASALE, tenant_id="tenant-b", webhook_enabled=True, webhook_secret="b-secret",
        ))
        headers = {"X-ShareASale-Signature": sign(SHAREASALE_BODY, "b-secret")}

        assert dispatcher.dispatch("shareasale", SHAREASALE_BODY, headers=headers).success is True
        assert dispatcher.dispatch("shareasale", SHAREASALE_BODY, headers=headers, tenant_id="tenant-b").success
        assert dispatcher.dispatch("shareasale", SHAREASALE_BODY, headers=headers, tenant_id="tenant-a").success is False

    def test_unregister(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.CJ, webhook_enabled=True))
        dispatcher.unregister("cj", "tenant-a")
        assert dispatcher.configs == []

    def test_malformed_body_is_not_retried(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.CJ, webhook_enabled=True, allow_unverified_webhooks=True))
        result = dispatcher.dispatch("cj", b"{not json")
        assert result.success is False
        assert result.should_retry is False

    def test_unexpected_handler_error_is_retried(self, dispatcher, config_for):
        dispatcher.register(config_for(NetworkType.CJ, webhook_enabled=True, allow_unverified_webhooks=True))

        with patch("networks.services.adapters.cj.CJAdapter.handle_webhook", side_effect=RuntimeError("db down")):
            result = dispatcher.dispatch("cj", CJ_BODY)

        assert result.success is False
        assert result.should_retry is True
        assert result.status_code == 500


# =============================================================================
# Endpoint
# =============================================================================

class TestAffiliateWebhookView:

    @pytest.fixture
    def manager(self, dispatcher):
        manager = MagicMock()
        manager.dispatcher = dispatcher
        with patch("networks.views.get_network_manager", return_value=manager):
            yield manager

    def _post(self, network_type, body, content_type="application/x-www-form-urlencoded", path="", **extra):
        request = APIRequestFactory().post(
            f"/api/webhooks/affiliates/{network_type}/{path}", data=body, content_type=content_type, **extra,
        )
        return AffiliateWebhookView.as_view()(request, network_type=network_type)

    def test_signed_delivery(self, manager, config_for):
        manager.dispatcher.register(config_for(NetworkType.SHAREASALE, webhook_enabled=True))

        response = self._post("shareasale", SHAREASALE_BODY, HTTP_X_SHAREASALE_SIGNATURE=sign(SHAREASALE_BODY))

        assert response.status_code == 200
        assert response.data == {"success": True, "eventType": "conversion.created"}

    def test_bad_signature_is_400(self, manager, config_for):
        manager.dispatcher.register(config_for(NetworkType.SHAREASALE, webhook_enabled=True))

        response = self._post("shareasale", SHAREASALE_BODY, HTTP_X_SHAREASALE_SIGNATURE="nope")

        assert response.status_code == 400
        assert response.data["shouldRetry"] is False

    def test_remote_addr_reaches_allowlist(self, manager, config_for):
        manager.dispatcher.register(config_for(
            NetworkType.CJ, webhook_enabled=True, webhook_ip_allowlist=["192.0.2.0/24"],
        ))

        allowed = self._post("cj", CJ_BODY, content_type="application/json", REMOTE_ADDR="192.0.2.44")
        rejected = self._post("cj", CJ_BODY, content_type="application/json", REMOTE_ADDR="203.0.113.1")

        assert allowed.status_code == 200
        assert rejected.status_code == 400

    def test_tenant_query_param(self, manager, config_for):
        manager.dispatcher.register(config_for(
            NetworkType.CJ, tenant_id="tenant-b", webhook_enabled=True, allow_unverified_webhooks=True,
        ))

        assert self._post("cj", CJ_BODY, content_type="application/json", path="?tenant=tenant-b").status_code == 200
        assert self._post("cj", CJ_BODY, content_type="application/json", path="?tenant=other").status_code == 400
