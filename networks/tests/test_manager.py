"""
Tests for the network manager: registration, syncs, scheduling and status.

Run with: python -m pytest networks/tests/test_manager.py -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from core.exceptions import AffiliateNetworkError, AuthenticationError, ConflictError, NotFoundError, ValidationError
from networks import signals
from networks.services import manager as manager_module
from networks.services.manager import NetworkManager, env_network_configs
from networks.types import NetworkStatus, NetworkType, SyncStatus


def cj_products(ids, total):
    products = [
        {"catalog-id": str(i), "advertiser-id": "adv1", "product-name": f"Item {i}", "price": "10"}
        for i in ids
    ]
    return {"cj-api": {"products": {"product": products, "total-matched": str(total)}}}


class WallClock:
    """Settable datetime clock for schedule checks."""

    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


@pytest.fixture
def wall_clock():
    return WallClock()


@pytest.fixture
def manager(factory, dispatcher, wall_clock):
    return NetworkManager(factory=factory, dispatcher=dispatcher, max_concurrent_syncs=2, clock=wall_clock)


# =============================================================================
# Configuration
# =============================================================================

class TestAddNetworkConfig:

    def test_add_registers_and_schedules(self, manager, config_for, received, wall_clock):
        config = config_for(NetworkType.CJ, auto_sync=True, sync_interval=30)

        manager.add_network_config(config, test_connection=False)

        assert manager.get_network_config("cj", "tenant-a") is config
        assert config in manager.dispatcher.configs
        assert config.next_sync_at == wall_clock.now + timedelta(minutes=30)
        assert [s.to_dict()["interval"] for s in manager.get_sync_schedules()] == [30]
        assert received[-1][0] == "network_config_added"

    def test_without_auto_sync_is_not_scheduled(self, manager, config_for):
        manager.add_network_config(config_for(NetworkType.CJ), test_connection=False)
        assert manager.get_sync_schedules() == []

    def test_connection_tested_by_default(self, manager, config_for, transport):
        transport.add(json_body={})
        transport.add(json_body={})
        config = manager.add_network_config(config_for(NetworkType.CJ))
        assert len(transport.requests) == 2
        assert manager.factory.create(config).is_authenticated is True

    def test_invalid_config(self, manager, config_for, received):
        config = config_for(NetworkType.IMPACT, credentials={"accountSid": "x"})

        with pytest.raises(ValidationError) as exc_info:
            manager.add_network_config(config)

        assert exc_info.value.errors == ["Missing credential: authToken", "Missing credential: partnerId"]
        assert manager.configs == []
        name, _, kwargs = received[-1]
        assert name == "network_config_error"
        assert kwargs["error"] is exc_info.value

    def test_failed_connection_marks_config(self, manager, config_for, transport, received):
        transport.add(status=401)
        config = config_for(NetworkType.CJ)

        with pytest.raises(AffiliateNetworkError) as exc_info:
            manager.add_network_config(config)

        assert exc_info.value.code == "CONNECTION_FAILED"
        assert exc_info.value.retryable is True
        assert config.status is NetworkStatus.ERROR
        assert config.error_message == "Connection test failed"
        assert manager.configs == []
        assert manager.factory.cached_keys == []
        assert received[-1][0] == "network_config_error"


class TestRemoveNetworkConfig:

    def test_remove(self, manager, config_for, received):
        manager.add_network_config(config_for(NetworkType.CJ, auto_sync=True), test_connection=False)

        assert manager.remove_network_config("cj", "tenant-a") is True

        assert manager.configs == []
        assert manager.get_sync_schedules() == []
        assert manager.dispatcher.configs == []
        assert received[-1] == ("network_config_removed", NetworkType.CJ, {"tenant_id": "tenant-a"})

    def test_remove_unknown(self, manager):
        assert manager.remove_network_config("cj", "nobody") is False


# =============================================================================
# Syncs
# =============================================================================

class TestSyncNetwork:

    @pytest.fixture
    def config(self, manager, config_for):
        return manager.add_network_config(
            config_for(NetworkType.CJ, auto_sync=True, sync_interval=20), test_connection=False,
        )

    def test_success_updates_config(self, manager, config, transport, received, wall_clock):
        transport.add(json_body={})
        transport.add(json_body=cj_products([1, 2], total=2))

        operation = manager.sync_network("cj", "tenant-a")

        assert operation.status is SyncStatus.COMPLETED
        assert operation.records_succeeded == 2
        assert config.last_sync_at == operation.completed_at
        assert config.status is NetworkStatus.ACTIVE
        assert config.next_sync_at == wall_clock.now + timedelta(minutes=20)
        names = [event[0] for event in received]
        assert names.index("sync_started") < names.index("sync_completed")
        completed = received[names.index("sync_completed")][2]
        assert completed["operation"] is operation
        assert completed["duration"] >= 0
        assert manager.get_active_syncs() == []

    def test_incremental_sync_uses_last_sync(self, manager, config, transport):
        config.last_sync_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
        transport.add(json_body={})
        transport.add(json_body=cj_products([], total=0))

        manager.sync_network("cj", "tenant-a")

        assert "updated-since=2024-05-01" in transport.last.url

    def test_full_sync_ignores_last_sync(self, manager, config, transport):
        config.last_sync_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
        transport.add(json_body={})
        transport.add(json_body=cj_products([], total=0))

        manager.sync_network("cj", "tenant-a", full_sync=True)

        assert "updated-since" not in transport.last.url

    def test_rejected_credentials(self, manager, config, transport, received, wall_clock):
        transport.add(status=401)

        with pytest.raises(AuthenticationError):
            manager.sync_network("cj", "tenant-a")

        assert len(transport.requests) == 1
        assert config.status is NetworkStatus.ERROR
        assert config.next_sync_at == wall_clock.now + timedelta(minutes=40)
        name, _, kwargs = received[-1]
        assert name == "sync_failed"
        assert isinstance(kwargs["error"], AuthenticationError)
        assert manager.get_active_syncs() == []

    def test_failed_operation_reports_sync_failed(self, manager, config, transport, received):
        transport.add(json_body={})
        transport.add(status=404, json_body={"message": "gone"})

        operation = manager.sync_network("cj", "tenant-a")

        assert operation.status is SyncStatus.ERROR
        assert config.status is NetworkStatus.ERROR
        assert config.last_sync_at is None
        name, _, kwargs = received[-1]
        assert name == "sync_failed"
        assert kwargs["operation"] is operation
        assert kwargs["error"] == config.error_message

    def test_malformed_payload_reports_sync_failed(self, manager, config, transport, received):
        transport.add(json_body={})
        transport.add(json_body={"cj-api": {"products": {"product": [None]}}})

        operation = manager.sync_network("cj", "tenant-a")

        assert operation.status is SyncStatus.ERROR
        assert operation.error_details[-1].error_code == "INVALID_RESPONSE"
        assert config.status is NetworkStatus.ERROR
        assert received[-1][0] == "sync_failed"
        assert manager.get_active_syncs() == []

    def test_unknown_pair(self, manager):
        with pytest.raises(NotFoundError):
            manager.sync_network("impact", "tenant-a")

    def test_second_sync_for_same_pair_conflicts(self, manager, config, transport):
        errors = []

        def start_again(sender, **kwargs):
            try:
                manager.sync_network("cj", "tenant-a")
            except ConflictError as exc:
                errors.append(exc)

        transport.add(json_body={})
        transport.add(json_body=cj_products([], total=0))
        signals.sync_started.connect(start_again, weak=False)
        try:
            manager.sync_network("cj", "tenant-a")
        finally:
            signals.sync_started.disconnect(start_again)

        assert errors[0].details["code"] == "SYNC_IN_PROGRESS"

    def test_concurrency_limit(self, factory, dispatcher, config_for, transport, wall_clock):
        manager = NetworkManager(factory=factory, dispatcher=dispatcher, max_concurrent_syncs=1, clock=wall_clock)
        manager.add_network_config(config_for(NetworkType.CJ), test_connection=False)
        manager.add_network_config(config_for(NetworkType.CJ, tenant_id="tenant-b"), test_connection=False)
        errors = []

        def start_other(sender, config, **kwargs):
            if config.tenant_id == "tenant-a":
                try:
                    manager.sync_network("cj", "tenant-b")
                except ConflictError as exc:
                    errors.append(exc)

        transport.add(json_body={})
        transport.add(json_body=cj_products([], total=0))
        signals.sync_started.connect(start_other, weak=False)
        try:
            manager.sync_network("cj", "tenant-a")
        finally:
            signals.sync_started.disconnect(start_other)

        assert errors[0].details["code"] == "CONCURRENT_LIMIT_REACHED"

    def test_cancel_sync(self, manager, config, transport):
        def cancel(sender, **kwargs):
            assert manager.cancel_sync("cj", "tenant-a") is True

        transport.add(json_body={})
        signals.sync_started.connect(cancel, weak=False)
        try:
            operation = manager.sync_network("cj", "tenant-a")
        finally:
            signals.sync_started.disconnect(cancel)

        assert operation.status is SyncStatus.CANCELLED
        assert config.last_sync_at is None
        assert manager.cancel_sync("cj", "tenant-a") is False


class TestScheduledSyncs:

    def test_nothing_due(self, manager, config_for):
        manager.add_network_config(config_for(NetworkType.CJ, auto_sync=True), test_connection=False)
        assert manager.run_scheduled_syncs() == {}

    def test_runs_due_pairs_only(self, manager, config_for, transport, wall_clock):
        manager.add_network_config(config_for(NetworkType.CJ, auto_sync=True, sync_interval=10), test_connection=False)
        manager.add_network_config(config_for(NetworkType.IMPACT, auto_sync=True, sync_interval=120),
                                   test_connection=False)
        wall_clock.advance(minutes=11)
        transport.add(json_body={})
        transport.add(json_body=cj_products([1], total=1))

        results = manager.run_scheduled_syncs()

        assert list(results) == ["cj-tenant-a"]
        assert results["cj-tenant-a"].status is SyncStatus.COMPLETED
        schedule = next(s for s in manager.get_sync_schedules() if s.network_type is NetworkType.CJ)
        assert schedule.is_running is False
        assert schedule.last_run == wall_clock.now

    def test_failed_sync_reported_as_none(self, manager, config_for, transport, wall_clock):
        config = manager.add_network_config(config_for(NetworkType.CJ, auto_sync=True, sync_interval=10),
                                            test_connection=False)
        wall_clock.advance(minutes=10)
        transport.add(status=403)

        assert manager.run_scheduled_syncs() == {"cj-tenant-a": None}
        assert config.next_sync_at == wall_clock.now + timedelta(minutes=20)


# =============================================================================
# Commissions, conversions, bulk, status
# =============================================================================

class TestOtherOperations:

    def test_fetch_conversions(self, manager, config_for, transport):
        manager.add_network_config(config_for(NetworkType.RAKUTEN), test_connection=False)
        transport.add(json_body={"transactions": [{"transactionid": "R1", "saleamount": "40", "status": "pending"}]})

        conversions = manager.fetch_conversions("rakuten", "tenant-a")

        assert [c.id for c in conversions] == ["rakuten-R1"]

    def test_bulk_process(self, manager, config_for):
        manager.add_network_config(config_for(NetworkType.IMPACT), test_connection=False)
        handler = MagicMock()

        result = manager.bulk_process("impact", "tenant-a", list(range(3)), handler, batch_size=2)

        assert result.success_count == 3
        assert handler.call_count == 2

    def test_statuses(self, manager, config_for, transport):
        manager.add_network_config(config_for(NetworkType.IMPACT), test_connection=False)
        transport.add(json_body={"Campaigns": []}, headers={"X-RateLimit-Limit": "100", "X-RateLimit-Remaining": "99"})

        status = manager.get_network_statuses()[0]

        assert status["networkType"] == "impact"
        assert status["tenantId"] == "tenant-a"
        assert status["configStatus"] == "active"
        assert status["connected"] is True
        assert status["rateLimitInfo"]["remaining"] == 99
        assert status["lastSync"] is None

    def test_statuses_offline(self, manager, config_for, transport):
        manager.add_network_config(config_for(NetworkType.IMPACT), test_connection=False)
        transport.add(status=400)
        assert manager.get_network_statuses()[0]["connected"] is False

    def test_shutdown_clears_adapters(self, manager, config_for):
        manager.add_network_config(config_for(NetworkType.IMPACT), test_connection=False)
        manager.factory.create(manager.configs[0])
        manager.shutdown()
        assert manager.factory.cached_keys == []


# =============================================================================
# Environment bootstrap
# =============================================================================

class TestEnvironmentConfigs:

    @pytest.fixture
    def app_config(self):
        app_config = MagicMock()
        app_config.apis.configured_services = ["cj"]
        app_config.apis.credentials_for.return_value = {
            "developerId": "d", "websiteId": "w", "personalAccessToken": "p",
        }
        app_config.sync.default_tenant_id = "default"
        app_config.sync.auto_sync = True
        app_config.sync.default_sync_interval = 15
        app_config.webhooks.enabled = True
        app_config.webhooks.secret = ""
        app_config.webhooks.allow_unverified = False
        app_config.webhooks.ip_allowlist = ["10.0.0.0/8"]
        return app_config

    def test_builds_default_tenant_configs(self, app_config):
        with patch.object(manager_module, "get_config", return_value=app_config):
            configs = env_network_configs()

        assert len(configs) == 1
        config = configs[0]
        assert config.key == (NetworkType.CJ, "default")
        assert config.credentials["personalAccessToken"] == "p"
        assert config.settings.sync_interval == 15
        assert config.settings.webhook_secret is None
        assert config.settings.webhook_ip_allowlist == ["10.0.0.0/8"]

    def test_singleton_skips_invalid_env_configs(self, app_config):
        app_config.apis.credentials_for.return_value = {"developerId": "d"}
        app_config.sync.max_concurrent_syncs = 3
        manager_module.reset_network_manager()
        try:
            with patch.object(manager_module, "get_config", return_value=app_config):
                manager = manager_module.get_network_manager()
                assert manager_module.get_network_manager() is manager
            assert manager.configs == []
        finally:
            manager_module.reset_network_manager()
