"""
Tests for the networks Celery tasks.

Run with: python -m pytest networks/tests/test_tasks.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from core.exceptions import AffiliateNetworkError, AuthenticationError, ConflictError
from networks.tasks import run_scheduled_syncs, sync_network_task
from networks.types import NetworkType, SyncOperation, SyncStatus


@pytest.fixture
def manager():
    manager = MagicMock()
    with patch("networks.tasks.get_network_manager", return_value=manager):
        yield manager


def completed_operation():
    operation = SyncOperation(network_type=NetworkType.CJ, tenant_id="tenant-a")
    operation.record_page(2, 2)
    return operation.complete()


class TestRunScheduledSyncs:

    def test_summarises_statuses(self, manager):
        manager.run_scheduled_syncs.return_value = {"cj-tenant-a": completed_operation(), "impact-tenant-a": None}

        assert run_scheduled_syncs() == {"cj-tenant-a": "completed", "impact-tenant-a": "failed"}

    def test_nothing_due(self, manager):
        manager.run_scheduled_syncs.return_value = {}
        assert run_scheduled_syncs() == {}


class TestSyncNetworkTask:

    def test_success(self, manager):
        manager.sync_network.return_value = completed_operation()

        result = sync_network_task.run("cj", "tenant-a", full_sync=True)

        manager.sync_network.assert_called_once_with("cj", "tenant-a", full_sync=True)
        assert result["success"] is True
        assert result["operation"]["status"] == SyncStatus.COMPLETED.value

    def test_conflict_retries(self, manager):
        manager.sync_network.side_effect = ConflictError("busy", resource="sync", code="SYNC_IN_PROGRESS")

        with patch("networks.tasks.sync_network_task.retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                sync_network_task.run("cj", "tenant-a")

        assert isinstance(retry.call_args.kwargs["exc"], ConflictError)

    def test_retryable_network_error_retries(self, manager):
        manager.sync_network.side_effect = AffiliateNetworkError("timeout", network="cj", code="TIMEOUT",
                                                                 retryable=True)

        with patch("networks.tasks.sync_network_task.retry", side_effect=Retry()):
            with pytest.raises(Retry):
                sync_network_task.run("cj", "tenant-a")

    def test_permanent_error_returns_failure(self, manager):
        manager.sync_network.side_effect = AuthenticationError("bad creds", network="cj")

        with patch("networks.tasks.sync_network_task.retry") as retry:
            result = sync_network_task.run("cj", "tenant-a")

        retry.assert_not_called()
        assert result["success"] is False
        assert result["error"]["error"] == "authentication_error"
        assert result["error"]["retryable"] is False
