"""
Background tasks for the networks app.

Celery beat fires ``run_scheduled_syncs`` every minute; the manager decides
which configured networks are due. ``sync_network_task`` runs one sync on
demand (e.g. after a tenant connects a new network).
"""
import logging
from celery import shared_task

from core.exceptions import AffSyncError, ConflictError
from networks.services.manager import get_network_manager

logger = logging.getLogger(__name__)


@shared_task(
    name='networks.run_scheduled_syncs',
    ignore_result=True,
    soft_time_limit=55 * 60,
)
def run_scheduled_syncs():
    """Run every due sync; returns ``{"<network>-<tenant>": status}``."""
    results = get_network_manager().run_scheduled_syncs()
    summary = {
        label: operation.status.value if operation else "failed"
        for label, operation in results.items()
    }
    if summary:
        logger.info(f"Scheduled syncs finished: {summary}")
    return summary


@shared_task(
    name='networks.sync_network',
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def sync_network_task(self, network_type: str, tenant_id: str, full_sync: bool = False):
    """
    Sync one network for one tenant.

    Retries later when another sync for the pair is already running or the
    failure is marked retryable by the adapter.
    """
    manager = get_network_manager()
    try:
        operation = manager.sync_network(network_type, tenant_id, full_sync=full_sync)
    except ConflictError as exc:
        logger.info(f"Deferring {network_type} sync for {tenant_id}: {exc.message}")
        raise self.retry(exc=exc)
    except AffSyncError as exc:
        if getattr(exc, "retryable", False):
            logger.warning(f"{network_type} sync for {tenant_id} failed, retrying: {exc.message}")
            raise self.retry(exc=exc)
        logger.error(f"{network_type} sync for {tenant_id} failed: {exc.message}")
        return {"success": False, "error": exc.to_dict()}

    return {"success": True, "operation": operation.to_dict()}
