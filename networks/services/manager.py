"""
Network Manager
===============

Coordinates every configured ``(network, tenant)`` pair: validation on
registration, scheduled and on-demand product syncs, commission and
conversion pulls, bulk work and status reporting.

Lifecycle events go out as Django signals (see ``networks.signals``).
Syncs for different pairs run concurrently in a thread pool bounded by
``max_concurrent_syncs``; a pair never runs two syncs at once unless
forced.

Usage::

    from networks.services import get_network_manager

    manager = get_network_manager()
    operation = manager.sync_network(NetworkType.CJ, "default")
"""

import threading
import time
import concurrent.futures
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from affsync.config import get_config
from core.exceptions import (
    AffSyncError,
    AffiliateNetworkError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from core.services import BaseService
from networks import signals
from networks.services.factory import AdapterFactory, adapter_factory
from networks.services.filters import get_config_summary
from networks.services.throttling import CancellationToken
from networks.services.webhooks import WebhookDispatcher, webhook_dispatcher
from networks.types import (
    BulkOperationResult,
    CommissionStructure,
    CommissionSyncOptions,
    Conversion,
    NetworkConfig,
    NetworkSettings,
    NetworkStatus,
    NetworkType,
    ProductSyncOptions,
    SyncOperation,
    SyncStatus,
    utcnow,
)

Key = Tuple[NetworkType, str]


def _label(key: Key) -> str:
    return f"{key[0].value}-{key[1]}"


@dataclass
class SyncSchedule:
    network_type: NetworkType
    tenant_id: str
    interval: int                       # minutes
    next_run: datetime
    last_run: Optional[datetime] = None
    is_running: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "networkType": self.network_type.value,
            "tenantId": self.tenant_id,
            "interval": self.interval,
            "nextRun": self.next_run.isoformat(),
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "isRunning": self.is_running,
        }


class NetworkManager(BaseService):
    """Owns network configs, sync schedules and in-flight syncs."""

    def __init__(self, factory: AdapterFactory = None, dispatcher: WebhookDispatcher = None,
                 max_concurrent_syncs: int = None, clock: Callable[[], datetime] = utcnow):
        sync_config = get_config().sync
        self.factory = factory or adapter_factory
        self.dispatcher = dispatcher or webhook_dispatcher
        self.max_concurrent_syncs = max(1, max_concurrent_syncs or sync_config.max_concurrent_syncs)
        self._clock = clock
        self._configs: Dict[Key, NetworkConfig] = {}
        self._schedules: Dict[Key, SyncSchedule] = {}
        self._active: Dict[Key, CancellationToken] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Configuration
    # =========================================================================

    def add_network_config(self, config: NetworkConfig, test_connection: bool = True) -> NetworkConfig:
        """
        Validate and register a config.

        Raises ``ValidationError`` for static problems and
        ``AffiliateNetworkError`` when the connection test fails; both are
        also reported through ``network_config_error``.
        """
        valid, errors = self.factory.validate_config(config)
        if not valid:
            error = ValidationError(
                f"Invalid {config.network_type.value} configuration", field="config", errors=errors,
            )
            signals.network_config_error.send(sender=config.network_type, config=config, error=error)
            raise error

        if test_connection and not self.factory.test_connection(config):
            config.status = NetworkStatus.ERROR
            config.error_message = "Connection test failed"
            config.touch()
            self.factory.remove(config.network_type, config.tenant_id)
            error = AffiliateNetworkError(
                f"Could not connect to {config.network_type.display_name}",
                network=config.network_type,
                code="CONNECTION_FAILED",
                retryable=True,
            )
            signals.network_config_error.send(sender=config.network_type, config=config, error=error)
            raise error

        with self._lock:
            self._configs[config.key] = config
            if config.settings.auto_sync:
                self._schedule(config)
            else:
                self._schedules.pop(config.key, None)
        self.dispatcher.register(config)

        self.logger.info(f"Added network config {get_config_summary(config)}")
        signals.network_config_added.send(sender=config.network_type, config=config)
        return config

    def remove_network_config(self, network_type, tenant_id: str) -> bool:
        key = (NetworkType(network_type), tenant_id)
        with self._lock:
            config = self._configs.pop(key, None)
            self._schedules.pop(key, None)
            token = self._active.get(key)
        if config is None:
            return False

        if token is not None:
            token.cancel("Network config removed")
        self.factory.remove(*key)
        self.dispatcher.unregister(*key)
        self.logger.info(f"Removed {_label(key)}")
        signals.network_config_removed.send(sender=key[0], tenant_id=tenant_id)
        return True

    def get_network_config(self, network_type, tenant_id: str) -> Optional[NetworkConfig]:
        return self._configs.get((NetworkType(network_type), tenant_id))

    @property
    def configs(self) -> List[NetworkConfig]:
        return list(self._configs.values())

    def _require_config(self, network_type, tenant_id: str) -> NetworkConfig:
        config = self.get_network_config(network_type, tenant_id)
        if config is None:
            raise NotFoundError(
                f"No configuration found for {NetworkType(network_type).value} (tenant: {tenant_id})",
                resource="network_config",
            )
        return config

    def _schedule(self, config: NetworkConfig, delay_minutes: int = None) -> SyncSchedule:
        interval = config.settings.sync_interval
        next_run = self._clock() + timedelta(minutes=delay_minutes if delay_minutes is not None else interval)
        schedule = self._schedules.get(config.key)
        if schedule is None:
            schedule = SyncSchedule(config.network_type, config.tenant_id, interval, next_run)
            self._schedules[config.key] = schedule
        schedule.interval = interval
        schedule.next_run = next_run
        config.next_sync_at = next_run
        return schedule

    # =========================================================================
    # Syncs
    # =========================================================================

    def _claim(self, key: Key, force: bool, cancel_token: Optional[CancellationToken]) -> CancellationToken:
        with self._lock:
            if key in self._active and not force:
                raise ConflictError(
                    f"Sync already running for {_label(key)}", resource="sync", code="SYNC_IN_PROGRESS",
                )
            if len(self._active) >= self.max_concurrent_syncs and not force:
                raise ConflictError(
                    "Maximum concurrent syncs reached", resource="sync", code="CONCURRENT_LIMIT_REACHED",
                )
            token = cancel_token or CancellationToken()
            self._active[key] = token
            schedule = self._schedules.get(key)
            if schedule:
                schedule.is_running = True
                schedule.last_run = self._clock()
            return token

    def _release(self, key: Key, token: CancellationToken) -> None:
        with self._lock:
            if self._active.get(key) is token:
                del self._active[key]
            schedule = self._schedules.get(key)
            if schedule:
                schedule.is_running = False

    def _record_success(self, config: NetworkConfig, operation: SyncOperation) -> None:
        with self._lock:
            if operation.status == SyncStatus.COMPLETED:
                config.last_sync_at = operation.completed_at
            config.status = NetworkStatus.ACTIVE
            config.error_message = None
            config.touch()
            if config.key in self._schedules:
                self._schedule(config)

    def _record_failure(self, config: NetworkConfig, message: str) -> None:
        with self._lock:
            config.status = NetworkStatus.ERROR
            config.error_message = message
            config.touch()
            if config.key in self._schedules:
                # Back off to twice the interval after a failure
                self._schedule(config, delay_minutes=config.settings.sync_interval * 2)

    def sync_network(self, network_type, tenant_id: str, full_sync: bool = False, force: bool = False,
                     cancel_token: CancellationToken = None, options: ProductSyncOptions = None) -> SyncOperation:
        """
        Run one product sync for a configured pair.

        Incremental syncs ask for products updated since the config's
        ``last_sync_at``. Raises ``ConflictError`` when the pair is already
        syncing or the concurrency limit is reached (unless ``force``).
        """
        config = self._require_config(network_type, tenant_id)
        key = config.key
        token = self._claim(key, force, cancel_token)

        options = options or ProductSyncOptions(full_sync=full_sync)
        if not options.full_sync and not options.updated_since and config.last_sync_at:
            options.updated_since = config.last_sync_at.isoformat()

        started = time.monotonic()
        signals.sync_started.send(sender=key[0], config=config, full_sync=options.full_sync)
        try:
            adapter = self.factory.create(config)
            if not adapter.authenticate():
                raise AuthenticationError(
                    f"{config.network_type.display_name} credentials are incomplete",
                    network=config.network_type,
                )
            operation = adapter.sync_products(options, cancel_token=token)
        except AffSyncError as exc:
            self._record_failure(config, exc.message)
            self.logger.error(f"Sync for {_label(key)} failed: {exc.message}")
            signals.sync_failed.send(sender=key[0], config=config, error=exc, duration=time.monotonic() - started)
            raise
        finally:
            self._release(key, token)

        duration = time.monotonic() - started
        if operation.status == SyncStatus.ERROR:
            last = operation.error_details[-1] if operation.error_details else None
            message = last.error_message if last else "Sync failed"
            self._record_failure(config, message)
            signals.sync_failed.send(
                sender=key[0], config=config, error=message, duration=duration, operation=operation,
            )
        else:
            self._record_success(config, operation)
            signals.sync_completed.send(sender=key[0], config=config, operation=operation, duration=duration)

        self.logger.info(f"Sync for {_label(key)} ended {operation.status.value} in {duration:.2f}s")
        return operation

    def cancel_sync(self, network_type, tenant_id: str, reason: str = "Sync cancelled") -> bool:
        token = self._active.get((NetworkType(network_type), tenant_id))
        if token is None:
            return False
        token.cancel(reason)
        return True

    def run_scheduled_syncs(self) -> Dict[str, Optional[SyncOperation]]:
        """
        Start every sync that is due, up to the free concurrency slots.

        Returns ``{"<network>-<tenant>": operation}``; the value is None when
        the sync raised (the failure is already recorded on the config).
        """
        now = self._clock()
        with self._lock:
            due = [
                key for key, schedule in self._schedules.items()
                if not schedule.is_running and schedule.next_run <= now and key not in self._active
            ]
            slots = max(0, self.max_concurrent_syncs - len(self._active))
        due = due[:slots]
        if not due:
            return {}

        self.logger.info(f"Running {len(due)} scheduled sync(s): {', '.join(_label(key) for key in due)}")
        results: Dict[str, Optional[SyncOperation]] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(due)) as executor:
            futures = {executor.submit(self.sync_network, *key): key for key in due}
            for future in concurrent.futures.as_completed(futures):
                key = futures[future]
                try:
                    results[_label(key)] = future.result()
                except AffSyncError as exc:
                    self.logger.warning(f"Scheduled sync failed for {_label(key)}: {exc.message}")
                    results[_label(key)] = None
        return results

    # =========================================================================
    # Commissions, conversions, bulk
    # =========================================================================

    def sync_commissions(self, network_type, tenant_id: str,
                         options: CommissionSyncOptions = None) -> List[CommissionStructure]:
        config = self._require_config(network_type, tenant_id)
        return self.factory.create(config).sync_commissions(options)

    def fetch_conversions(self, network_type, tenant_id: str, date_from=None, date_to=None) -> List[Conversion]:
        config = self._require_config(network_type, tenant_id)
        return self.factory.create(config).get_conversions(date_from, date_to)

    def bulk_process(self, network_type, tenant_id: str, records: List[Any], handler,
                     batch_size: int = None, continue_on_error: bool = True) -> BulkOperationResult:
        config = self._require_config(network_type, tenant_id)
        adapter = self.factory.create(config)
        return adapter.execute_bulk(records, handler, batch_size=batch_size, continue_on_error=continue_on_error)

    # =========================================================================
    # Monitoring
    # =========================================================================

    def get_network_statuses(self) -> List[Dict[str, Any]]:
        statuses = []
        for config in self.configs:
            entry = {
                "networkType": config.network_type.value,
                "tenantId": config.tenant_id,
                "lastSync": config.last_sync_at.isoformat() if config.last_sync_at else None,
                "nextSync": config.next_sync_at.isoformat() if config.next_sync_at else None,
                "configStatus": config.status.value,
                "error": config.error_message,
            }
            try:
                status = self.factory.create(config).get_network_status()
            except AffSyncError as exc:
                entry.update({"connected": False, "error": exc.message})
            else:
                entry.update({
                    "connected": status["status"] == "online",
                    "rateLimitInfo": status["rateLimit"],
                    "performanceMetrics": status["performance"],
                })
            statuses.append(entry)
        return statuses

    def get_sync_schedules(self) -> List[SyncSchedule]:
        return list(self._schedules.values())

    def get_active_syncs(self) -> List[str]:
        return [_label(key) for key in self._active]

    def shutdown(self) -> None:
        with self._lock:
            tokens = list(self._active.values())
        for token in tokens:
            token.cancel("Manager shutting down")
        self.factory.clear_cache()


# =============================================================================
# Singleton
# =============================================================================

_manager: Optional[NetworkManager] = None
_manager_lock = threading.Lock()


def env_network_configs() -> List[NetworkConfig]:
    """NetworkConfigs for every network whose credentials are in the environment."""
    app_config = get_config()
    configs = []
    for service in app_config.apis.configured_services:
        configs.append(NetworkConfig(
            tenant_id=app_config.sync.default_tenant_id,
            network_type=service,
            credentials=app_config.apis.credentials_for(service),
            settings=NetworkSettings(
                auto_sync=app_config.sync.auto_sync,
                sync_interval=app_config.sync.default_sync_interval,
                webhook_enabled=app_config.webhooks.enabled,
                webhook_secret=app_config.webhooks.secret or None,
                allow_unverified_webhooks=app_config.webhooks.allow_unverified,
                webhook_ip_allowlist=list(app_config.webhooks.ip_allowlist),
            ),
        ))
    return configs


def get_network_manager() -> NetworkManager:
    """Process-wide manager, bootstrapped from environment credentials."""
    global _manager
    with _manager_lock:
        if _manager is None:
            manager = NetworkManager()
            for config in env_network_configs():
                try:
                    manager.add_network_config(config, test_connection=False)
                except ValidationError as exc:
                    manager.logger.warning(
                        f"Skipping {config.network_type.value} from environment: {'; '.join(exc.errors)}"
                    )
            _manager = manager
        return _manager


def reset_network_manager() -> None:
    global _manager
    with _manager_lock:
        if _manager is not None:
            _manager.shutdown()
        _manager = None
