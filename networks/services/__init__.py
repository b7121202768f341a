# Services package
from .factory import adapter_factory, AdapterFactory
from .webhooks import webhook_dispatcher, WebhookDispatcher, WebhookResult, get_webhook_url, generate_webhook_secret
from .manager import get_network_manager, reset_network_manager, NetworkManager, SyncSchedule
from .bulk import BulkOperationExecutor
from .throttling import RateLimiter, RetryPolicy, CancellationToken
from .adapters import (
    NetworkAdapter,
    ShareASaleAdapter,
    CJAdapter,
    ImpactAdapter,
    RakutenAdapter,
)

__all__ = [
    # Factory
    "adapter_factory",
    "AdapterFactory",
    # Webhooks
    "webhook_dispatcher",
    "WebhookDispatcher",
    "WebhookResult",
    "get_webhook_url",
    "generate_webhook_secret",
    # Manager
    "get_network_manager",
    "reset_network_manager",
    "NetworkManager",
    "SyncSchedule",
    # Bulk
    "BulkOperationExecutor",
    # Throttling
    "RateLimiter",
    "RetryPolicy",
    "CancellationToken",
    # Adapters
    "NetworkAdapter",
    "ShareASaleAdapter",
    "CJAdapter",
    "ImpactAdapter",
    "RakutenAdapter",
]
