"""
core.exceptions — Re-exports for convenient imports.

Usage::

    from core.exceptions import AffiliateNetworkError, RateLimitError
    from core.exceptions import affsync_exception_handler
"""

from .base import (
    AffSyncError,
    AffiliateNetworkError,
    RateLimitError,
    AuthenticationError,
    CapabilityMismatchError,
    ProductNotFoundError,
    WebhookError,
    ValidationError,
    NotFoundError,
    ConflictError,
    SyncCancelledError,
    ConfigurationError,
)

from .handlers import affsync_exception_handler

__all__ = [
    # Base
    "AffSyncError",
    # Network
    "AffiliateNetworkError",
    "RateLimitError",
    "AuthenticationError",
    "CapabilityMismatchError",
    "ProductNotFoundError",
    "WebhookError",
    # Client
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "SyncCancelledError",
    # Config
    "ConfigurationError",
    # Handler
    "affsync_exception_handler",
]
