"""
AffSync Exception Hierarchy
===========================

Domain-specific exceptions for structured error handling across the
integration layer. Every error raised by an adapter, the bulk executor or
the webhook dispatcher is one of these, so callers can branch on
``retryable`` instead of string-matching messages.

Usage::

    from core.exceptions import AffiliateNetworkError, RateLimitError

    # In an adapter:
    raise AffiliateNetworkError("Malformed product feed", network="cj",
                                code="INVALID_RESPONSE")

    # In a caller:
    except AffiliateNetworkError as exc:
        if exc.retryable:
            ...
"""

from rest_framework import status


def _network_value(network):
    """Accept a NetworkType member or a plain string."""
    return getattr(network, "value", network)


# =============================================================================
# Base Exception
# =============================================================================

class AffSyncError(Exception):
    """Base exception for all AffSync application errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "server_error"

    def __init__(self, message="An unexpected error occurred", **kwargs):
        self.message = message
        self.details = kwargs
        super().__init__(message)

    def to_dict(self):
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["detail"] = self.details
        return result


# =============================================================================
# Affiliate Network Errors (external dependencies)
# =============================================================================

class AffiliateNetworkError(AffSyncError):
    """
    A call to, or payload from, an affiliate network failed.

    ``code`` is a stable machine-readable reason (``TIMEOUT``, ``HTTP_404``,
    ``INVALID_PAYLOAD``...). ``retryable`` tells the retry policy and the
    webhook dispatcher whether trying again can help.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "network_error"
    retryable = False

    def __init__(self, message="Affiliate network request failed", network=None,
                 code="NETWORK_ERROR", status=None, retryable=None, **kwargs):
        self.network = _network_value(network)
        self.code = code
        self.status = status
        if retryable is not None:
            self.retryable = retryable
        if self.network:
            kwargs["network"] = self.network
        if status is not None:
            kwargs["upstream_status"] = status
        kwargs["code"] = code
        super().__init__(message, **kwargs)

    def to_dict(self):
        result = super().to_dict()
        result["retryable"] = self.retryable
        return result


class RateLimitError(AffiliateNetworkError):
    """Network answered 429; try again after ``retry_after`` seconds."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "rate_limit"
    retryable = True

    DEFAULT_RETRY_AFTER = 60

    def __init__(self, message="Affiliate network rate limit exceeded", network=None,
                 retry_after=None, limit=None, remaining=None, **kwargs):
        self.retry_after = retry_after if retry_after is not None else self.DEFAULT_RETRY_AFTER
        self.limit = limit
        self.remaining = remaining
        kwargs.setdefault("code", "RATE_LIMITED")
        kwargs.setdefault("status", 429)
        super().__init__(message, network=network, retry_after=self.retry_after, **kwargs)


class AuthenticationError(AffiliateNetworkError):
    """Credentials rejected (401/403) or missing. Never retried."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "authentication_error"
    retryable = False

    def __init__(self, message="Affiliate network authentication failed", network=None, **kwargs):
        kwargs.setdefault("code", "AUTH_FAILED")
        kwargs["retryable"] = False
        super().__init__(message, network=network, **kwargs)


class CapabilityMismatchError(AffiliateNetworkError):
    """Operation called on an adapter that does not declare support for it."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "capability_mismatch"

    def __init__(self, message=None, network=None, operation=None, **kwargs):
        message = message or f"{_network_value(network)} does not support {operation}"
        kwargs["code"] = "UNSUPPORTED_OPERATION"
        kwargs["retryable"] = False
        super().__init__(message, network=network, operation=operation, **kwargs)


class ProductNotFoundError(AffiliateNetworkError):
    """The network has no product with the requested id."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "product_not_found"

    def __init__(self, message="Product not found", network=None, product_id=None, **kwargs):
        kwargs["code"] = "PRODUCT_NOT_FOUND"
        kwargs["retryable"] = False
        super().__init__(message, network=network, product_id=product_id, **kwargs)


class WebhookError(AffiliateNetworkError):
    """Inbound webhook rejected before reaching the adapter."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "webhook_error"

    def __init__(self, message="Webhook rejected", network=None, code="INVALID_PAYLOAD", **kwargs):
        kwargs["retryable"] = False
        super().__init__(message, network=network, code=code, **kwargs)


# =============================================================================
# Client Errors
# =============================================================================

class ValidationError(AffSyncError):
    """Invalid input or configuration supplied by the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"

    def __init__(self, message="Invalid request data", field=None, errors=None, **kwargs):
        self.errors = list(errors or [])
        if field:
            kwargs["field"] = field
        if self.errors:
            kwargs["errors"] = self.errors
        super().__init__(message, **kwargs)


class NotFoundError(AffSyncError):
    """Requested resource does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"

    def __init__(self, message="Resource not found", resource=None, **kwargs):
        if resource:
            kwargs["resource"] = resource
        super().__init__(message, **kwargs)


class ConflictError(AffSyncError):
    """Resource conflict (sync already running, finalized record, etc.)."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"

    def __init__(self, message="Resource conflict", resource=None, **kwargs):
        if resource:
            kwargs["resource"] = resource
        super().__init__(message, **kwargs)


class SyncCancelledError(AffSyncError):
    """A sync was cancelled through its cancellation token."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "sync_cancelled"

    def __init__(self, message="Sync cancelled", **kwargs):
        super().__init__(message, **kwargs)


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(AffSyncError):
    """Missing or invalid configuration (env vars, settings)."""

    error_code = "configuration_error"

    def __init__(self, message="Configuration error", setting=None, **kwargs):
        if setting:
            kwargs["setting"] = setting
        super().__init__(message, **kwargs)
