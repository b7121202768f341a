"""
Base class for affiliate network adapters.

An adapter owns everything network-specific: auth, endpoints, wire parsing
and link formats. This base class owns what every network shares:

- one ``NetworkHttpClient`` per adapter, paced by a ``RateLimiter`` and
  wrapped in a ``RetryPolicy``
- capability checks before any I/O
- the paged product sync loop (sanitize → tenant filters → signal)
- webhook signature checks and event routing to Django signals
"""

import hmac
import time
import hashlib
import functools
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from requests.auth import AuthBase

from affsync.config import get_config
from core.exceptions import (
    AffiliateNetworkError,
    AuthenticationError,
    CapabilityMismatchError,
    RateLimitError,
    SyncCancelledError,
)
from core.services import BaseService
from networks import signals
from networks.services.bulk import BulkOperationExecutor
from networks.services.normalizers import normalize_conversion
from networks.services.filters import (
    PerformanceTracker,
    apply_product_filters,
    generate_tracking_id,
    sanitize_product,
)
from networks.services.throttling import CancellationToken, RateLimiter, RetryPolicy
from networks.services.transport import NetworkHttpClient
from networks.types import (
    AdapterCapabilities,
    AffiliateProduct,
    BulkOperationResult,
    Click,
    CommissionStructure,
    CommissionSyncOptions,
    Conversion,
    ConversionStatus,
    NetworkConfig,
    NetworkType,
    OperationType,
    PaginatedRequest,
    ProductPage,
    ProductSyncOptions,
    RateLimitInfo,
    SyncOperation,
    WebhookEventType,
    WebhookPayload,
    as_datetime,
    latest_commission_structures,
    utcnow,
)

DEFAULT_CONVERSION_WINDOW_DAYS = 30


def requires_capability(capability: str):
    """Raise ``CapabilityMismatchError`` before the call if unsupported."""
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            self.ensure_capability(capability, method.__name__)
            return method(self, *args, **kwargs)
        return wrapper
    return decorator


def build_link(base_url: str, params: List[Tuple[str, Any]], extra: Mapping[str, Any] = None) -> str:
    """Join a link base with its query, dropping empty values. ``extra`` is appended as-is."""
    query = [(key, value) for key, value in params if value not in (None, "")]
    taken = {key for key, _ in params}
    query.extend((key, value) for key, value in (extra or {}).items() if key not in taken)
    return f"{base_url}?{urlencode(query)}" if query else base_url


class NetworkAdapter(BaseService, ABC):
    """
    Contract every affiliate network implements.

    Subclasses declare ``NETWORK_TYPE``, ``BASE_URL``, ``CAPABILITIES``,
    ``REQUIRED_CREDENTIALS`` and ``SIGNATURE_HEADER`` and implement the
    ``fetch_*`` / ``build_*`` / ``parse_*`` hooks. Callers only use the
    public operations defined here.
    """

    NETWORK_TYPE: NetworkType
    BASE_URL: str
    CAPABILITIES: AdapterCapabilities
    REQUIRED_CREDENTIALS: Tuple[str, ...] = ()
    SIGNATURE_HEADER: str = ""
    # Wire record used to read conversions out of webhook bodies
    CONVERSION_RECORD = None

    def __init__(self, config: NetworkConfig, session=None, rate_limiter: RateLimiter = None,
                 retry_policy: RetryPolicy = None, sleep=time.sleep, clock=time.monotonic):
        self.config = config
        self.credentials: Dict[str, str] = dict(config.credentials)
        self._authenticated = False
        self._call_lock = threading.RLock()

        sync_config = get_config().sync
        self.page_size = sync_config.page_size
        self.rate_limiter = rate_limiter or RateLimiter(
            self.CAPABILITIES.rate_limits.per_minute,
            clock=clock,
            sleep=sleep,
            name=self.NETWORK_TYPE.value,
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=sync_config.retry_attempts,
            base_delay=sync_config.retry_base_delay,
            sleep=sleep,
        )
        self.performance = PerformanceTracker()
        self.http = NetworkHttpClient(
            self.NETWORK_TYPE,
            self.BASE_URL,
            auth=self.build_auth(),
            timeout=sync_config.http_timeout,
            user_agent=sync_config.user_agent,
            session=session,
            on_rate_limit=self.rate_limiter.update,
        )

    def __repr__(self):
        return f"<{type(self).__name__} tenant={self.config.tenant_id!r}>"

    # ── Hooks implemented per network ───────────────────────────────

    @abstractmethod
    def build_auth(self) -> Optional[AuthBase]:
        """Auth injector for the session, built from ``self.credentials``."""

    @abstractmethod
    def probe(self) -> None:
        """Cheapest authenticated call. Raises on failure."""

    @abstractmethod
    def fetch_product_page(self, page: int, limit: int, filters: Dict[str, Any]) -> ProductPage:
        """One page of normalized products."""

    @abstractmethod
    def fetch_product(self, network_product_id: str) -> AffiliateProduct:
        """Single product; raises ``ProductNotFoundError`` when missing."""

    @abstractmethod
    def fetch_commission_structures(self, options: CommissionSyncOptions) -> List[CommissionStructure]:
        ...

    @abstractmethod
    def fetch_conversions(self, date_from: datetime, date_to: datetime) -> List[Conversion]:
        ...

    @abstractmethod
    def build_affiliate_link(self, product_id: str, sub_id: str, params: Dict[str, str]) -> str:
        ...

    @abstractmethod
    def parse_webhook_body(self, raw_body: bytes) -> WebhookPayload:
        """Decode an inbound webhook body; raises ``WebhookError`` when malformed."""

    # ── Capabilities ────────────────────────────────────────────────

    @property
    def network_type(self) -> NetworkType:
        return self.NETWORK_TYPE

    @property
    def capabilities(self) -> AdapterCapabilities:
        return self.CAPABILITIES

    def ensure_capability(self, capability: str, operation: str = None) -> None:
        if not self.CAPABILITIES.supports(capability):
            raise CapabilityMismatchError(network=self.NETWORK_TYPE, operation=operation or capability)

    @property
    def signs_webhooks(self) -> bool:
        """True when inbound webhooks carry a verifiable signature."""
        return self.CAPABILITIES.requires_webhook_signature

    @classmethod
    def missing_credentials(cls, credentials: Mapping[str, str]) -> List[str]:
        return [key for key in cls.REQUIRED_CREDENTIALS if not credentials.get(key)]

    # ── Transport ───────────────────────────────────────────────────

    def enforce_rate_limit(self) -> float:
        return self.rate_limiter.enforce()

    def _attempt(self, call, *args, **kwargs):
        self.rate_limiter.enforce()
        started = time.monotonic()
        try:
            result = call(*args, **kwargs)
        except RateLimitError as exc:
            self.performance.record(time.monotonic() - started, success=False)
            # Next enforce() waits out the server's Retry-After
            self.rate_limiter.update(RateLimitInfo(
                limit=exc.limit, remaining=0, retry_after=exc.retry_after,
            ))
            raise
        except AffiliateNetworkError:
            self.performance.record(time.monotonic() - started, success=False)
            raise
        self.performance.record(time.monotonic() - started, success=True)
        return result

    def _call(self, call, *args, **kwargs):
        """Paced, retried network call. One at a time per adapter."""
        with self._call_lock:
            return self.retry_policy.run(self._attempt, call, *args, **kwargs)

    def _get_json(self, path: str = "", params: Dict[str, Any] = None):
        return self._call(self.http.get_json, path, params=params)

    def _get(self, path: str = "", params: Dict[str, Any] = None):
        return self._call(self.http.get, path, params=params)

    def close(self) -> None:
        self.http.close()

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    # ── Connection ──────────────────────────────────────────────────

    def authenticate(self, credentials: Mapping[str, str] = None) -> bool:
        """
        Install ``credentials`` (or re-check the current ones) and verify
        them with one cheap call.

        Returns False when credentials are incomplete. Rejected credentials
        raise a non-retryable ``AuthenticationError``; transient failures
        (timeouts, 5xx) propagate once the retry policy gives up.
        """
        if credentials is not None:
            self.credentials = dict(credentials)
            self.http.session.auth = self.build_auth()

        missing = self.missing_credentials(self.credentials)
        if missing:
            self.logger.warning(f"[{self.NETWORK_TYPE.value}] Missing credentials: {', '.join(missing)}")
            self._authenticated = False
            return False

        self._authenticated = False
        try:
            self.probe()
        except AuthenticationError as exc:
            self.logger.warning(f"[{self.NETWORK_TYPE.value}] Authentication failed: {exc.message}")
            raise

        self._authenticated = True
        return True

    def test_connection(self) -> bool:
        """True when the network answers an authenticated call."""
        if self.missing_credentials(self.credentials):
            return False
        try:
            self.probe()
        except AffiliateNetworkError as exc:
            self.logger.info(f"[{self.NETWORK_TYPE.value}] Connection test failed: {exc.code}")
            return False
        return True

    def get_network_status(self) -> Dict[str, Any]:
        healthy = self.test_connection()
        info = self.rate_limiter.info
        return {
            "networkType": self.NETWORK_TYPE.value,
            "name": self.NETWORK_TYPE.display_name,
            "status": "online" if healthy else "offline",
            "checkedAt": utcnow().isoformat(),
            "rateLimit": info.to_dict() if info else None,
            "performance": self.performance.snapshot(),
            "capabilities": self.CAPABILITIES.to_dict(),
        }

    # ── Products ────────────────────────────────────────────────────

    def _page_limit(self, requested: Optional[int]) -> int:
        return max(1, min(requested or self.page_size, self.CAPABILITIES.max_batch_size))

    @requires_capability("product_sync")
    def get_products(self, request: PaginatedRequest = None) -> ProductPage:
        request = request or PaginatedRequest()
        page = self._call_page(max(1, request.page), self._page_limit(request.limit), dict(request.filters))
        page.products = [product for product in map(sanitize_product, page.products) if product]
        return page

    def _call_page(self, page: int, limit: int, filters: Dict[str, Any]) -> ProductPage:
        result = self.fetch_product_page(page, limit, filters)
        result.rate_limit = self.http.rate_limit
        return result

    @requires_capability("product_sync")
    def get_product(self, network_product_id: str) -> AffiliateProduct:
        product = self.fetch_product(str(network_product_id))
        return sanitize_product(product) or product

    @requires_capability("product_sync")
    def sync_products(self, options: ProductSyncOptions = None,
                      cancel_token: CancellationToken = None) -> SyncOperation:
        """
        Page through the catalog and hand each filtered page to receivers of
        ``products_synced``.

        Invalid products count as failed; products removed by the tenant's
        filters count as processed only. A failing page ends the operation
        in ``error`` with the counts of earlier pages kept. A cancelled token
        is honoured at the next page boundary.
        """
        options = options or ProductSyncOptions()
        operation = SyncOperation(
            tenant_id=self.config.tenant_id,
            network_type=self.NETWORK_TYPE,
            operation_type=OperationType.FULL_SYNC if options.full_sync else OperationType.INCREMENTAL_SYNC,
            metadata={"options": options.to_dict(), "pages": 0, "filtered": 0},
        )
        filters = {
            "merchantIds": options.merchant_ids,
            "categories": options.categories,
            "updatedSince": None if options.full_sync else options.updated_since,
        }
        limit = self._page_limit(options.batch_size)
        product_filters = self.config.settings.product_filters

        self.logger.info(
            f"[{self.NETWORK_TYPE.value}] Starting {operation.operation_type.value} "
            f"for tenant {self.config.tenant_id} ({limit}/page)"
        )

        page_number = 1
        try:
            while True:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

                page = self._call_page(page_number, limit, filters)
                valid = [product for product in map(sanitize_product, page.products) if product]
                kept = apply_product_filters(valid, product_filters)

                operation.record_page(
                    processed=len(page.products),
                    succeeded=len(kept),
                    failed=len(page.products) - len(valid),
                )
                operation.metadata["pages"] += 1
                operation.metadata["filtered"] += len(valid) - len(kept)

                if kept:
                    signals.products_synced.send(
                        sender=self.NETWORK_TYPE, config=self.config, products=kept, operation=operation,
                    )

                if not page.pagination.has_more or not page.products:
                    break
                page_number += 1

        except SyncCancelledError as exc:
            self.logger.info(f"[{self.NETWORK_TYPE.value}] Sync {operation.id} cancelled after {page_number - 1} pages")
            return operation.cancel(exc.message)
        except AffiliateNetworkError as exc:
            self.logger.error(f"[{self.NETWORK_TYPE.value}] Sync {operation.id} failed on page {page_number}: {exc}")
            return operation.fail(exc.code, exc.message)

        self.logger.info(
            f"[{self.NETWORK_TYPE.value}] Sync {operation.id} done: "
            f"{operation.records_succeeded}/{operation.records_processed} products"
        )
        return operation.complete()

    # ── Commissions & conversions ───────────────────────────────────

    @requires_capability("commission_sync")
    def sync_commissions(self, options: CommissionSyncOptions = None) -> List[CommissionStructure]:
        options = options or CommissionSyncOptions()
        structures = latest_commission_structures(self.fetch_commission_structures(options))
        if options.merchant_ids:
            wanted = {str(merchant_id) for merchant_id in options.merchant_ids}
            structures = [structure for structure in structures if structure.merchant_id in wanted]
        signals.commissions_synced.send(sender=self.NETWORK_TYPE, config=self.config, structures=structures)
        return structures

    @requires_capability("conversion_tracking")
    def get_conversions(self, date_from=None, date_to=None) -> List[Conversion]:
        end = as_datetime(date_to) or utcnow()
        start = as_datetime(date_from) or end - timedelta(days=DEFAULT_CONVERSION_WINDOW_DAYS)
        conversions = self.fetch_conversions(start, end)
        for conversion in conversions:
            conversion.tenant_id = self.config.tenant_id
        return conversions

    # ── Links & clicks ──────────────────────────────────────────────

    @requires_capability("click_tracking")
    def generate_affiliate_link(self, product_id: str, custom_params: Mapping[str, str] = None) -> str:
        """
        Tracking link for ``product_id``.

        ``custom_params["subId"]`` lands verbatim in the network's sub-id
        parameter; any other params are passed through on the link.
        """
        params = dict(custom_params or {})
        sub_id = params.pop("subId", "") or ""
        return self.build_affiliate_link(str(product_id), str(sub_id), params)

    @requires_capability("click_tracking")
    def track_click(self, click: Click) -> Click:
        # Networks track clicks on their own redirect; this only stamps ids
        if not click.tenant_id:
            click.tenant_id = self.config.tenant_id
        if not click.network_click_id:
            click.network_click_id = generate_tracking_id(self.NETWORK_TYPE)
        self.logger.debug(f"[{self.NETWORK_TYPE.value}] Click {click.network_click_id} on {click.product_id}")
        return click

    # ── Bulk ────────────────────────────────────────────────────────

    def execute_bulk(self, records: List[Any], handler, batch_size: int = None,
                     continue_on_error: bool = True) -> BulkOperationResult:
        return BulkOperationExecutor(self).execute(
            records, handler, batch_size=batch_size, continue_on_error=continue_on_error,
        )

    # ── Webhooks ────────────────────────────────────────────────────

    def _webhook_secret(self) -> str:
        return self.config.settings.webhook_secret or self.credentials.get("secretKey", "")

    def validate_webhook_signature(self, raw_body: bytes, signature: str) -> bool:
        """HMAC-SHA256 of the raw body, hex encoded, compared in constant time."""
        secret = self._webhook_secret()
        if not secret or not signature:
            return False
        if isinstance(raw_body, str):
            raw_body = raw_body.encode()
        expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
        provided = signature.strip()
        if provided.lower().startswith("sha256="):
            provided = provided[len("sha256="):]
        return hmac.compare_digest(expected, provided.lower())

    def conversion_from_webhook(self, data: Dict[str, Any]) -> Optional[Conversion]:
        if self.CONVERSION_RECORD is None:
            return None
        conversion = normalize_conversion(self.NETWORK_TYPE, self.CONVERSION_RECORD.from_payload(data))
        if not conversion.network_conversion_id:
            return None
        conversion.tenant_id = self.config.tenant_id
        return conversion

    @requires_capability("webhooks")
    def handle_webhook(self, payload: WebhookPayload) -> Optional[Conversion]:
        """Route a verified (or explicitly trusted) event to its signal."""
        event = payload.event_type
        if event == WebhookEventType.PRODUCT_UPDATED:
            signals.product_updated.send(sender=self.NETWORK_TYPE, config=self.config, payload=payload)
            return None

        conversion = self.conversion_from_webhook(payload.data)
        if event == WebhookEventType.CONVERSION_CANCELLED:
            if conversion is not None and conversion.status != ConversionStatus.REVERSED:
                conversion.status = ConversionStatus.CANCELLED
            signal = signals.conversion_cancelled
        elif event == WebhookEventType.CONVERSION_UPDATED:
            signal = signals.conversion_updated
        else:
            signal = signals.conversion_received

        self.logger.info(f"[{self.NETWORK_TYPE.value}] Webhook {event.value} (verified={payload.verified})")
        signal.send(sender=self.NETWORK_TYPE, config=self.config, payload=payload, conversion=conversion)
        return conversion
