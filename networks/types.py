"""
Canonical data model for affiliate network integrations.

Every adapter, whatever its wire format, produces these types. The external
store persists them via ``to_dict()`` (camelCase, JSON-ready); nothing here
touches the database.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, date, time, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.utils.dateparse import parse_date, parse_datetime

from core.exceptions import ConflictError

logger = logging.getLogger(__name__)

MIN_SYNC_INTERVAL_MINUTES = 5
DEFAULT_SYNC_INTERVAL_MINUTES = 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def as_datetime(value) -> Optional[datetime]:
    """Best-effort parse of the date formats networks send (ISO, date-only)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        try:
            parsed = parse_datetime(text)
        except ValueError:
            parsed = None
        if parsed is None:
            try:
                day = parse_date(text[:10])
            except ValueError:
                day = None
            if day is None:
                return None
            parsed = datetime.combine(day, time.min)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _pick(data: Dict[str, Any], *keys, default=None):
    """First present key wins; lets from_dict accept camelCase or snake_case."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


# =============================================================================
# Enums
# =============================================================================

class NetworkType(str, Enum):
    """Supported affiliate networks."""
    SHAREASALE = "shareasale"
    CJ = "cj"
    IMPACT = "impact"
    RAKUTEN = "rakuten"

    @property
    def display_name(self) -> str:
        return {
            NetworkType.SHAREASALE: "ShareASale",
            NetworkType.CJ: "CJ Affiliate",
            NetworkType.IMPACT: "Impact",
            NetworkType.RAKUTEN: "Rakuten Advertising",
        }[self]


class NetworkStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TIERED = "tiered"

    @classmethod
    def parse(cls, value, default=None) -> "CommissionType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.PERCENTAGE


class ConversionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REVERSED = "reversed"


class StockStatus(str, Enum):
    ACTIVE = "active"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"


class SyncStatus(str, Enum):
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class OperationType(str, Enum):
    FULL_SYNC = "full_sync"
    INCREMENTAL_SYNC = "incremental_sync"
    COMMISSION_SYNC = "commission_sync"


class WebhookEventType(str, Enum):
    CONVERSION_CREATED = "conversion.created"
    CONVERSION_UPDATED = "conversion.updated"
    CONVERSION_CANCELLED = "conversion.cancelled"
    PRODUCT_UPDATED = "product.updated"


# =============================================================================
# Network configuration
# =============================================================================

@dataclass
class ProductFilters:
    """Tenant-level filters applied to every synced product page."""
    categories: List[str] = field(default_factory=list)
    exclude_categories: List[str] = field(default_factory=list)
    brands: List[str] = field(default_factory=list)
    exclude_brands: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    exclude_keywords: List[str] = field(default_factory=list)
    min_commission_rate: Optional[float] = None
    max_commission_rate: Optional[float] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ProductFilters"]:
        if not data:
            return None
        price_range = _pick(data, "priceRange", "price_range", default={})
        return cls(
            categories=list(_pick(data, "categories", default=[])),
            exclude_categories=list(_pick(data, "excludeCategories", "exclude_categories", default=[])),
            brands=list(_pick(data, "brands", default=[])),
            exclude_brands=list(_pick(data, "excludeBrands", "exclude_brands", default=[])),
            keywords=list(_pick(data, "keywords", default=[])),
            exclude_keywords=list(_pick(data, "excludeKeywords", "exclude_keywords", default=[])),
            min_commission_rate=_pick(data, "minCommissionRate", "min_commission_rate"),
            max_commission_rate=_pick(data, "maxCommissionRate", "max_commission_rate"),
            price_min=_pick(price_range, "min", default=_pick(data, "price_min")),
            price_max=_pick(price_range, "max", default=_pick(data, "price_max")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": self.categories,
            "excludeCategories": self.exclude_categories,
            "brands": self.brands,
            "excludeBrands": self.exclude_brands,
            "keywords": self.keywords,
            "excludeKeywords": self.exclude_keywords,
            "minCommissionRate": self.min_commission_rate,
            "maxCommissionRate": self.max_commission_rate,
            "priceRange": {"min": self.price_min, "max": self.price_max},
        }


@dataclass
class NetworkSettings:
    auto_sync: bool = False
    sync_interval: int = DEFAULT_SYNC_INTERVAL_MINUTES   # minutes
    webhook_enabled: bool = False
    webhook_secret: Optional[str] = field(default=None, repr=False)
    product_filters: Optional[ProductFilters] = None
    # Only consulted for networks without a webhook signature scheme
    allow_unverified_webhooks: bool = False
    webhook_ip_allowlist: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.sync_interval = max(MIN_SYNC_INTERVAL_MINUTES, int(self.sync_interval or DEFAULT_SYNC_INTERVAL_MINUTES))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NetworkSettings":
        data = data or {}
        return cls(
            auto_sync=bool(_pick(data, "autoSync", "auto_sync", default=False)),
            sync_interval=_pick(data, "syncInterval", "sync_interval", default=DEFAULT_SYNC_INTERVAL_MINUTES),
            webhook_enabled=bool(_pick(data, "enableWebhooks", "webhookEnabled", "webhook_enabled", default=False)),
            webhook_secret=_pick(data, "webhookSecret", "webhook_secret"),
            product_filters=ProductFilters.from_dict(_pick(data, "productFilters", "product_filters")),
            allow_unverified_webhooks=bool(
                _pick(data, "allowUnverifiedWebhooks", "allow_unverified_webhooks", default=False)
            ),
            webhook_ip_allowlist=list(_pick(data, "webhookIpAllowlist", "webhook_ip_allowlist", default=[])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "autoSync": self.auto_sync,
            "syncInterval": self.sync_interval,
            "enableWebhooks": self.webhook_enabled,
            "hasWebhookSecret": bool(self.webhook_secret),
            "productFilters": self.product_filters.to_dict() if self.product_filters else None,
            "allowUnverifiedWebhooks": self.allow_unverified_webhooks,
            "webhookIpAllowlist": self.webhook_ip_allowlist,
        }


@dataclass
class NetworkConfig:
    """
    One tenant's connection to one network.

    Supplied by the config collaborator; the manager writes back
    ``last_sync_at``, ``next_sync_at``, ``status`` and ``error_message``.
    Credentials never leave this object: they are excluded from ``repr``
    and ``to_dict``.
    """
    tenant_id: str
    network_type: NetworkType
    credentials: Dict[str, str] = field(default_factory=dict, repr=False)
    settings: NetworkSettings = field(default_factory=NetworkSettings)
    name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: NetworkStatus = NetworkStatus.ACTIVE
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)
        self.status = NetworkStatus(self.status)
        if not self.name:
            self.name = f"{self.network_type.display_name} ({self.tenant_id})"

    @property
    def key(self) -> Tuple[NetworkType, str]:
        return (self.network_type, self.tenant_id)

    def touch(self) -> None:
        self.updated_at = utcnow()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkConfig":
        kwargs = {
            "tenant_id": _pick(data, "tenantId", "tenant_id", default=""),
            "network_type": _pick(data, "networkType", "network_type"),
            "credentials": dict(_pick(data, "credentials", default={})),
            "settings": NetworkSettings.from_dict(_pick(data, "settings")),
            "name": _pick(data, "name", default=""),
            "status": _pick(data, "status", default=NetworkStatus.ACTIVE),
            "last_sync_at": as_datetime(_pick(data, "lastSyncAt", "last_sync_at")),
            "next_sync_at": as_datetime(_pick(data, "nextSyncAt", "next_sync_at")),
            "error_message": _pick(data, "errorMessage", "error_message"),
        }
        config_id = _pick(data, "id")
        if config_id:
            kwargs["id"] = str(config_id)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "networkType": self.network_type.value,
            "name": self.name,
            "hasCredentials": bool(self.credentials),
            "settings": self.settings.to_dict(),
            "status": self.status.value,
            "lastSyncAt": _iso(self.last_sync_at),
            "nextSyncAt": _iso(self.next_sync_at),
            "errorMessage": self.error_message,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# =============================================================================
# Products
# =============================================================================

@dataclass
class ProductImage:
    url: str
    alt: str = ""
    is_primary: bool = False
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "alt": self.alt,
            "isPrimary": self.is_primary,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class ProductPrice:
    amount: float = 0.0
    currency: str = "USD"
    original: Optional[float] = None
    sale: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "originalPrice": self.original,
            "salePrice": self.sale,
        }


@dataclass
class ProductAvailability:
    in_stock: bool = True
    status: StockStatus = StockStatus.ACTIVE
    quantity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inStock": self.in_stock,
            "stockStatus": StockStatus(self.status).value,
            "quantity": self.quantity,
        }


@dataclass
class ProductRating:
    average: float
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"average": self.average, "count": self.count}


@dataclass
class AffiliateProduct:
    """
    Network-agnostic product.

    ``id`` is always ``"{network_type}-{network_product_id}"`` so products
    from different networks never collide. Prices are clamped to >= 0 and
    percentage commissions to [0, 100] on construction.
    """
    network_type: NetworkType
    network_product_id: str
    title: str
    merchant_id: str = ""
    merchant_name: str = ""
    description: str = ""
    brand: str = ""
    category: str = ""
    subcategory: str = ""
    sku: str = ""
    images: List[ProductImage] = field(default_factory=list)
    price: ProductPrice = field(default_factory=ProductPrice)
    commission_rate: float = 0.0
    commission_type: CommissionType = CommissionType.PERCENTAGE
    affiliate_url: str = ""
    tracking_url: str = ""
    availability: ProductAvailability = field(default_factory=ProductAvailability)
    rating: Optional[ProductRating] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_updated_at: Optional[str] = None
    is_active: bool = True
    id: str = field(init=False)

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)
        self.network_product_id = str(self.network_product_id)
        self.commission_type = CommissionType.parse(self.commission_type)
        self.id = f"{self.network_type.value}-{self.network_product_id}"

        self.price.amount = max(0.0, float(self.price.amount or 0))
        rate = max(0.0, float(self.commission_rate or 0))
        if self.commission_type == CommissionType.PERCENTAGE:
            rate = min(100.0, rate)
        self.commission_rate = rate
        if not self.tracking_url:
            self.tracking_url = self.affiliate_url

    @property
    def primary_image(self) -> Optional[ProductImage]:
        for image in self.images:
            if image.is_primary:
                return image
        return self.images[0] if self.images else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "networkType": self.network_type.value,
            "networkProductId": self.network_product_id,
            "merchantId": self.merchant_id,
            "merchantName": self.merchant_name,
            "title": self.title,
            "description": self.description,
            "brand": self.brand,
            "category": self.category,
            "subcategory": self.subcategory,
            "sku": self.sku,
            "images": [image.to_dict() for image in self.images],
            "price": self.price.to_dict(),
            "commissionRate": self.commission_rate,
            "commissionType": self.commission_type.value,
            "affiliateUrl": self.affiliate_url,
            "trackingUrl": self.tracking_url,
            "availability": self.availability.to_dict(),
            "rating": self.rating.to_dict() if self.rating else None,
            "tags": self.tags,
            "metadata": self.metadata,
            "lastUpdatedAt": self.last_updated_at,
            "isActive": self.is_active,
        }


@dataclass
class Coupon:
    """Coupon or deal offered by a merchant (Rakuten coupon feed)."""
    network_type: NetworkType
    offer_id: str
    name: str = ""
    description: str = ""
    offer_type: str = "coupon"
    code: str = ""
    discount_amount: float = 0.0
    discount_type: CommissionType = CommissionType.PERCENTAGE
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    restrictions: str = ""
    categories: List[str] = field(default_factory=list)
    merchant_id: str = ""
    merchant_name: str = ""
    link_url: str = ""
    image_url: str = ""
    id: str = field(init=False)

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)
        self.discount_type = CommissionType.parse(self.discount_type)
        self.id = f"{self.network_type.value}-coupon-{self.offer_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "networkType": self.network_type.value,
            "offerId": self.offer_id,
            "name": self.name,
            "description": self.description,
            "type": self.offer_type,
            "code": self.code,
            "discountAmount": self.discount_amount,
            "discountType": self.discount_type.value,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "restrictions": self.restrictions,
            "categories": self.categories,
            "merchantId": self.merchant_id,
            "merchantName": self.merchant_name,
            "linkUrl": self.link_url,
            "imageUrl": self.image_url,
        }


# =============================================================================
# Clicks & conversions
# =============================================================================

@dataclass
class Click:
    network_type: NetworkType
    affiliate_url: str
    tenant_id: str = ""
    network_click_id: str = ""
    product_id: Optional[str] = None
    referrer_url: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    device_type: Optional[str] = None
    clicked_at: datetime = field(default_factory=utcnow)
    converted: bool = False
    conversion_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "networkType": self.network_type.value,
            "networkClickId": self.network_click_id,
            "productId": self.product_id,
            "affiliateUrl": self.affiliate_url,
            "referrerUrl": self.referrer_url,
            "userAgent": self.user_agent,
            "ipAddress": self.ip_address,
            "deviceType": self.device_type,
            "clickedAt": _iso(self.clicked_at),
            "converted": self.converted,
            "conversionId": self.conversion_id,
            "metadata": self.metadata,
        }


# Allowed forward moves; anything else is ignored, never applied.
CONVERSION_TRANSITIONS = {
    ConversionStatus.PENDING: {ConversionStatus.CONFIRMED, ConversionStatus.CANCELLED},
    ConversionStatus.CONFIRMED: {ConversionStatus.REVERSED},
    ConversionStatus.CANCELLED: set(),
    ConversionStatus.REVERSED: set(),
}


def can_transition(current: ConversionStatus, incoming: ConversionStatus) -> bool:
    return ConversionStatus(incoming) in CONVERSION_TRANSITIONS[ConversionStatus(current)]


def merge_conversion_status(current: ConversionStatus, incoming: ConversionStatus) -> ConversionStatus:
    """
    Status the store should keep when a network reports ``incoming`` for a
    conversion already stored as ``current``.

    Transitions are monotonic: a confirmed conversion re-reported as
    pending stays confirmed.
    """
    current = ConversionStatus(current)
    incoming = ConversionStatus(incoming)
    if incoming == current or can_transition(current, incoming):
        return incoming
    logger.debug(f"Ignoring conversion status regression {current.value} -> {incoming.value}")
    return current


@dataclass
class Conversion:
    network_type: NetworkType
    network_conversion_id: str
    tenant_id: str = ""
    click_id: str = ""
    order_id: str = ""
    product_id: Optional[str] = None
    merchant_id: str = ""
    order_value: float = 0.0
    currency: str = "USD"
    commission_amount: float = 0.0
    commission_rate: float = 0.0
    status: ConversionStatus = ConversionStatus.PENDING
    conversion_date: Optional[str] = None
    payout_date: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(init=False)

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)
        self.network_conversion_id = str(self.network_conversion_id)
        try:
            self.status = ConversionStatus(self.status)
        except ValueError:
            self.status = ConversionStatus.PENDING
        self.id = f"{self.network_type.value}-{self.network_conversion_id}"

    def apply_status(self, incoming: ConversionStatus) -> bool:
        """Move to ``incoming`` if allowed. Returns True when status changed."""
        merged = merge_conversion_status(self.status, incoming)
        changed = merged != self.status
        self.status = merged
        return changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "networkType": self.network_type.value,
            "networkConversionId": self.network_conversion_id,
            "clickId": self.click_id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "merchantId": self.merchant_id,
            "orderValue": self.order_value,
            "currency": self.currency,
            "commissionAmount": self.commission_amount,
            "commissionRate": self.commission_rate,
            "status": self.status.value,
            "conversionDate": self.conversion_date,
            "payoutDate": self.payout_date,
            "metadata": self.metadata,
        }


@dataclass
class CommissionStructure:
    network_type: NetworkType
    merchant_id: str
    merchant_name: str = ""
    base_rate: float = 0.0
    commission_type: CommissionType = CommissionType.PERCENTAGE
    effective_date: Optional[str] = None
    expiration_date: Optional[str] = None
    id: str = field(init=False)

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)
        self.merchant_id = str(self.merchant_id)
        self.commission_type = CommissionType.parse(self.commission_type)
        self.id = f"{self.network_type.value}-{self.merchant_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "networkType": self.network_type.value,
            "merchantId": self.merchant_id,
            "merchantName": self.merchant_name,
            "baseRate": self.base_rate,
            "commissionType": self.commission_type.value,
            "effectiveDate": self.effective_date,
            "expirationDate": self.expiration_date,
        }


def latest_commission_structures(structures: Iterable[CommissionStructure]) -> List[CommissionStructure]:
    """Keep one structure per (network, merchant): the latest effective date wins."""
    floor = datetime.min.replace(tzinfo=timezone.utc)
    latest: Dict[Tuple[NetworkType, str], CommissionStructure] = {}
    for structure in structures:
        key = (structure.network_type, structure.merchant_id)
        current = latest.get(key)
        if current is None or (as_datetime(structure.effective_date) or floor) >= (
            as_datetime(current.effective_date) or floor
        ):
            latest[key] = structure
    return list(latest.values())


# =============================================================================
# Sync operations
# =============================================================================

@dataclass
class SyncError:
    error_code: str
    error_message: str
    record_id: Optional[str] = None
    retry_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordId": self.record_id,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "retryCount": self.retry_count,
        }


@dataclass
class SyncOperation:
    """
    Progress record for one sync run.

    Counts accumulate page by page. Once ``complete``/``fail``/``cancel``
    has been called the record is sealed and any further assignment raises
    ``ConflictError``.
    """
    tenant_id: str
    network_type: NetworkType
    operation_type: OperationType = OperationType.INCREMENTAL_SYNC
    status: SyncStatus = SyncStatus.SYNCING
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    records_succeeded: int = 0
    records_failed: int = 0
    error_details: List[SyncError] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.network_type = NetworkType(self.network_type)
        self.operation_type = OperationType(self.operation_type)
        self.status = SyncStatus(self.status)

    def __setattr__(self, name, value):
        if self.__dict__.get("_sealed"):
            raise ConflictError(
                f"Sync operation {self.__dict__.get('id')} is {self.__dict__['status'].value}; it can no longer change",
                resource="sync_operation",
            )
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self.status != SyncStatus.SYNCING

    @property
    def duration(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def record_page(self, processed: int, succeeded: int, failed: int = 0) -> None:
        self.records_processed += processed
        self.records_succeeded += succeeded
        self.records_failed += failed

    def add_error(self, error_code: str, error_message: str, record_id=None, retry_count: int = 0) -> None:
        self.error_details.append(SyncError(
            error_code=error_code,
            error_message=error_message,
            record_id=record_id,
            retry_count=retry_count,
        ))

    def complete(self) -> "SyncOperation":
        return self._finish(SyncStatus.COMPLETED)

    def fail(self, error_code: str, error_message: str, retry_count: int = 0) -> "SyncOperation":
        self.add_error(error_code, error_message, retry_count=retry_count)
        return self._finish(SyncStatus.ERROR)

    def cancel(self, reason: str = "Sync cancelled") -> "SyncOperation":
        self.add_error("SYNC_CANCELLED", reason)
        return self._finish(SyncStatus.CANCELLED)

    def _finish(self, status: SyncStatus) -> "SyncOperation":
        self.status = status
        self.completed_at = utcnow()
        self.error_details = tuple(self.error_details)
        self.metadata = MappingProxyType(dict(self.metadata))
        object.__setattr__(self, "_sealed", True)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "networkType": self.network_type.value,
            "operationType": self.operation_type.value,
            "status": self.status.value,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "recordsProcessed": self.records_processed,
            "recordsSucceeded": self.records_succeeded,
            "recordsFailed": self.records_failed,
            "errorDetails": [error.to_dict() for error in self.error_details],
            "metadata": dict(self.metadata),
        }


@dataclass
class ProductSyncOptions:
    full_sync: bool = False
    merchant_ids: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    updated_since: Optional[str] = None
    batch_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fullSync": self.full_sync,
            "merchantIds": self.merchant_ids,
            "categories": self.categories,
            "updatedSince": self.updated_since,
            "batchSize": self.batch_size,
        }


@dataclass
class CommissionSyncOptions:
    merchant_ids: List[str] = field(default_factory=list)
    date_from: Optional[str] = None
    date_to: Optional[str] = None


@dataclass
class PaginatedRequest:
    page: int = 1
    limit: int = 20
    filters: Dict[str, Any] = field(default_factory=dict)
    sort_by: Optional[str] = None
    sort_order: str = "asc"


# =============================================================================
# Bulk operations
# =============================================================================

@dataclass
class BulkOperationError:
    index: int
    error: str
    retryable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "error": self.error, "retryable": self.retryable}


@dataclass
class BulkOperationResult:
    total_records: int
    success_count: int = 0
    error_count: int = 0
    errors: List[BulkOperationError] = field(default_factory=list)
    duration: float = 0.0   # seconds

    @property
    def is_complete_success(self) -> bool:
        return self.error_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRecords": self.total_records,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "errors": [error.to_dict() for error in self.errors],
            "duration": self.duration,
        }


# =============================================================================
# Webhooks & transport metadata
# =============================================================================

@dataclass
class WebhookPayload:
    """Canonical inbound event. Built per request, never persisted as-is."""
    event_type: WebhookEventType
    network_type: NetworkType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())
    # False when the network has no signature scheme and the event was let
    # in through the unverified opt-in or the IP allowlist
    verified: bool = True

    def __post_init__(self):
        self.event_type = WebhookEventType(self.event_type)
        self.network_type = NetworkType(self.network_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type.value,
            "networkType": self.network_type.value,
            "timestamp": self.timestamp,
            "data": self.data,
            "verified": self.verified,
        }


@dataclass
class RateLimitInfo:
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None
    retry_after: Optional[float] = None   # seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "resetAt": _iso(self.reset_at),
            "retryAfter": self.retry_after,
        }


@dataclass
class Pagination:
    page: int
    limit: int
    total: Optional[int] = None
    has_more: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "hasMore": self.has_more}


@dataclass
class ProductPage:
    products: List[AffiliateProduct]
    pagination: Pagination
    rate_limit: Optional[RateLimitInfo] = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [product.to_dict() for product in self.products],
            "pagination": self.pagination.to_dict(),
            "rateLimit": self.rate_limit.to_dict() if self.rate_limit else None,
            "requestId": self.request_id,
        }


# =============================================================================
# Adapter capabilities
# =============================================================================

@dataclass(frozen=True)
class RateLimits:
    per_minute: int
    per_hour: int
    per_day: int

    def to_dict(self) -> Dict[str, Any]:
        return {"perMinute": self.per_minute, "perHour": self.per_hour, "perDay": self.per_day}


@dataclass(frozen=True)
class AdapterCapabilities:
    """Static declaration of what an adapter can do and how fast."""
    max_batch_size: int
    rate_limits: RateLimits
    supports_product_sync: bool = True
    supports_commission_sync: bool = True
    supports_click_tracking: bool = True
    supports_conversion_tracking: bool = True
    supports_webhooks: bool = True
    supports_bulk_operations: bool = True
    supports_real_time_updates: bool = False
    requires_webhook_signature: bool = False

    def supports(self, capability: str) -> bool:
        return bool(getattr(self, f"supports_{capability}"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "supportsProductSync": self.supports_product_sync,
            "supportsCommissionSync": self.supports_commission_sync,
            "supportsClickTracking": self.supports_click_tracking,
            "supportsConversionTracking": self.supports_conversion_tracking,
            "supportsWebhooks": self.supports_webhooks,
            "supportsBulkOperations": self.supports_bulk_operations,
            "supportsRealTimeUpdates": self.supports_real_time_updates,
            "requiresWebhookSignature": self.requires_webhook_signature,
            "maxBatchSize": self.max_batch_size,
            "rateLimits": self.rate_limits.to_dict(),
        }
