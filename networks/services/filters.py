"""
Product sanitation, tenant filters and small helpers shared by adapters
and the manager.
"""

import re
import html
import time
import uuid
import logging
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional

from django.utils.html import strip_tags

from networks.types import AffiliateProduct, CommissionType, NetworkConfig, ProductFilters

logger = logging.getLogger(__name__)

_SCRIPT_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_text(value, max_length: Optional[int] = None) -> str:
    """Strip markup from network-supplied text and collapse whitespace."""
    if not value:
        return ""
    text = _SCRIPT_RE.sub(" ", str(value))
    text = html.unescape(strip_tags(text))
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if max_length and len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


def sanitize_product(product: AffiliateProduct) -> Optional[AffiliateProduct]:
    """
    Clean a normalized product in place.

    Returns None when the product lacks a network id, a title or a merchant,
    which makes it unusable downstream.
    """
    product.title = sanitize_text(product.title, max_length=500)
    product.description = sanitize_text(product.description, max_length=5000)
    product.brand = sanitize_text(product.brand, max_length=200)
    product.merchant_name = sanitize_text(product.merchant_name, max_length=200)

    if not product.network_product_id or not product.title or not product.merchant_id:
        logger.debug(f"Dropping incomplete product {product.id!r}")
        return None
    return product


def _matches_any(value: str, candidates: List[str]) -> bool:
    value = (value or "").lower()
    return any(candidate.lower() == value for candidate in candidates)


def _product_text(product: AffiliateProduct) -> str:
    return " ".join([product.title, product.description, " ".join(product.tags)]).lower()


def matches_filters(product: AffiliateProduct, filters: Optional[ProductFilters]) -> bool:
    if filters is None:
        return True

    if filters.categories and not _matches_any(product.category, filters.categories):
        return False
    if filters.exclude_categories and _matches_any(product.category, filters.exclude_categories):
        return False
    if filters.brands and not _matches_any(product.brand, filters.brands):
        return False
    if filters.exclude_brands and _matches_any(product.brand, filters.exclude_brands):
        return False

    text = _product_text(product)
    if filters.keywords and not any(keyword.lower() in text for keyword in filters.keywords):
        return False
    if filters.exclude_keywords and any(keyword.lower() in text for keyword in filters.exclude_keywords):
        return False

    if filters.min_commission_rate is not None and product.commission_rate < filters.min_commission_rate:
        return False
    if filters.max_commission_rate is not None and product.commission_rate > filters.max_commission_rate:
        return False

    price = product.price.amount
    if filters.price_min is not None and price < filters.price_min:
        return False
    if filters.price_max is not None and price > filters.price_max:
        return False

    return True


def apply_product_filters(products: Iterable[AffiliateProduct],
                          filters: Optional[ProductFilters]) -> List[AffiliateProduct]:
    return [product for product in products if matches_filters(product, filters)]


def calculate_commission_amount(order_value: float, rate: float, commission_type=CommissionType.PERCENTAGE) -> float:
    commission_type = CommissionType.parse(commission_type)
    if commission_type == CommissionType.FIXED:
        return round(max(0.0, rate), 2)
    return round(max(0.0, order_value) * max(0.0, rate) / 100, 2)


def batch_records(records: List[Any], size: int) -> Iterator[List[Any]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    for start in range(0, len(records), size):
        yield records[start:start + size]


def generate_tracking_id(network_type) -> str:
    network = getattr(network_type, "value", network_type)
    return f"{network}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def get_config_summary(config: NetworkConfig) -> Dict[str, Any]:
    """Loggable view of a config: never includes credential values."""
    return {
        "id": config.id,
        "tenantId": config.tenant_id,
        "networkType": config.network_type.value,
        "status": config.status.value,
        "autoSync": config.settings.auto_sync,
        "syncInterval": config.settings.sync_interval,
        "webhookEnabled": config.settings.webhook_enabled,
        "credentialKeys": sorted(config.credentials),
        "lastSyncAt": config.last_sync_at.isoformat() if config.last_sync_at else None,
    }


class PerformanceTracker:
    """Running request stats for one adapter."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total_requests = 0
        self.error_count = 0
        self._total_time = 0.0

    def record(self, duration: float, success: bool = True) -> None:
        with self._lock:
            self.total_requests += 1
            self._total_time += duration
            if not success:
                self.error_count += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            total = self.total_requests
            return {
                "avgResponseTime": round(self._total_time / total, 4) if total else 0.0,
                "successRate": round((total - self.error_count) / total, 4) if total else 1.0,
                "totalRequests": total,
                "errorCount": self.error_count,
            }
