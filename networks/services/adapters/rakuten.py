"""
Rakuten Advertising adapter.

Product search and the coupon feed answer in XML; advertiser and
transaction reporting in JSON. Auth is a Bearer API key. Rakuten webhooks
are only signed when the account has a ``secretKey``; without one they go
through the dispatcher's explicit trust settings.

Required credentials: ``publisherId``, ``apiKey`` (optional ``secretKey``).
"""

from typing import Any, Dict, List
from xml.etree import ElementTree

from core.exceptions import AffiliateNetworkError, ProductNotFoundError, WebhookError
from networks.services.adapters.base import NetworkAdapter, build_link, requires_capability
from networks.services.normalizers import rakuten_commission, rakuten_conversion, rakuten_coupon, rakuten_product
from networks.services.transport import BearerAuth
from networks.services.wire import (
    RakutenAdvertiserRecord,
    RakutenCouponItem,
    RakutenSearchResult,
    RakutenTransactionRecord,
    record_list,
)
from networks.types import (
    AdapterCapabilities,
    Coupon,
    NetworkType,
    Pagination,
    ProductPage,
    RateLimits,
    WebhookEventType,
    WebhookPayload,
)

LINK_URL = "https://click.linksynergy.com/deeplink"
COUPON_FEED_URL = "https://couponfeed.linksynergy.com/coupon"
DATE_FORMAT = "%Y-%m-%d"


def _records(data, key: str) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get(key)
    elif not isinstance(data, list):
        return []
    return record_list(data, NetworkType.RAKUTEN)


class RakutenAdapter(NetworkAdapter):
    NETWORK_TYPE = NetworkType.RAKUTEN
    BASE_URL = "https://api.linksynergy.com"
    REQUIRED_CREDENTIALS = ("publisherId", "apiKey")
    SIGNATURE_HEADER = "X-Rakuten-Signature"
    CONVERSION_RECORD = RakutenTransactionRecord
    CAPABILITIES = AdapterCapabilities(
        max_batch_size=200,
        rate_limits=RateLimits(per_minute=60, per_hour=3600, per_day=86400),
        supports_real_time_updates=False,
        requires_webhook_signature=False,
    )

    def build_auth(self):
        return BearerAuth(self.credentials.get("apiKey", ""))

    @property
    def signs_webhooks(self) -> bool:
        return bool(self.credentials.get("secretKey"))

    def _xml(self, path: str, params: Dict[str, Any]):
        query = {key: value for key, value in params.items() if value not in (None, "", [])}
        response = self._get(path, params=query)
        return response.content

    def _invalid(self, what: str, exc: Exception) -> AffiliateNetworkError:
        return AffiliateNetworkError(
            f"Malformed Rakuten {what} XML: {exc}", network=self.NETWORK_TYPE, code="INVALID_RESPONSE",
        )

    def _search(self, params: Dict[str, Any]) -> RakutenSearchResult:
        content = self._xml("/productsearch/1.0", params)
        try:
            return RakutenSearchResult.from_xml(content)
        except ElementTree.ParseError as exc:
            raise self._invalid("product search", exc) from exc

    def probe(self) -> None:
        self._get_json("/v1/advertisers", params={"limit": 1})

    # ── Products ────────────────────────────────────────────────────

    def fetch_product_page(self, page, limit, filters) -> ProductPage:
        result = self._search({
            "keyword": filters.get("keyword"),
            "cat": ",".join(filters.get("categories") or []) or filters.get("category"),
            "mid": ",".join(filters.get("merchantIds") or []) or filters.get("merchantId"),
            "max": limit,
            "pagenumber": page,
        })
        if result.total_pages:
            has_more = page < result.total_pages
        else:
            has_more = len(result.items) >= limit
        return ProductPage(
            products=[rakuten_product(item) for item in result.items],
            pagination=Pagination(page=page, limit=limit, total=result.total_matches or None, has_more=has_more),
        )

    def fetch_product(self, network_product_id):
        result = self._search({"keyword": network_product_id, "max": 20})
        for item in result.items:
            if item.product_id == network_product_id:
                return rakuten_product(item)
        raise ProductNotFoundError(
            f"Product {network_product_id} not found", network=self.NETWORK_TYPE, product_id=network_product_id,
        )

    # ── Commissions & conversions ───────────────────────────────────

    def fetch_commission_structures(self, options):
        data = self._get_json("/v1/advertisers", params={"limit": self.CAPABILITIES.max_batch_size})
        return [
            rakuten_commission(RakutenAdvertiserRecord.from_payload(record))
            for record in _records(data, "advertisers")
        ]

    def fetch_conversions(self, date_from, date_to):
        data = self._get_json("/v1/transactions", params={
            "start_date": date_from.strftime(DATE_FORMAT),
            "end_date": date_to.strftime(DATE_FORMAT),
        })
        return [
            rakuten_conversion(RakutenTransactionRecord.from_payload(record))
            for record in _records(data, "transactions")
        ]

    @requires_capability("product_sync")
    def get_coupons(self, merchant_id: str = None, category: str = None, page: int = 1,
                    limit: int = None) -> List[Coupon]:
        content = self._xml(COUPON_FEED_URL, {
            "token": self.credentials.get("apiKey"),
            "mid": merchant_id,
            "category": category,
            "resultsperpage": limit or self.CAPABILITIES.max_batch_size,
            "pagenumber": page,
        })
        try:
            items = RakutenCouponItem.list_from_xml(content)
        except ElementTree.ParseError as exc:
            raise self._invalid("coupon feed", exc) from exc
        return [rakuten_coupon(item) for item in items if item.offer_id]

    # ── Links ───────────────────────────────────────────────────────

    def build_affiliate_link(self, product_id, sub_id, params):
        query = [
            ("id", self.credentials.get("publisherId", "")),
            ("mid", params.pop("merchantId", "")),
            ("murl", params.pop("productUrl", "")),
            ("u1", sub_id),
        ]
        return build_link(LINK_URL, query, params)

    # ── Webhooks ────────────────────────────────────────────────────

    def parse_webhook_body(self, raw_body) -> WebhookPayload:
        if not raw_body:
            raise WebhookError("Empty Rakuten webhook body", network=self.NETWORK_TYPE)
        text = raw_body.decode("utf-8", errors="replace") if isinstance(raw_body, bytes) else raw_body
        return WebhookPayload(
            event_type=WebhookEventType.CONVERSION_CREATED,
            network_type=self.NETWORK_TYPE,
            data={"rawPayload": text},
        )
