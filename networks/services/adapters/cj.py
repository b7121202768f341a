"""
CJ Affiliate adapter.

REST endpoints under ``https://api.cj.com/v3``, Bearer personal access
token, JSON wrapped in a ``cj-api`` envelope. CJ has no webhook signature
scheme, so inbound events are only accepted through the dispatcher's
explicit trust settings.

Required credentials: ``developerId``, ``websiteId``, ``personalAccessToken``.
"""

import json
from typing import Any, Dict, List, Tuple

from core.exceptions import ProductNotFoundError, WebhookError
from networks.services.adapters.base import NetworkAdapter, build_link
from networks.services.normalizers import cj_commission, cj_conversion, cj_product
from networks.services.transport import BearerAuth
from networks.services.wire import CJAdvertiserRecord, CJCommissionRecord, CJProductRecord, record_list, to_int
from networks.types import (
    AdapterCapabilities,
    NetworkType,
    Pagination,
    ProductPage,
    RateLimits,
    WebhookEventType,
    WebhookPayload,
)

LINK_URL = "https://www.anrdoezrs.net/click-{website_id}-{advertiser_id}"
DATE_FORMAT = "%Y-%m-%d"

WEBHOOK_EVENTS = {
    "commission_update": WebhookEventType.CONVERSION_UPDATED,
    "commission_delete": WebhookEventType.CONVERSION_CANCELLED,
    "product_update": WebhookEventType.PRODUCT_UPDATED,
}


def _unwrap(data, collection: str, item: str) -> Tuple[List[Dict[str, Any]], int]:
    """
    Pull records and the total out of the ``cj-api`` envelope.

    CJ nests as ``{"cj-api": {"products": {"product": [...], "total-matched": n}}}``
    and collapses single-element lists to a bare object.
    """
    envelope = data.get("cj-api", data) if isinstance(data, dict) else {}
    container = envelope.get(collection) or []
    total = -1
    if isinstance(container, dict):
        total = to_int(container.get("total-matched"), default=-1)
        container = container.get(item, [])
    if total < 0:
        total = to_int(envelope.get("total-matched"), default=-1)
    return record_list(container, NetworkType.CJ), total


class CJAdapter(NetworkAdapter):
    NETWORK_TYPE = NetworkType.CJ
    BASE_URL = "https://api.cj.com"
    REQUIRED_CREDENTIALS = ("developerId", "websiteId", "personalAccessToken")
    SIGNATURE_HEADER = "X-CJ-Signature"
    CONVERSION_RECORD = CJCommissionRecord
    CAPABILITIES = AdapterCapabilities(
        max_batch_size=1000,
        rate_limits=RateLimits(per_minute=100, per_hour=6000, per_day=144000),
        supports_real_time_updates=True,
        requires_webhook_signature=False,
    )

    def build_auth(self):
        return BearerAuth(self.credentials.get("personalAccessToken", ""))

    def _query(self, path: str, **params) -> Any:
        query = {key: value for key, value in params.items() if value not in (None, "", [])}
        return self._get_json(path, params=query)

    def probe(self) -> None:
        self._query("/v3/advertisers", **{"requestor-cid": self.credentials.get("developerId"),
                                         "records-per-page": 1})

    # ── Products ────────────────────────────────────────────────────

    def fetch_product_page(self, page, limit, filters) -> ProductPage:
        data = self._query("/v3/product-catalog", **{
            "website-id": self.credentials.get("websiteId"),
            "page-number": page,
            "records-per-page": limit,
            "advertiser-ids": ",".join(filters.get("merchantIds") or []) or filters.get("merchantId"),
            "advertiser-category": ",".join(filters.get("categories") or []) or filters.get("category"),
            "keywords": filters.get("keyword"),
            "updated-since": filters.get("updatedSince"),
        })
        records, total = _unwrap(data, "products", "product")
        has_more = page * limit < total if total >= 0 else len(records) >= limit
        return ProductPage(
            products=[cj_product(CJProductRecord.from_payload(record)) for record in records],
            pagination=Pagination(page=page, limit=limit, total=total if total >= 0 else None, has_more=has_more),
        )

    def fetch_product(self, network_product_id):
        data = self._query("/v3/product-catalog", **{
            "website-id": self.credentials.get("websiteId"),
            "catalog-id": network_product_id,
        })
        records, _ = _unwrap(data, "products", "product")
        for record in records:
            parsed = CJProductRecord.from_payload(record)
            if parsed.catalog_id == network_product_id:
                return cj_product(parsed)
        raise ProductNotFoundError(
            f"Product {network_product_id} not found", network=self.NETWORK_TYPE, product_id=network_product_id,
        )

    # ── Commissions & conversions ───────────────────────────────────

    def fetch_commission_structures(self, options):
        data = self._query("/v3/advertisers", **{
            "requestor-cid": self.credentials.get("developerId"),
            "advertiser-ids": ",".join(options.merchant_ids) or "joined",
        })
        records, _ = _unwrap(data, "advertisers", "advertiser")
        return [cj_commission(CJAdvertiserRecord.from_payload(record)) for record in records]

    def fetch_conversions(self, date_from, date_to):
        data = self._query("/v3/commissions", **{
            "requestor-cid": self.credentials.get("developerId"),
            "start-date": date_from.strftime(DATE_FORMAT),
            "end-date": date_to.strftime(DATE_FORMAT),
        })
        records, _ = _unwrap(data, "commissions", "commission")
        return [cj_conversion(CJCommissionRecord.from_payload(record)) for record in records]

    # ── Links ───────────────────────────────────────────────────────

    def build_affiliate_link(self, product_id, sub_id, params):
        # CJ deep links need the advertiser and buy URL, so read the product first
        product = self.get_product(product_id)
        website_id = self.credentials.get("websiteId", "")
        advertiser_id = params.pop("advertiserId", "") or product.merchant_id
        query = [
            ("SID", sub_id),
            ("CJSKU", product_id),
            ("URL", product.affiliate_url),
        ]
        base = LINK_URL.format(website_id=website_id, advertiser_id=advertiser_id)
        return build_link(base, query, params)

    # ── Webhooks ────────────────────────────────────────────────────

    def parse_webhook_body(self, raw_body) -> WebhookPayload:
        try:
            body = json.loads(raw_body or b"")
        except ValueError as exc:
            raise WebhookError("Malformed CJ webhook JSON", network=self.NETWORK_TYPE) from exc
        if not isinstance(body, dict):
            raise WebhookError("CJ webhook body must be an object", network=self.NETWORK_TYPE)

        event_type = WEBHOOK_EVENTS.get(str(body.get("type", "")).lower(), WebhookEventType.CONVERSION_CREATED)
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        return WebhookPayload(event_type=event_type, network_type=self.NETWORK_TYPE, data=data)
