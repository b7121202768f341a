"""
ShareASale adapter.

Every call goes to the single ``w.cfm`` endpoint with an ``action`` query
param; ``ShareASaleAuth`` adds the account params and signs the request.

Required credentials: ``affiliateId``, ``token``, ``secretKey``
(optional ``version``, default 2.9).
"""

from typing import Any, Dict, List
from urllib.parse import parse_qs

from core.exceptions import ProductNotFoundError, WebhookError
from networks.services.adapters.base import NetworkAdapter, build_link
from networks.services.normalizers import shareasale_commission, shareasale_conversion, shareasale_product
from networks.services.transport import ShareASaleAuth
from networks.services.wire import (
    ShareASaleMerchantRecord,
    ShareASaleProductRecord,
    ShareASaleTransactionRecord,
    record_list,
    to_int,
)
from networks.types import (
    AdapterCapabilities,
    NetworkType,
    Pagination,
    ProductPage,
    RateLimits,
    WebhookEventType,
    WebhookPayload,
)

LINK_URL = "https://www.shareasale.com/r.cfm"
DATE_FORMAT = "%m/%d/%Y"


def _records(data, key: str) -> List[Dict[str, Any]]:
    """Responses are either a bare list or ``{key: [...]}``."""
    if isinstance(data, dict):
        data = data.get(key)
    elif not isinstance(data, list):
        return []
    return record_list(data, NetworkType.SHAREASALE)


class ShareASaleAdapter(NetworkAdapter):
    NETWORK_TYPE = NetworkType.SHAREASALE
    BASE_URL = "https://api.shareasale.com/w.cfm"
    REQUIRED_CREDENTIALS = ("affiliateId", "token", "secretKey")
    SIGNATURE_HEADER = "X-ShareASale-Signature"
    CONVERSION_RECORD = ShareASaleTransactionRecord
    CAPABILITIES = AdapterCapabilities(
        max_batch_size=100,
        rate_limits=RateLimits(per_minute=30, per_hour=1800, per_day=43200),
        supports_real_time_updates=False,
        requires_webhook_signature=True,
    )

    def build_auth(self):
        return ShareASaleAuth(
            affiliate_id=self.credentials.get("affiliateId", ""),
            token=self.credentials.get("token", ""),
            secret_key=self.credentials.get("secretKey", ""),
            version=self.credentials.get("version") or "2.9",
        )

    def _action(self, action: str, **params) -> Any:
        query = {"action": action, "format": "json"}
        query.update({key: value for key, value in params.items() if value not in (None, "", [])})
        return self._get_json("", params=query)

    def probe(self) -> None:
        self._action("merchantList", rows=1)

    # ── Products ────────────────────────────────────────────────────

    def fetch_product_page(self, page, limit, filters) -> ProductPage:
        data = self._action(
            "productSearch",
            page=page,
            rows=limit,
            merchantId=",".join(filters.get("merchantIds") or []),
            category=",".join(filters.get("categories") or []) or filters.get("category"),
            keyword=filters.get("keyword"),
            modifiedSince=filters.get("updatedSince"),
        )
        records = _records(data, "products")
        total = to_int(data.get("totalCount"), default=-1) if isinstance(data, dict) else -1
        has_more = page * limit < total if total >= 0 else len(records) >= limit
        return ProductPage(
            products=[shareasale_product(ShareASaleProductRecord.from_payload(r)) for r in records],
            pagination=Pagination(page=page, limit=limit, total=total if total >= 0 else None, has_more=has_more),
        )

    def fetch_product(self, network_product_id):
        records = _records(self._action("productSearch", productId=network_product_id), "products")
        for record in records:
            parsed = ShareASaleProductRecord.from_payload(record)
            if parsed.product_id == network_product_id:
                return shareasale_product(parsed)
        raise ProductNotFoundError(
            f"Product {network_product_id} not found", network=self.NETWORK_TYPE, product_id=network_product_id,
        )

    # ── Commissions & conversions ───────────────────────────────────

    def fetch_commission_structures(self, options):
        data = self._action("merchantList", merchantId=",".join(options.merchant_ids))
        return [
            shareasale_commission(ShareASaleMerchantRecord.from_payload(record))
            for record in _records(data, "merchants")
        ]

    def fetch_conversions(self, date_from, date_to):
        data = self._action(
            "transactionList",
            dateStart=date_from.strftime(DATE_FORMAT),
            dateEnd=date_to.strftime(DATE_FORMAT),
        )
        return [
            shareasale_conversion(ShareASaleTransactionRecord.from_payload(record))
            for record in _records(data, "transactions")
        ]

    # ── Links ───────────────────────────────────────────────────────

    def build_affiliate_link(self, product_id, sub_id, params):
        query = [
            ("b", product_id),
            ("u", self.credentials.get("affiliateId", "")),
            ("m", params.pop("merchantId", "")),
            ("urllink", params.pop("productUrl", "")),
            ("afftrack", sub_id),
        ]
        return build_link(LINK_URL, query, params)

    # ── Webhooks ────────────────────────────────────────────────────

    def parse_webhook_body(self, raw_body) -> WebhookPayload:
        try:
            text = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError as exc:
            raise WebhookError("Webhook body is not UTF-8", network=self.NETWORK_TYPE) from exc
        data = {key: values[0] for key, values in parse_qs(text, keep_blank_values=True).items()}
        if not data:
            raise WebhookError("Empty ShareASale webhook body", network=self.NETWORK_TYPE)

        if str(data.get("reversal", "")).lower() in ("1", "true", "yes"):
            event_type = WebhookEventType.CONVERSION_CANCELLED
        elif str(data.get("status", "")).lower() == "confirmed":
            event_type = WebhookEventType.CONVERSION_UPDATED
        else:
            event_type = WebhookEventType.CONVERSION_CREATED
        return WebhookPayload(event_type=event_type, network_type=self.NETWORK_TYPE, data=data)
