"""
Impact adapter.

Mediapartner API under ``/Mediapartners/{AccountSid}``, HTTP Basic auth
(``accountSid:authToken``), JSON with PascalCase keys and ``@page`` /
``@numpages`` paging metadata.

Required credentials: ``accountSid``, ``authToken``, ``partnerId``.
"""

import json
from typing import Any, Dict, List

from requests.auth import HTTPBasicAuth

from core.exceptions import AffiliateNetworkError, ProductNotFoundError, WebhookError
from networks.services.adapters.base import NetworkAdapter, build_link, requires_capability
from networks.services.normalizers import impact_commission, impact_conversion, impact_product
from networks.services.wire import (
    ImpactActionRecord,
    ImpactCampaignRecord,
    ImpactCatalogItem,
    ImpactPayoutReportRecord,
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
    as_datetime,
)

LINK_URL = "https://impact.com/campaign-promo-codes/click-through"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
MAX_REPORT_PAGES = 50

WEBHOOK_EVENTS = {
    "ACTION_UPDATE": WebhookEventType.CONVERSION_UPDATED,
    "ACTION_DELETE": WebhookEventType.CONVERSION_CANCELLED,
    "CATALOG_ITEM_UPDATE": WebhookEventType.PRODUCT_UPDATED,
}


class ImpactAdapter(NetworkAdapter):
    NETWORK_TYPE = NetworkType.IMPACT
    BASE_URL = "https://api.impact.com"
    REQUIRED_CREDENTIALS = ("accountSid", "authToken", "partnerId")
    SIGNATURE_HEADER = "X-Impact-Signature"
    CONVERSION_RECORD = ImpactActionRecord
    CAPABILITIES = AdapterCapabilities(
        max_batch_size=500,
        rate_limits=RateLimits(per_minute=120, per_hour=7200, per_day=172800),
        supports_real_time_updates=True,
        requires_webhook_signature=True,
    )

    def build_auth(self):
        return HTTPBasicAuth(self.credentials.get("accountSid", ""), self.credentials.get("authToken", ""))

    def _path(self, resource: str) -> str:
        return f"/Mediapartners/{self.credentials.get('accountSid', '')}/{resource}"

    def _query(self, resource: str, **params) -> Dict[str, Any]:
        query = {key: value for key, value in params.items() if value not in (None, "", [])}
        data = self._get_json(self._path(resource), params=query)
        if not isinstance(data, dict):
            raise AffiliateNetworkError(
                f"Unexpected Impact response for {resource}", network=self.NETWORK_TYPE, code="INVALID_RESPONSE",
            )
        return data

    def _collect(self, resource: str, key: str, **params) -> List[Dict[str, Any]]:
        """Follow ``@numpages`` for list endpoints."""
        records: List[Dict[str, Any]] = []
        page = 1
        while page <= MAX_REPORT_PAGES:
            data = self._query(resource, Page=page, **params)
            records.extend(record_list(data.get(key), self.NETWORK_TYPE))
            if page >= to_int(data.get("@numpages"), default=1):
                break
            page += 1
        return records

    def probe(self) -> None:
        self._query("Campaigns", PageSize=1)

    # ── Products ────────────────────────────────────────────────────

    def fetch_product_page(self, page, limit, filters) -> ProductPage:
        data = self._query(
            "Catalogs/ItemSearch",
            Page=page,
            PageSize=limit,
            Keyword=filters.get("keyword"),
            CampaignId=",".join(filters.get("merchantIds") or []) or filters.get("merchantId"),
            Category=",".join(filters.get("categories") or []) or filters.get("category"),
            UpdatedSince=filters.get("updatedSince"),
        )
        items = record_list(data.get("Items"), self.NETWORK_TYPE)
        total = to_int(data.get("@total"), default=-1)
        num_pages = to_int(data.get("@numpages"), default=-1)
        has_more = page < num_pages if num_pages >= 0 else len(items) >= limit
        return ProductPage(
            products=[impact_product(ImpactCatalogItem.from_payload(item)) for item in items],
            pagination=Pagination(page=page, limit=limit, total=total if total >= 0 else None, has_more=has_more),
        )

    def fetch_product(self, network_product_id):
        data = self._query("Catalogs/ItemSearch", Query=f"CatalogItemId='{network_product_id}'", PageSize=1)
        for item in record_list(data.get("Items"), self.NETWORK_TYPE):
            parsed = ImpactCatalogItem.from_payload(item)
            if parsed.item_id == network_product_id:
                return impact_product(parsed)
        raise ProductNotFoundError(
            f"Product {network_product_id} not found", network=self.NETWORK_TYPE, product_id=network_product_id,
        )

    # ── Commissions & conversions ───────────────────────────────────

    def _campaign_records(self) -> List[ImpactCampaignRecord]:
        records = self._collect("Campaigns", "Campaigns", PageSize=self.CAPABILITIES.max_batch_size)
        return [ImpactCampaignRecord.from_payload(record) for record in records]

    def fetch_commission_structures(self, options):
        return [impact_commission(record) for record in self._campaign_records()]

    def fetch_conversions(self, date_from, date_to):
        records = self._collect(
            "Actions", "Actions",
            StartDate=date_from.strftime(DATE_FORMAT),
            EndDate=date_to.strftime(DATE_FORMAT),
            PageSize=self.CAPABILITIES.max_batch_size,
        )
        return [impact_conversion(ImpactActionRecord.from_payload(record)) for record in records]

    @requires_capability("commission_sync")
    def get_campaigns(self) -> List[Dict[str, Any]]:
        """Campaigns (advertiser programs) this partner has joined."""
        return [record.to_dict() for record in self._campaign_records()]

    @requires_capability("commission_sync")
    def get_payout_reports(self, date_from=None, date_to=None) -> List[Dict[str, Any]]:
        start, end = as_datetime(date_from), as_datetime(date_to)
        records = self._collect(
            "PayoutReports", "PayoutReports",
            StartDate=start.strftime(DATE_FORMAT) if start else None,
            EndDate=end.strftime(DATE_FORMAT) if end else None,
        )
        return [ImpactPayoutReportRecord.from_payload(record).to_dict() for record in records]

    # ── Links ───────────────────────────────────────────────────────

    def build_affiliate_link(self, product_id, sub_id, params):
        query = [
            ("btag", self.credentials.get("partnerId", "")),
            ("ptag", product_id),
            ("subId1", sub_id or params.pop("subId1", "")),
        ]
        return build_link(LINK_URL, query, params)

    # ── Webhooks ────────────────────────────────────────────────────

    def parse_webhook_body(self, raw_body) -> WebhookPayload:
        try:
            body = json.loads(raw_body or b"")
        except ValueError as exc:
            raise WebhookError("Malformed Impact webhook JSON", network=self.NETWORK_TYPE) from exc
        if not isinstance(body, dict):
            raise WebhookError("Impact webhook body must be an object", network=self.NETWORK_TYPE)

        event_type = WEBHOOK_EVENTS.get(str(body.get("EventType", "")).upper(), WebhookEventType.CONVERSION_CREATED)
        data = body.get("Action") if isinstance(body.get("Action"), dict) else body
        return WebhookPayload(event_type=event_type, network_type=self.NETWORK_TYPE, data=data)
