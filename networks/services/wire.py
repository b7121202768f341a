"""
Wire records for each network's API payloads.

Remote JSON/XML is loosely typed and fields go missing regularly. Each
record here names the fields we read, with the default used when a field is
absent, so parsing never crashes on a sparse payload. The ``from_payload``
/ ``from_element`` constructors are the only place raw network keys appear.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree

from core.exceptions import AffiliateNetworkError

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


# =============================================================================
# Parsing helpers
# =============================================================================

def to_float(value, default: float = 0.0) -> float:
    """Parse "1,299.00", "$12", 12, None → float."""
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "").replace("$", "").rstrip("%")
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        match = _NUMBER_RE.search(text)
        return float(match.group()) if match else default


def to_optional_float(value) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    parsed = to_float(value, default=-1.0)
    return parsed if parsed >= 0 else None


def to_int(value, default: int = 0) -> int:
    return int(to_float(value, default=float(default)))


def to_str(value, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def split_keywords(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [to_str(v) for v in value if to_str(v)]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def is_in_stock(value, default: bool = True) -> bool:
    """Networks say yes/no, 1/0, true/false, InStock/OutOfStock."""
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().lower().replace(" ", "") in ("yes", "y", "1", "true", "instock", "available")


def _xml_text(element, path: str, default: str = "") -> str:
    found = element.find(path)
    if found is None or found.text is None:
        return default
    return found.text.strip()


def record_list(records, network=None) -> List[Dict[str, Any]]:
    """
    A list of JSON objects, or ``INVALID_RESPONSE``.

    Networks collapse single-element lists to a bare object; anything else
    that is not an object means the payload is malformed.
    """
    if not records:
        return []
    if isinstance(records, dict):
        return [records]
    if not isinstance(records, list):
        raise AffiliateNetworkError(
            f"Expected a list of records, got {type(records).__name__}", network=network, code="INVALID_RESPONSE",
        )
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise AffiliateNetworkError(
                f"Record {position} is {type(record).__name__}, not an object",
                network=network,
                code="INVALID_RESPONSE",
            )
    return records


# =============================================================================
# ShareASale (JSON, camelCase-ish keys)
# =============================================================================

@dataclass
class ShareASaleProductRecord:
    product_id: str
    name: str = ""
    description: str = ""
    price: float = 0.0
    sale_price: Optional[float] = None
    currency: str = "USD"
    merchant_id: str = ""
    merchant_name: str = ""
    category: str = ""
    subcategory: str = ""
    brand: str = ""
    sku: str = ""
    upc: str = ""
    image_url: str = ""
    thumbnail_url: str = ""
    product_url: str = ""
    in_stock: bool = True
    commission: float = 0.0
    commission_type: str = "percentage"
    keywords: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    review_count: int = 0
    last_updated: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ShareASaleProductRecord":
        return cls(
            product_id=to_str(data.get("productID") or data.get("productId")),
            name=to_str(data.get("productName") or data.get("name")),
            description=to_str(data.get("productDescription") or data.get("description")),
            price=to_float(data.get("price")),
            sale_price=to_optional_float(data.get("salePrice")),
            currency=to_str(data.get("currency"), "USD") or "USD",
            merchant_id=to_str(data.get("merchantID") or data.get("merchantId")),
            merchant_name=to_str(data.get("merchantName")),
            category=to_str(data.get("category")),
            subcategory=to_str(data.get("subcategory")),
            brand=to_str(data.get("brand")),
            sku=to_str(data.get("sku")),
            upc=to_str(data.get("upc")),
            image_url=to_str(data.get("imageURL") or data.get("bigImage")),
            thumbnail_url=to_str(data.get("thumbnailURL") or data.get("thumbnail")),
            product_url=to_str(data.get("productURL") or data.get("link")),
            in_stock=is_in_stock(data.get("inStock")),
            commission=to_float(data.get("commission")),
            commission_type=to_str(data.get("commissionType"), "percentage") or "percentage",
            keywords=split_keywords(data.get("keywords")),
            rating=to_optional_float(data.get("rating")),
            review_count=to_int(data.get("reviewCount")),
            last_updated=data.get("lastUpdated") or None,
        )


@dataclass
class ShareASaleTransactionRecord:
    transaction_id: str
    click_id: str = ""
    order_id: str = ""
    product_id: Optional[str] = None
    merchant_id: str = ""
    sale_amount: float = 0.0
    commission: float = 0.0
    commission_rate: float = 0.0
    status: str = ""
    voided: bool = False
    transaction_date: Optional[str] = None
    payout_date: Optional[str] = None
    sku: str = ""
    product_name: str = ""
    category: str = ""
    sub_id: str = ""

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ShareASaleTransactionRecord":
        return cls(
            transaction_id=to_str(data.get("transactionID") or data.get("transID") or data.get("tracking")),
            click_id=to_str(data.get("clickID")),
            order_id=to_str(data.get("orderID") or data.get("ordernumber")),
            product_id=to_str(data.get("productID")) or None,
            merchant_id=to_str(data.get("merchantID") or data.get("merchantId")),
            sale_amount=to_float(data.get("saleAmount") or data.get("amount")),
            commission=to_float(data.get("commission")),
            commission_rate=to_float(data.get("commissionRate")),
            status=to_str(data.get("status")),
            voided=to_str(data.get("voided") or data.get("reversal")) in ("1", "true", "yes"),
            transaction_date=data.get("transactionDate") or data.get("transdate") or None,
            payout_date=data.get("payoutDate") or None,
            sku=to_str(data.get("sku")),
            product_name=to_str(data.get("productName")),
            category=to_str(data.get("category")),
            sub_id=to_str(data.get("subID") or data.get("afftrack")),
        )


@dataclass
class ShareASaleMerchantRecord:
    merchant_id: str
    merchant_name: str = ""
    commission: float = 0.0
    commission_type: str = "percentage"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ShareASaleMerchantRecord":
        return cls(
            merchant_id=to_str(data.get("merchantID") or data.get("merchantId")),
            merchant_name=to_str(data.get("merchantName")),
            commission=to_float(data.get("commission") or data.get("salecomm")),
            commission_type="fixed" if to_str(data.get("commissionType")).lower() == "fixed" else "percentage",
        )


# =============================================================================
# CJ (JSON, hyphenated keys inside a "cj-api" envelope)
# =============================================================================

@dataclass
class CJProductRecord:
    catalog_id: str
    advertiser_id: str = ""
    advertiser_name: str = ""
    name: str = ""
    description: str = ""
    price: float = 0.0
    sale_price: Optional[float] = None
    retail_price: Optional[float] = None
    currency: str = "USD"
    manufacturer_name: str = ""
    category: str = ""
    sku: str = ""
    upc: str = ""
    isbn: str = ""
    image_url: str = ""
    buy_url: str = ""
    impression_url: str = ""
    in_stock: bool = True
    keywords: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CJProductRecord":
        return cls(
            catalog_id=to_str(data.get("catalog-id") or data.get("ad-id") or data.get("sku")),
            advertiser_id=to_str(data.get("advertiser-id")),
            advertiser_name=to_str(data.get("advertiser-name")),
            name=to_str(data.get("product-name") or data.get("name")),
            description=to_str(data.get("product-description") or data.get("description")),
            price=to_float(data.get("price")),
            sale_price=to_optional_float(data.get("sale-price")),
            retail_price=to_optional_float(data.get("retail-price")),
            currency=to_str(data.get("currency"), "USD") or "USD",
            manufacturer_name=to_str(data.get("manufacturer-name")),
            category=to_str(data.get("advertiser-category")),
            sku=to_str(data.get("manufacturer-sku") or data.get("sku")),
            upc=to_str(data.get("upc")),
            isbn=to_str(data.get("isbn")),
            image_url=to_str(data.get("image-url")),
            buy_url=to_str(data.get("buy-url")),
            impression_url=to_str(data.get("impression-url")),
            in_stock=is_in_stock(data.get("in-stock")),
            keywords=split_keywords(data.get("keywords")),
        )


@dataclass
class CJCommissionRecord:
    commission_id: str
    original_action_id: str = ""
    order_id: str = ""
    advertiser_id: str = ""
    sale_amount: float = 0.0
    commission_amount: float = 0.0
    action_status: str = ""
    action_type: str = ""
    event_date: Optional[str] = None
    posting_date: Optional[str] = None
    locking_date: Optional[str] = None
    sid: str = ""
    aid: str = ""
    country: str = ""
    currency: str = "USD"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CJCommissionRecord":
        return cls(
            commission_id=to_str(data.get("commission-id") or data.get("commissionId")),
            original_action_id=to_str(data.get("original-action-id") or data.get("originalActionId")),
            order_id=to_str(data.get("order-id") or data.get("orderId")),
            advertiser_id=to_str(data.get("advertiser-id") or data.get("advertiserId")),
            sale_amount=to_float(data.get("sale-amount") or data.get("saleAmountUsd")),
            commission_amount=to_float(data.get("commission-amount") or data.get("pubCommissionAmountUsd")),
            action_status=to_str(data.get("action-status") or data.get("actionStatus")),
            action_type=to_str(data.get("action-type") or data.get("actionType")),
            event_date=data.get("event-date") or data.get("eventDate") or None,
            posting_date=data.get("posting-date") or data.get("postingDate") or None,
            locking_date=data.get("locking-date") or data.get("lockingDate") or None,
            sid=to_str(data.get("sid") or data.get("shopperId")),
            aid=to_str(data.get("aid")),
            country=to_str(data.get("country")),
            currency=to_str(data.get("currency"), "USD") or "USD",
        )


@dataclass
class CJAdvertiserRecord:
    advertiser_id: str
    advertiser_name: str = ""
    relationship_status: str = ""
    commission: float = 0.0
    commission_type: str = "percentage"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CJAdvertiserRecord":
        commission = data.get("sale-commission")
        if commission is None:
            actions = (data.get("actions") or {}).get("action") or []
            if isinstance(actions, dict):
                actions = [actions]
            for action in actions:
                default = (action.get("commission") or {}).get("default")
                if default:
                    commission = default
                    break
        text = to_str(commission)
        return cls(
            advertiser_id=to_str(data.get("advertiser-id")),
            advertiser_name=to_str(data.get("advertiser-name")),
            relationship_status=to_str(data.get("relationship-status")),
            commission=to_float(text),
            commission_type="percentage" if not text or "%" in text else "fixed",
        )


# =============================================================================
# Impact (JSON, PascalCase keys)
# =============================================================================

@dataclass
class ImpactCatalogItem:
    item_id: str
    name: str = ""
    description: str = ""
    manufacturer: str = ""
    category: str = ""
    subcategory: str = ""
    url: str = ""
    image_url: str = ""
    current_price: float = 0.0
    original_price: Optional[float] = None
    currency: str = "USD"
    stock_availability: str = ""
    campaign_id: str = ""
    campaign_name: str = ""
    sku: str = ""
    gtin: str = ""
    labels: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ImpactCatalogItem":
        return cls(
            item_id=to_str(data.get("CatalogItemId") or data.get("Id")),
            name=to_str(data.get("Name")),
            description=to_str(data.get("Description")),
            manufacturer=to_str(data.get("Manufacturer")),
            category=to_str(data.get("Category")),
            subcategory=to_str(data.get("SubCategory")),
            url=to_str(data.get("Url")),
            image_url=to_str(data.get("ImageUrl")),
            current_price=to_float(data.get("CurrentPrice")),
            original_price=to_optional_float(data.get("OriginalPrice")),
            currency=to_str(data.get("Currency"), "USD") or "USD",
            stock_availability=to_str(data.get("StockAvailability")),
            campaign_id=to_str(data.get("CampaignId")),
            campaign_name=to_str(data.get("CampaignName")),
            sku=to_str(data.get("Sku") or data.get("Mpn")),
            gtin=to_str(data.get("Gtin")),
            labels=split_keywords(data.get("Labels")),
        )


@dataclass
class ImpactActionRecord:
    action_id: str
    click_id: str = ""
    order_id: str = ""
    campaign_id: str = ""
    campaign_name: str = ""
    state: str = ""
    amount: float = 0.0
    payout: float = 0.0
    currency: str = "USD"
    event_date: Optional[str] = None
    cleared_date: Optional[str] = None
    locking_date: Optional[str] = None
    action_tracker_id: str = ""
    sub_id1: str = ""
    promo_code: str = ""
    referring_domain: str = ""

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ImpactActionRecord":
        action_id = to_str(data.get("Id") or data.get("ActionId"))
        return cls(
            action_id=action_id,
            click_id=to_str(data.get("ClickId") or data.get("ActionId")),
            order_id=to_str(data.get("Oid")) or action_id,
            campaign_id=to_str(data.get("CampaignId")),
            campaign_name=to_str(data.get("CampaignName")),
            state=to_str(data.get("State") or data.get("ActionState")),
            amount=to_float(data.get("Amount")),
            payout=to_float(data.get("Payout")),
            currency=to_str(data.get("Currency"), "USD") or "USD",
            event_date=data.get("EventDate") or None,
            cleared_date=data.get("ClearedDate") or None,
            locking_date=data.get("LockingDate") or None,
            action_tracker_id=to_str(data.get("ActionTrackerId")),
            sub_id1=to_str(data.get("SubId1")),
            promo_code=to_str(data.get("PromoCode")),
            referring_domain=to_str(data.get("ReferringDomain")),
        )


@dataclass
class ImpactCampaignRecord:
    campaign_id: str
    name: str = ""
    default_payout: float = 0.0
    payout_type: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    state: str = ""
    tracking_link: str = ""

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ImpactCampaignRecord":
        return cls(
            campaign_id=to_str(data.get("Id") or data.get("CampaignId")),
            name=to_str(data.get("Name") or data.get("CampaignName")),
            default_payout=to_float(data.get("DefaultPayout")),
            payout_type=to_str(data.get("PayoutType")),
            start_date=data.get("StartDate") or None,
            end_date=data.get("EndDate") or None,
            state=to_str(data.get("State") or data.get("ContractStatus")),
            tracking_link=to_str(data.get("TrackingLink")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaignId": self.campaign_id,
            "name": self.name,
            "defaultPayout": self.default_payout,
            "payoutType": self.payout_type,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "state": self.state,
            "trackingLink": self.tracking_link,
        }


@dataclass
class ImpactPayoutReportRecord:
    report_id: str
    amount: float = 0.0
    currency: str = "USD"
    status: str = ""
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    paid_date: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ImpactPayoutReportRecord":
        return cls(
            report_id=to_str(data.get("Id")),
            amount=to_float(data.get("Amount") or data.get("TotalAmount")),
            currency=to_str(data.get("Currency"), "USD") or "USD",
            status=to_str(data.get("Status") or data.get("State")),
            period_start=data.get("StartDate") or None,
            period_end=data.get("EndDate") or None,
            paid_date=data.get("PaidDate") or data.get("PaymentDate") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "paidDate": self.paid_date,
        }


# =============================================================================
# Rakuten (XML product search & coupons, JSON reporting)
# =============================================================================

@dataclass
class RakutenProductItem:
    product_id: str
    name: str = ""
    short_description: str = ""
    long_description: str = ""
    price: float = 0.0
    sale_price: Optional[float] = None
    retail_price: Optional[float] = None
    currency: str = "USD"
    merchant_id: str = ""
    merchant_name: str = ""
    category: str = ""
    subcategory: str = ""
    brand: str = ""
    sku: str = ""
    upc: str = ""
    link_url: str = ""
    image_url: str = ""
    in_stock: bool = True
    keywords: List[str] = field(default_factory=list)
    commission: float = 0.0
    commission_type: str = "percentage"
    last_updated: Optional[str] = None

    @classmethod
    def from_element(cls, item: ElementTree.Element) -> "RakutenProductItem":
        price_element = item.find("price")
        currency = "USD"
        if price_element is not None and price_element.get("currency"):
            currency = price_element.get("currency")
        return cls(
            product_id=_xml_text(item, "linkid") or _xml_text(item, "productid") or _xml_text(item, "sku"),
            name=_xml_text(item, "productname"),
            short_description=_xml_text(item, "description/short") or _xml_text(item, "shortdescription"),
            long_description=_xml_text(item, "description/long") or _xml_text(item, "longdescription"),
            price=to_float(_xml_text(item, "price")),
            sale_price=to_optional_float(_xml_text(item, "saleprice")),
            retail_price=to_optional_float(_xml_text(item, "retailprice")),
            currency=_xml_text(item, "currency") or currency,
            merchant_id=_xml_text(item, "mid") or _xml_text(item, "merchantid"),
            merchant_name=_xml_text(item, "merchantname"),
            category=_xml_text(item, "category/primary") or _xml_text(item, "categoryname")
            or _xml_text(item, "category"),
            subcategory=_xml_text(item, "category/secondary") or _xml_text(item, "subcategory"),
            brand=_xml_text(item, "manufacturer") or _xml_text(item, "brand"),
            sku=_xml_text(item, "sku") or _xml_text(item, "manufacturersku"),
            upc=_xml_text(item, "upccode") or _xml_text(item, "upc"),
            link_url=_xml_text(item, "linkurl"),
            image_url=_xml_text(item, "imageurl"),
            in_stock=is_in_stock(_xml_text(item, "instock")),
            keywords=split_keywords(_xml_text(item, "keywords").replace("~~", ",")),
            commission=to_float(_xml_text(item, "commission")),
            commission_type=_xml_text(item, "commissiontype") or "percentage",
            last_updated=_xml_text(item, "createdon") or _xml_text(item, "lastupdated") or None,
        )


@dataclass
class RakutenSearchResult:
    """Envelope of a product search response."""
    items: List[RakutenProductItem] = field(default_factory=list)
    total_matches: int = 0
    total_pages: int = 0
    page_number: int = 1

    @classmethod
    def from_xml(cls, content) -> "RakutenSearchResult":
        root = ElementTree.fromstring(content)
        return cls(
            items=[RakutenProductItem.from_element(item) for item in root.iter("item")],
            total_matches=to_int(_xml_text(root, "TotalMatches")),
            total_pages=to_int(_xml_text(root, "TotalPages")),
            page_number=to_int(_xml_text(root, "PageNumber"), default=1) or 1,
        )


@dataclass
class RakutenTransactionRecord:
    transaction_id: str
    click_id: str = ""
    order_id: str = ""
    product_id: Optional[str] = None
    merchant_id: str = ""
    merchant_name: str = ""
    sale_amount: float = 0.0
    commission: float = 0.0
    commission_rate: float = 0.0
    currency: str = "USD"
    status: str = ""
    order_date: Optional[str] = None
    process_date: Optional[str] = None
    sku: str = ""
    product_name: str = ""
    sub_id: str = ""

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "RakutenTransactionRecord":
        return cls(
            transaction_id=to_str(data.get("transactionid") or data.get("etransaction_id")),
            click_id=to_str(data.get("clickid")),
            order_id=to_str(data.get("orderid") or data.get("order_id")),
            product_id=to_str(data.get("productid")) or None,
            merchant_id=to_str(data.get("merchantid") or data.get("advertiser_id")),
            merchant_name=to_str(data.get("merchantname")),
            sale_amount=to_float(data.get("saleamount") or data.get("sale_amount")),
            commission=to_float(data.get("commission") or data.get("commissions")),
            commission_rate=to_float(data.get("commissionrate")),
            currency=to_str(data.get("currency"), "USD") or "USD",
            status=to_str(data.get("status")),
            order_date=data.get("orderdate") or data.get("transaction_date") or None,
            process_date=data.get("processdate") or data.get("process_date") or None,
            sku=to_str(data.get("sku")),
            product_name=to_str(data.get("productname") or data.get("product_name")),
            sub_id=to_str(data.get("subid") or data.get("u1")),
        )


@dataclass
class RakutenAdvertiserRecord:
    advertiser_id: str
    name: str = ""
    commission: float = 0.0
    commission_type: str = "percentage"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "RakutenAdvertiserRecord":
        return cls(
            advertiser_id=to_str(data.get("id") or data.get("mid")),
            name=to_str(data.get("name")),
            commission=to_float(data.get("commission") or data.get("commission_rate")),
            commission_type=to_str(data.get("commission_type"), "percentage") or "percentage",
        )


@dataclass
class RakutenCouponItem:
    offer_id: str
    name: str = ""
    description: str = ""
    offer_type: str = "coupon"
    code: str = ""
    discount_amount: float = 0.0
    discount_type: str = "percentage"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    restrictions: str = ""
    categories: List[str] = field(default_factory=list)
    merchant_id: str = ""
    merchant_name: str = ""
    link_url: str = ""
    image_url: str = ""

    @classmethod
    def from_element(cls, coupon: ElementTree.Element) -> "RakutenCouponItem":
        return cls(
            offer_id=_xml_text(coupon, "offerid"),
            name=_xml_text(coupon, "offername"),
            description=_xml_text(coupon, "offerdescription"),
            offer_type=_xml_text(coupon, "offertype") or "coupon",
            code=_xml_text(coupon, "couponcode"),
            discount_amount=to_float(_xml_text(coupon, "discountamount")),
            discount_type=_xml_text(coupon, "discounttype") or "percentage",
            start_date=_xml_text(coupon, "startdate") or None,
            end_date=_xml_text(coupon, "enddate") or None,
            restrictions=_xml_text(coupon, "restrictions"),
            categories=split_keywords(_xml_text(coupon, "categories")),
            merchant_id=_xml_text(coupon, "merchantid"),
            merchant_name=_xml_text(coupon, "merchantname"),
            link_url=_xml_text(coupon, "linkurl"),
            image_url=_xml_text(coupon, "imageurl"),
        )

    @classmethod
    def list_from_xml(cls, content) -> List["RakutenCouponItem"]:
        root = ElementTree.fromstring(content)
        return [cls.from_element(coupon) for coupon in root.iter("coupon")]
