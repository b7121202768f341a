"""
Canonical mapping: network wire records → AffiliateProduct / Conversion /
CommissionStructure / Coupon.

One function per (network, entity), selected through the dispatch tables at
the bottom of the module. Status tables are fixed; an unrecognised native
status maps to ``pending``.
"""

import logging
from typing import Dict, Optional

from networks.types import (
    AffiliateProduct,
    CommissionStructure,
    CommissionType,
    Conversion,
    ConversionStatus,
    Coupon,
    NetworkType,
    ProductAvailability,
    ProductImage,
    ProductPrice,
    ProductRating,
    StockStatus,
)
from networks.services.wire import (
    CJAdvertiserRecord,
    CJCommissionRecord,
    CJProductRecord,
    ImpactActionRecord,
    ImpactCampaignRecord,
    ImpactCatalogItem,
    RakutenAdvertiserRecord,
    RakutenCouponItem,
    RakutenProductItem,
    RakutenTransactionRecord,
    ShareASaleMerchantRecord,
    ShareASaleProductRecord,
    ShareASaleTransactionRecord,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Conversion status tables
# =============================================================================

_NATIVE_STATUSES = {
    "pending": ConversionStatus.PENDING,
    "confirmed": ConversionStatus.CONFIRMED,
    "cancelled": ConversionStatus.CANCELLED,
    "canceled": ConversionStatus.CANCELLED,
    "reversed": ConversionStatus.REVERSED,
    "voided": ConversionStatus.CANCELLED,
    "void": ConversionStatus.CANCELLED,
    "locked": ConversionStatus.CONFIRMED,
}

STATUS_TABLES: Dict[NetworkType, Dict[str, ConversionStatus]] = {
    NetworkType.SHAREASALE: dict(_NATIVE_STATUSES),
    NetworkType.CJ: {
        "new": ConversionStatus.PENDING,
        "extended": ConversionStatus.PENDING,
        "locked": ConversionStatus.CONFIRMED,
        "closed": ConversionStatus.CONFIRMED,
        "corrected": ConversionStatus.REVERSED,
    },
    NetworkType.IMPACT: {
        "pending": ConversionStatus.PENDING,
        "pending_approval": ConversionStatus.PENDING,
        "approved": ConversionStatus.CONFIRMED,
        "rejected": ConversionStatus.CANCELLED,
        "reversed": ConversionStatus.REVERSED,
    },
    NetworkType.RAKUTEN: dict(_NATIVE_STATUSES),
}


def map_conversion_status(network_type, native) -> ConversionStatus:
    """Native status string → canonical status. Case-insensitive."""
    table = STATUS_TABLES[NetworkType(network_type)]
    key = str(native or "").strip().lower()
    status = table.get(key)
    if status is None:
        if key:
            logger.debug(f"Unknown {network_type} conversion status {native!r}, treating as pending")
        return ConversionStatus.PENDING
    return status


# =============================================================================
# Shared helpers
# =============================================================================

def _images(primary: str, *others: str, alt: str = ""):
    images = []
    for position, url in enumerate(u for u in (primary, *others) if u):
        images.append(ProductImage(url=url, alt=alt, is_primary=position == 0))
    return images


def _price(regular: float, sale: Optional[float], currency: str, original: Optional[float] = None) -> ProductPrice:
    """Sale price, when present and lower, is what the shopper pays."""
    if sale is not None and 0 < sale < regular:
        return ProductPrice(amount=sale, currency=currency, original=original or regular, sale=sale)
    return ProductPrice(amount=regular, currency=currency, original=original, sale=sale)


def _availability(in_stock: bool) -> ProductAvailability:
    return ProductAvailability(
        in_stock=in_stock,
        status=StockStatus.ACTIVE if in_stock else StockStatus.OUT_OF_STOCK,
    )


def _rate(commission: float, order_value: float) -> float:
    return round(commission / order_value * 100, 4) if order_value else 0.0


# =============================================================================
# ShareASale
# =============================================================================

def shareasale_product(record: ShareASaleProductRecord) -> AffiliateProduct:
    return AffiliateProduct(
        network_type=NetworkType.SHAREASALE,
        network_product_id=record.product_id,
        title=record.name,
        merchant_id=record.merchant_id,
        merchant_name=record.merchant_name,
        description=record.description,
        brand=record.brand,
        category=record.category,
        subcategory=record.subcategory,
        sku=record.sku,
        images=_images(record.image_url, record.thumbnail_url, alt=record.name),
        price=_price(record.price, record.sale_price, record.currency),
        commission_rate=record.commission,
        commission_type=record.commission_type,
        affiliate_url=record.product_url,
        availability=_availability(record.in_stock),
        rating=ProductRating(record.rating, record.review_count) if record.rating is not None else None,
        tags=record.keywords,
        metadata={"upc": record.upc} if record.upc else {},
        last_updated_at=record.last_updated,
    )


def shareasale_conversion(record: ShareASaleTransactionRecord) -> Conversion:
    status = (
        ConversionStatus.CANCELLED if record.voided
        else map_conversion_status(NetworkType.SHAREASALE, record.status)
    )
    return Conversion(
        network_type=NetworkType.SHAREASALE,
        network_conversion_id=record.transaction_id,
        click_id=record.click_id,
        order_id=record.order_id,
        product_id=record.product_id,
        merchant_id=record.merchant_id,
        order_value=record.sale_amount,
        commission_amount=record.commission,
        commission_rate=record.commission_rate or _rate(record.commission, record.sale_amount),
        status=status,
        conversion_date=record.transaction_date,
        payout_date=record.payout_date,
        metadata={
            "subId": record.sub_id,
            "sku": record.sku,
            "productName": record.product_name,
            "category": record.category,
        },
    )


def shareasale_commission(record: ShareASaleMerchantRecord) -> CommissionStructure:
    return CommissionStructure(
        network_type=NetworkType.SHAREASALE,
        merchant_id=record.merchant_id,
        merchant_name=record.merchant_name,
        base_rate=record.commission,
        commission_type=record.commission_type,
    )


# =============================================================================
# CJ
# =============================================================================

def cj_product(record: CJProductRecord) -> AffiliateProduct:
    return AffiliateProduct(
        network_type=NetworkType.CJ,
        network_product_id=record.catalog_id,
        title=record.name,
        merchant_id=record.advertiser_id,
        merchant_name=record.advertiser_name,
        description=record.description,
        brand=record.manufacturer_name,
        category=record.category,
        sku=record.sku,
        images=_images(record.image_url, alt=record.name),
        price=_price(record.price, record.sale_price, record.currency, original=record.retail_price),
        affiliate_url=record.buy_url,
        availability=_availability(record.in_stock),
        tags=record.keywords,
        metadata={
            key: value for key, value in (
                ("upc", record.upc), ("isbn", record.isbn), ("impressionUrl", record.impression_url),
            ) if value
        },
    )


def cj_conversion(record: CJCommissionRecord) -> Conversion:
    return Conversion(
        network_type=NetworkType.CJ,
        network_conversion_id=record.commission_id,
        click_id=record.original_action_id,
        order_id=record.order_id,
        merchant_id=record.advertiser_id,
        order_value=record.sale_amount,
        currency=record.currency,
        commission_amount=record.commission_amount,
        commission_rate=_rate(record.commission_amount, record.sale_amount),
        status=map_conversion_status(NetworkType.CJ, record.action_status),
        conversion_date=record.event_date,
        payout_date=record.posting_date,
        metadata={
            "sid": record.sid,
            "actionType": record.action_type,
            "aid": record.aid,
            "country": record.country,
            "lockingDate": record.locking_date,
        },
    )


def cj_commission(record: CJAdvertiserRecord) -> CommissionStructure:
    return CommissionStructure(
        network_type=NetworkType.CJ,
        merchant_id=record.advertiser_id,
        merchant_name=record.advertiser_name,
        base_rate=record.commission,
        commission_type=record.commission_type,
    )


# =============================================================================
# Impact
# =============================================================================

_IMPACT_STOCK = {
    "instock": StockStatus.ACTIVE,
    "limitedavailability": StockStatus.ACTIVE,
    "preorder": StockStatus.ACTIVE,
    "backorder": StockStatus.OUT_OF_STOCK,
    "outofstock": StockStatus.OUT_OF_STOCK,
    "discontinued": StockStatus.DISCONTINUED,
}


def impact_product(record: ImpactCatalogItem) -> AffiliateProduct:
    stock = _IMPACT_STOCK.get(record.stock_availability.lower().replace(" ", ""), StockStatus.ACTIVE)
    return AffiliateProduct(
        network_type=NetworkType.IMPACT,
        network_product_id=record.item_id,
        title=record.name,
        merchant_id=record.campaign_id,
        merchant_name=record.campaign_name,
        description=record.description,
        brand=record.manufacturer,
        category=record.category,
        subcategory=record.subcategory,
        sku=record.sku,
        images=_images(record.image_url, alt=record.name),
        price=_price(
            record.original_price or record.current_price,
            record.current_price if record.original_price else None,
            record.currency,
        ),
        affiliate_url=record.url,
        availability=ProductAvailability(in_stock=stock == StockStatus.ACTIVE, status=stock),
        tags=record.labels,
        metadata={"gtin": record.gtin} if record.gtin else {},
        is_active=stock != StockStatus.DISCONTINUED,
    )


def impact_conversion(record: ImpactActionRecord) -> Conversion:
    return Conversion(
        network_type=NetworkType.IMPACT,
        network_conversion_id=record.action_id,
        click_id=record.click_id,
        order_id=record.order_id,
        merchant_id=record.campaign_id,
        order_value=record.amount,
        currency=record.currency,
        commission_amount=record.payout,
        commission_rate=_rate(record.payout, record.amount),
        status=map_conversion_status(NetworkType.IMPACT, record.state),
        conversion_date=record.event_date,
        payout_date=record.cleared_date,
        metadata={
            "subId1": record.sub_id1,
            "campaignName": record.campaign_name,
            "actionTrackerId": record.action_tracker_id,
            "promoCode": record.promo_code,
            "referringDomain": record.referring_domain,
        },
    )


def impact_commission(record: ImpactCampaignRecord) -> CommissionStructure:
    # CPS campaigns pay a share of the sale; every other payout type is flat
    commission_type = (
        CommissionType.PERCENTAGE if record.payout_type.upper() in ("CPS", "PERCENTAGE", "")
        else CommissionType.FIXED
    )
    return CommissionStructure(
        network_type=NetworkType.IMPACT,
        merchant_id=record.campaign_id,
        merchant_name=record.name,
        base_rate=record.default_payout,
        commission_type=commission_type,
        effective_date=record.start_date,
        expiration_date=record.end_date,
    )


# =============================================================================
# Rakuten
# =============================================================================

def rakuten_product(record: RakutenProductItem) -> AffiliateProduct:
    sale = record.sale_price
    regular = record.retail_price if record.retail_price is not None else record.price
    if sale is None and record.retail_price is not None and record.price < record.retail_price:
        sale = record.price
    return AffiliateProduct(
        network_type=NetworkType.RAKUTEN,
        network_product_id=record.product_id,
        title=record.name,
        merchant_id=record.merchant_id,
        merchant_name=record.merchant_name,
        description=record.long_description or record.short_description,
        brand=record.brand,
        category=record.category,
        subcategory=record.subcategory,
        sku=record.sku,
        images=_images(record.image_url, alt=record.name),
        price=_price(regular, sale, record.currency),
        commission_rate=record.commission,
        commission_type=record.commission_type,
        affiliate_url=record.link_url,
        availability=_availability(record.in_stock),
        tags=record.keywords,
        metadata={"upc": record.upc} if record.upc else {},
        last_updated_at=record.last_updated,
    )


def rakuten_conversion(record: RakutenTransactionRecord) -> Conversion:
    return Conversion(
        network_type=NetworkType.RAKUTEN,
        network_conversion_id=record.transaction_id,
        click_id=record.click_id,
        order_id=record.order_id,
        product_id=record.product_id,
        merchant_id=record.merchant_id,
        order_value=record.sale_amount,
        currency=record.currency,
        commission_amount=record.commission,
        commission_rate=record.commission_rate or _rate(record.commission, record.sale_amount),
        status=map_conversion_status(NetworkType.RAKUTEN, record.status),
        conversion_date=record.order_date,
        payout_date=record.process_date,
        metadata={
            "u1": record.sub_id,
            "sku": record.sku,
            "productName": record.product_name,
            "merchantName": record.merchant_name,
        },
    )


def rakuten_commission(record: RakutenAdvertiserRecord) -> CommissionStructure:
    return CommissionStructure(
        network_type=NetworkType.RAKUTEN,
        merchant_id=record.advertiser_id,
        merchant_name=record.name,
        base_rate=record.commission,
        commission_type=record.commission_type,
    )


def rakuten_coupon(record: RakutenCouponItem) -> Coupon:
    return Coupon(
        network_type=NetworkType.RAKUTEN,
        offer_id=record.offer_id,
        name=record.name,
        description=record.description,
        offer_type=record.offer_type,
        code=record.code,
        discount_amount=record.discount_amount,
        discount_type=record.discount_type,
        start_date=record.start_date,
        end_date=record.end_date,
        restrictions=record.restrictions,
        categories=record.categories,
        merchant_id=record.merchant_id,
        merchant_name=record.merchant_name,
        link_url=record.link_url,
        image_url=record.image_url,
    )


# =============================================================================
# Dispatch
# =============================================================================

PRODUCT_NORMALIZERS = {
    NetworkType.SHAREASALE: shareasale_product,
    NetworkType.CJ: cj_product,
    NetworkType.IMPACT: impact_product,
    NetworkType.RAKUTEN: rakuten_product,
}

CONVERSION_NORMALIZERS = {
    NetworkType.SHAREASALE: shareasale_conversion,
    NetworkType.CJ: cj_conversion,
    NetworkType.IMPACT: impact_conversion,
    NetworkType.RAKUTEN: rakuten_conversion,
}

COMMISSION_NORMALIZERS = {
    NetworkType.SHAREASALE: shareasale_commission,
    NetworkType.CJ: cj_commission,
    NetworkType.IMPACT: impact_commission,
    NetworkType.RAKUTEN: rakuten_commission,
}


def normalize_product(network_type, record) -> AffiliateProduct:
    return PRODUCT_NORMALIZERS[NetworkType(network_type)](record)


def normalize_conversion(network_type, record) -> Conversion:
    return CONVERSION_NORMALIZERS[NetworkType(network_type)](record)


def normalize_commission(network_type, record) -> CommissionStructure:
    return COMMISSION_NORMALIZERS[NetworkType(network_type)](record)
