"""
Tests for the Rakuten Advertising adapter (XML search, coupon feed).

Run with: python -m pytest networks/tests/test_rakuten_adapter.py -v
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from core.exceptions import AffiliateNetworkError
from networks.types import ConversionStatus, NetworkType, PaginatedRequest, WebhookEventType

SEARCH_XML = """<?xml version="1.0" encoding="UTF-8"?>
<result>
  <TotalMatches>3</TotalMatches>
  <TotalPages>2</TotalPages>
  <PageNumber>1</PageNumber>
  <item>
    <mid>m1</mid>
    <merchantname>Tea House</merchantname>
    <linkid>L100</linkid>
    <productname>Green Tea</productname>
    <category><primary>Food</primary><secondary>Tea</secondary></category>
    <price currency="GBP">12.00</price>
    <saleprice>9.00</saleprice>
    <description><short>Loose leaf</short><long>Loose leaf green tea</long></description>
    <keywords>tea~~green</keywords>
    <linkurl>https://click.example/L100</linkurl>
    <imageurl>https://img/L100.jpg</imageurl>
  </item>
</result>
"""

COUPON_XML = """<?xml version="1.0" encoding="UTF-8"?>
<couponfeed>
  <link type="TEXT">
    <coupon>
      <offerid>O1</offerid>
      <offername>10% off</offername>
      <couponcode>TEA10</couponcode>
      <discountamount>10</discountamount>
      <merchantid>m1</merchantid>
    </coupon>
    <coupon>
      <offername>No id</offername>
    </coupon>
  </link>
</couponfeed>
"""


class TestRakutenAdapter:

    @pytest.fixture
    def adapter(self, make_adapter):
        return make_adapter(NetworkType.RAKUTEN)

    def test_xml_product_search(self, adapter, transport):
        transport.add(content=SEARCH_XML, headers={"Content-Type": "application/xml"})

        page = adapter.get_products(PaginatedRequest(page=1, limit=1, filters={"keyword": "tea"}))

        query = parse_qs(urlsplit(transport.last.url).query)
        assert query["keyword"] == ["tea"]
        assert query["pagenumber"] == ["1"]
        assert transport.last.headers["Authorization"] == "Bearer rk"
        assert page.pagination.has_more is True

        product = page.products[0]
        assert product.id == "rakuten-L100"
        assert product.price.amount == 9.0
        assert product.price.currency == "GBP"
        assert product.category == "Food"
        assert product.description == "Loose leaf green tea"
        assert product.tags == ["tea", "green"]

    def test_malformed_xml(self, adapter, transport):
        transport.add(content="<result><item>")
        with pytest.raises(AffiliateNetworkError) as exc_info:
            adapter.get_products()
        assert exc_info.value.code == "INVALID_RESPONSE"

    def test_conversions(self, adapter, transport):
        transport.add(json_body={"transactions": [
            {"transactionid": "R1", "saleamount": "40", "commission": "4", "status": "Locked"},
        ]})
        conversion = adapter.get_conversions()[0]
        assert conversion.id == "rakuten-R1"
        assert conversion.status is ConversionStatus.CONFIRMED

    def test_coupons_skip_entries_without_offer_id(self, adapter, transport):
        transport.add(content=COUPON_XML)

        coupons = adapter.get_coupons(merchant_id="m1")

        assert urlsplit(transport.last.url).netloc == "couponfeed.linksynergy.com"
        assert parse_qs(urlsplit(transport.last.url).query)["token"] == ["rk"]
        assert [c.code for c in coupons] == ["TEA10"]
        assert coupons[0].id == "rakuten-coupon-O1"

    def test_affiliate_link(self, adapter):
        link = adapter.generate_affiliate_link(
            "L100", {"subId": "x", "merchantId": "m1", "productUrl": "https://tea.example/p"},
        )
        assert parse_qs(urlsplit(link).query) == {
            "id": ["pub-5"], "mid": ["m1"], "murl": ["https://tea.example/p"], "u1": ["x"],
        }

    def test_webhook_raw_passthrough(self, adapter):
        payload = adapter.parse_webhook_body(b"<event>sale</event>")
        assert payload.event_type is WebhookEventType.CONVERSION_CREATED
        assert payload.data == {"rawPayload": "<event>sale</event>"}

    def test_signs_webhooks_only_with_secret(self, make_adapter, config_for):
        assert make_adapter(NetworkType.RAKUTEN).signs_webhooks is False
        config = config_for(NetworkType.RAKUTEN, credentials={"publisherId": "p", "apiKey": "k", "secretKey": "s"})
        assert make_adapter(NetworkType.RAKUTEN, config=config).signs_webhooks is True
