"""Unit tests for retailer adapters and the registry."""

import json

import pytest

from src.scraper import retailers  # noqa: F401
from src.scraper.base.models import ProductSource, SearchQuery
from src.scraper.base.registry import GenericRetailerAdapter, RetailerRegistry
from src.scraper.retailers import (
    AmazonAdapter,
    CromaAdapter,
    FlipkartAdapter,
    MeeshoAdapter,
    RelianceDigitalAdapter,
)

from conftest import make_retailer_config

QUERY = SearchQuery.from_raw("iphone 15")


def adapter_for(key: str, **overrides):
    config = make_retailer_config(key, **overrides)
    return RetailerRegistry.build({key: config})[key]


class TestRegistry:
    """Test adapter resolution."""

    @pytest.mark.unit
    def test_known_retailers_are_registered(self):
        keys = RetailerRegistry.registered_keys()
        for key in ("amazon", "flipkart", "meesho", "croma", "reliance_digital"):
            assert key in keys

    @pytest.mark.unit
    def test_build_resolves_adapter_classes(self):
        adapters = RetailerRegistry.build(
            {
                "amazon": make_retailer_config("amazon"),
                "flipkart": make_retailer_config("flipkart"),
                "meesho": make_retailer_config("meesho"),
                "croma": make_retailer_config("croma"),
                "reliance_digital": make_retailer_config("reliance_digital"),
                "tatacliq": make_retailer_config("tatacliq"),
            }
        )

        assert isinstance(adapters["amazon"], AmazonAdapter)
        assert isinstance(adapters["flipkart"], FlipkartAdapter)
        assert isinstance(adapters["meesho"], MeeshoAdapter)
        assert isinstance(adapters["croma"], CromaAdapter)
        assert isinstance(adapters["reliance_digital"], RelianceDigitalAdapter)
        assert isinstance(adapters["tatacliq"], GenericRetailerAdapter)

    @pytest.mark.unit
    def test_missing_surfaces_build_no_request(self):
        adapter = adapter_for("plain", direct_api_url=None)

        assert adapter.build_direct_api_request(QUERY) is None
        assert adapter.build_graphql_request(QUERY) is None
        assert adapter.build_harvested_request(QUERY) is None

    @pytest.mark.unit
    def test_generic_direct_request(self):
        adapter = adapter_for("plain", headers={"X-Client": "web"})
        request = adapter.build_direct_api_request(QUERY)

        assert request.url == "https://api.plain.test/search"
        assert request.method == "GET"
        assert request.params == {"q": "iphone 15"}
        assert request.headers["X-Client"] == "web"
        assert request.headers["Cookie"].startswith("session-id=")

    @pytest.mark.unit
    def test_configured_cookie_is_kept(self):
        adapter = adapter_for("plain", headers={"Cookie": "fixed=1"})
        assert adapter.request_headers()["Cookie"] == "fixed=1"

    @pytest.mark.unit
    def test_generic_parse_response_json(self):
        adapter = adapter_for("plain")
        body = json.dumps(
            {"data": {"products": [{"id": "1", "name": "Phone", "price": "₹9,999"}]}}
        )
        products = adapter.parse_response(body, "application/json", ProductSource.DIRECT_API)

        assert [(p.id, p.price, p.retailer_name) for p in products] == [("1", "9999", "Plain")]

    @pytest.mark.unit
    def test_parse_response_malformed_json_raises(self):
        adapter = adapter_for("plain")
        with pytest.raises(ValueError):
            adapter.parse_response("{oops", "application/json", ProductSource.DIRECT_API)

    @pytest.mark.unit
    def test_parse_dom_records_drops_incomplete(self):
        adapter = adapter_for("plain")
        products = adapter.parse_dom_records(
            [
                {"name": "Phone A", "price": "₹1,999", "link": "/p/a", "rating": "4.2"},
                {"name": "", "price": "₹10"},
                {"name": "Phone C", "price": None},
            ]
        )

        assert len(products) == 1
        assert products[0].source is ProductSource.DOM_SCRAPE
        assert products[0].detail_url == "https://www.plain.test/p/a"

    @pytest.mark.unit
    def test_is_api_response(self):
        adapter = adapter_for("plain")
        assert adapter.is_api_response("https://x.test/api/search", "text/plain")
        assert adapter.is_api_response("https://x.test/graphql", "")
        assert adapter.is_api_response("https://x.test/feed", "application/json; charset=utf-8")
        assert not adapter.is_api_response("https://x.test/logo.png", "image/png")


class TestAmazonAdapter:
    """Test Amazon request shapes and inline state parsing."""

    @pytest.mark.unit
    def test_direct_request_params(self):
        request = adapter_for("amazon").build_direct_api_request(QUERY)
        assert request.params["k"] == "iphone 15"
        assert request.params["url"] == "search-alias=aps"

    @pytest.mark.unit
    def test_parse_initial_data(self):
        html = (
            "<html><script>var initialData = "
            '{"search": {"results": [{"asin": "B0CHX1W1XY", "title": "Apple iPhone 15", '
            '"price": {"value": "₹69,900"}, "detailPageUrl": "/dp/B0CHX1W1XY"}]}};'
            "</script></html>"
        )
        products = adapter_for("amazon").parse_response(
            html, "text/html", ProductSource.DIRECT_API
        )

        assert len(products) == 1
        assert products[0].id == "B0CHX1W1XY"
        assert products[0].price == "69900"
        assert products[0].detail_url == "https://www.amazon.test/dp/B0CHX1W1XY"
        assert products[0].source is ProductSource.DIRECT_API

    @pytest.mark.unit
    def test_harvested_request(self):
        adapter = adapter_for("amazon", harvested_url="https://completion.amazon.test/api")
        request = adapter.build_harvested_request(QUERY)

        assert request.params["prefix"] == "iphone 15"
        assert request.headers["Accept"] == "application/json"


class TestFlipkartAdapter:
    """Test Flipkart page-fetch requests and slot parsing."""

    @pytest.mark.unit
    def test_page_fetch_request(self):
        adapter = adapter_for("flipkart", graphql_url="https://rome.flipkart.test/api/4/page/fetch")
        request = adapter.build_graphql_request(QUERY)

        assert request.method == "POST"
        assert request.json_body["pageContext"]["pageUri"].startswith("/search?q=iphone+15")

    @pytest.mark.unit
    def test_parse_page_slots(self):
        payload = {
            "RESPONSE": {
                "slots": [
                    {"widget": {"data": {}}},
                    {
                        "widget": {
                            "data": {
                                "products": [
                                    {
                                        "productInfo": {
                                            "value": {
                                                "id": "MOBGTAGPTB3VS24W",
                                                "titles": {"title": "Apple iPhone 15 (Black)"},
                                                "pricing": {
                                                    "finalPrice": {"value": 65999},
                                                    "mrp": {"value": 69900},
                                                },
                                                "media": {
                                                    "images": [
                                                        {"url": "https://img.test/{@width}/{@height}/x.jpg?q={@quality}"}
                                                    ]
                                                },
                                                "baseUrl": "/apple-iphone-15/p/itm6ac6485515ae4",
                                                "rating": {"average": 4.6},
                                            }
                                        }
                                    }
                                ]
                            }
                        }
                    },
                ]
            }
        }
        products = adapter_for("flipkart").parse_json(payload, ProductSource.GRAPHQL)

        assert len(products) == 1
        product = products[0]
        assert product.price == "65999"
        assert product.original_price == "69900"
        assert product.image_url == "https://img.test/312/312/x.jpg?q=70"
        assert product.rating == 4.6
        assert product.source is ProductSource.GRAPHQL

    @pytest.mark.unit
    def test_plain_payload_uses_generic_mapping(self):
        payload = {"products": [{"id": "1", "title": "Case", "price": 299}]}
        products = adapter_for("flipkart").parse_json(payload, ProductSource.DIRECT_API)
        assert [p.name for p in products] == ["Case"]


class TestOtherAdapters:
    """Test Meesho, Croma and Reliance Digital mapping."""

    @pytest.mark.unit
    def test_meesho_request_and_detail_url(self):
        adapter = adapter_for("meesho")
        request = adapter.build_direct_api_request(QUERY)
        assert request.method == "POST"
        assert request.json_body == {"query": "iphone 15", "page": 1, "limit": 20}
        assert request.headers["x-meesho-uuid"]

        payload = {
            "catalogs": [
                {
                    "product_id": "4abc",
                    "slug": "phone-cover",
                    "name": "Phone Cover",
                    "min_product_price": 149,
                    "images": [{"image_url": "https://images.meesho.test/1.jpg"}],
                    "rating": {"average_rating": 3.9},
                }
            ]
        }
        products = adapter.parse_json(payload, ProductSource.DIRECT_API)

        assert products[0].detail_url == "https://www.meesho.test/phone-cover/p/4abc"
        assert products[0].price == "149"
        assert products[0].rating == 3.9

    @pytest.mark.unit
    def test_croma_products_results(self):
        adapter = adapter_for("croma")
        payload = {
            "products": {
                "results": [
                    {
                        "code": "300652",
                        "name": "Apple iPhone 15",
                        "price": {"value": 69900},
                        "url": "/apple-iphone-15/p/300652",
                        "plpImage": "https://media.croma.test/300652.png",
                    }
                ]
            }
        }
        products = adapter.parse_json(payload, ProductSource.HARVESTED_ENDPOINT)

        assert products[0].id == "300652"
        assert products[0].price == "69900"
        assert products[0].image_url == "https://media.croma.test/300652.png"

    @pytest.mark.unit
    def test_reliance_digital_mapping(self):
        adapter = adapter_for("reliance_digital")
        payload = {
            "data": {
                "productList": [
                    {
                        "productCode": "494351",
                        "productName": "Apple iPhone 15 128 GB",
                        "price": {"sellingPrice": "₹69,900.00", "mrpPrice": "₹79,900.00"},
                        "seoUrl": "/apple-iphone-15/p/494351",
                        "averageRating": 4.4,
                    }
                ]
            }
        }
        products = adapter.parse_json(payload, ProductSource.DIRECT_API)

        assert products[0].price == "69900.00"
        assert products[0].original_price == "79900.00"
        assert products[0].retailer_name == "Reliance_Digital"
