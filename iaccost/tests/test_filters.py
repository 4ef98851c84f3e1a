"""
Tests for product and price filter evaluation.
"""

from decimal import Decimal
import re

import pytest

from iaccost.domain.cost_models import AttributeFilter, PriceFilter, ProductFilter
from iaccost.domain.pricing_models import CatalogPrice, CatalogProduct
from iaccost.pricing.filters import (
    compile_value_regex,
    filter_prices,
    price_matches,
    product_matches,
)


@pytest.fixture
def product():
    return CatalogProduct(
        product_hash="abc",
        attributes={"productName": "SQL Database Single Standard", "skuName": "S3"},
        vendor_name="azure",
        service="SQL Database",
        product_family="Databases",
        region="eastus",
    )


def _filter(*attribute_filters, region="eastus"):
    return ProductFilter("Azure", "SQL Database", "Databases", region, list(attribute_filters))


def test_regex_flags():
    assert compile_value_regex("/^s3$/i").flags & re.IGNORECASE
    assert compile_value_regex("plain").pattern == "plain"
    assert compile_value_regex("/a/b/").pattern == "a/b"


def test_product_matches_exact_and_regex(product):
    assert product_matches(_filter(AttributeFilter("skuName", value="S3")), product)
    assert product_matches(_filter(AttributeFilter("skuName", value_regex="/^s3$/i")), product)
    assert product_matches(
        _filter(AttributeFilter("productName", value_regex="/^SQL Database Single/i")), product
    )


def test_product_mismatches(product):
    assert not product_matches(_filter(AttributeFilter("skuName", value="s3")), product)
    assert not product_matches(_filter(AttributeFilter("missing", value="x")), product)
    assert not product_matches(_filter(region="westeurope"), product)
    assert not product_matches(ProductFilter("azure", "Storage", "Databases", "eastus"), product)


def test_attribute_filter_needs_one_value():
    with pytest.raises(ValueError):
        AttributeFilter("skuName")
    with pytest.raises(ValueError):
        AttributeFilter("skuName", value="a", value_regex="/a/")


def test_price_filters():
    tier = CatalogPrice(
        price_hash="tier-2",
        amount=Decimal("0.58"),
        unit="1 Request",
        purchase_option="on_demand",
        description="$0.58 per certificate (next 9K)",
        start_usage_amount="1000",
        end_usage_amount="10000",
    )

    assert price_matches(None, tier)
    assert price_matches(PriceFilter(purchase_option="on_demand", start_usage_amount="1000.0"), tier)
    assert price_matches(PriceFilter(description_regex="/next 9k/i"), tier)
    assert not price_matches(PriceFilter(start_usage_amount="0"), tier)
    assert not price_matches(PriceFilter(unit="1 Hour"), tier)
    assert not price_matches(PriceFilter(term_length="1yr"), tier)


def test_filter_prices_keeps_catalog_order():
    prices = [
        CatalogPrice("b", Decimal("2"), purchase_option="Consumption"),
        CatalogPrice("r", Decimal("1"), purchase_option="Reservation"),
        CatalogPrice("a", Decimal("3"), purchase_option="Consumption"),
    ]

    matched = filter_prices(PriceFilter(purchase_option="Consumption"), prices)

    assert [price.price_hash for price in matched] == ["b", "a"]
