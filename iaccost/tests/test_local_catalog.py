"""
Tests for the local pricing catalog.
"""

import gzip
import json

import pytest

from iaccost.domain.cost_models import AttributeFilter, PriceFilter, ProductFilter
from iaccost.domain.pricing_models import PriceQuery
from iaccost.pricing.catalog_client import PricingCatalogError
from iaccost.pricing.local_catalog import LocalCatalogClient


def _query(*attribute_filters, region="eastus", price_filter=None, service="SQL Database"):
    return PriceQuery(
        ProductFilter("azure", service, "Databases", region, list(attribute_filters)),
        price_filter,
    )


def test_query_matches_by_attributes(local_catalog):
    result = local_catalog.query(_query(AttributeFilter("skuName", value="S3")))

    assert [product.product_hash for product in result.products] == ["sql-dtu-s3"]
    assert result.products[0].prices[0].price_hash == "p-s3"


def test_query_keeps_catalog_order(local_catalog):
    result = local_catalog.query(_query(AttributeFilter("skuName", value="4 vCore")))

    assert [product.product_hash for product in result.products] == ["sql-gp-gen5-a", "sql-gp-gen5-b"]


def test_query_filters_region(local_catalog):
    assert local_catalog.query(_query(AttributeFilter("skuName", value="S3"), region="westeurope")).products == []

    global_licence = local_catalog.query(_query(AttributeFilter("skuName", value="vCore"), region="Global"))
    assert [product.product_hash for product in global_licence.products] == ["sql-gp-licence"]


def test_price_filter_narrows_prices(local_catalog):
    result = local_catalog.query(_query(
        AttributeFilter("skuName", value="S3"),
        price_filter=PriceFilter(purchase_option="Reservation"),
    ))

    assert len(result.products) == 1
    assert result.products[0].prices == []


def test_invalid_pattern_is_a_query_error(local_catalog):
    result = local_catalog.query(_query(AttributeFilter("skuName", value_regex="/([/")))

    assert result.error is not None
    assert result.products == []


@pytest.mark.asyncio
async def test_batch_query_answers_in_order(local_catalog):
    results = await local_catalog.batch_query([
        _query(AttributeFilter("skuName", value="S3")),
        _query(AttributeFilter("skuName", value="none")),
    ])

    assert len(results[0].products) == 1
    assert results[1].products == []


def test_from_file_plain_and_gzip(tmp_path, catalog_products):
    plain = tmp_path / "catalog.json"
    plain.write_text(json.dumps({"products": catalog_products}))
    packed = tmp_path / "catalog.json.gz"
    with gzip.open(packed, "wt", encoding="utf-8") as handle:
        json.dump(catalog_products, handle)

    assert len(LocalCatalogClient.from_file(plain).products) == len(catalog_products)
    assert len(LocalCatalogClient.from_file(packed).products) == len(catalog_products)


def test_from_file_errors(tmp_path):
    with pytest.raises(PricingCatalogError):
        LocalCatalogClient.from_file(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(PricingCatalogError):
        LocalCatalogClient.from_file(broken)


def test_attribute_list_and_missing_amount():
    catalog = LocalCatalogClient.from_dicts([{
        "vendorName": "aws", "service": "AmazonS3", "productFamily": "Storage", "region": "",
        "attributes": [{"key": "volumeType", "value": "Standard"}],
        "prices": [],
    }])
    product = catalog.products[0]
    assert product.attributes == {"volumeType": "Standard"}
    assert product.region is None
    assert product.product_hash == "0"

    with pytest.raises(PricingCatalogError):
        LocalCatalogClient.from_dicts([{"prices": [{"priceHash": "x"}]}])
