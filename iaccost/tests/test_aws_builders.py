"""
Tests for the AWS resource builders and the registry.
"""

from decimal import Decimal

import pytest

from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.aws import (
    acmpca_certificate_authority,
    api_gateway_stage,
    lightsail_instance,
    s3_bucket,
)
from iaccost.providers.registry import RegistryItem, ResourceBuildError, ResourceRegistry, get_default_registry
from iaccost.services.usage_engine import UsageData, resolve_usage


def _build(module, address, values, usage=None):
    node = AttributeNode(address, module.RESOURCE_TYPE, values=values)
    schema = getattr(module, "USAGE_SCHEMA", [])
    resolved = resolve_usage(schema, UsageData(address, usage or {}))
    return module.build(node, resolved, AttributeGraph([node]))


def test_api_gateway_stage_cache():
    resource = _build(api_gateway_stage, "aws_api_gateway_stage.prod",
                      {"cache_cluster_size": "6.1", "region": "eu-west-1"})

    component = resource.cost_components[0]
    assert component.name == "Cache memory (6.1 GB)"
    assert component.hourly_quantity == Decimal(1)
    assert component.product_filter.region == "eu-west-1"
    assert component.product_filter.attribute_filters[0].value == "6.1"


def test_api_gateway_stage_without_cache_is_free():
    resource = _build(api_gateway_stage, "aws_api_gateway_stage.prod", {})

    assert resource.is_free
    assert api_gateway_stage.cache_memory_label(118.0) == "118"


def test_api_gateway_stage_rejects_bad_cache_size():
    with pytest.raises(ResourceBuildError):
        _build(api_gateway_stage, "aws_api_gateway_stage.prod", {"cache_cluster_size": "huge"})


@pytest.mark.parametrize("bundle_id, memory, operating_system", [
    ("medium_2_0", "4GB", "Linux"),
    ("nano_win_2_0", "0.5GB", "Windows"),
    ("2xlarge_2_0", "32GB", "Linux"),
])
def test_lightsail_bundles(bundle_id, memory, operating_system):
    resource = _build(lightsail_instance, "aws_lightsail_instance.web", {"bundle_id": bundle_id})

    component = resource.cost_components[0]
    filters = {item.key: item.value for item in component.product_filter.attribute_filters}
    assert component.name == f"Virtual server ({operating_system})"
    assert filters == {"memory": memory, "operatingSystem": operating_system}
    assert component.product_filter.region == "us-east-1"


def test_lightsail_unknown_bundle():
    with pytest.raises(ResourceBuildError):
        _build(lightsail_instance, "aws_lightsail_instance.web", {"bundle_id": "gigantic_2_0"})


def test_certificate_authority_without_usage():
    resource = _build(acmpca_certificate_authority, "aws_acmpca_certificate_authority.ca", {})

    names = [component.name for component in resource.cost_components]
    assert names == ["Private certificate authority", "Certificates (first 1K)"]
    assert resource.cost_components[0].monthly_quantity == Decimal(1)
    assert resource.cost_components[1].monthly_quantity is None


def test_certificate_authority_tiers():
    resource = _build(acmpca_certificate_authority, "aws_acmpca_certificate_authority.ca", {},
                      usage={"monthly_requests": 12000})

    certificates = resource.cost_components[1:]
    assert [(component.name, component.monthly_quantity) for component in certificates] == [
        ("Certificates (first 1K)", Decimal(1000)),
        ("Certificates (next 9K)", Decimal(9000)),
        ("Certificates (over 10K)", Decimal(2000)),
    ]
    assert [component.price_filter.start_usage_amount for component in certificates] == ["0", "1000", "10000"]


def test_certificate_tiers_skip_empty_tiers():
    assert acmpca_certificate_authority.split_into_tiers(Decimal(500)) == [Decimal(500), Decimal(0), Decimal(0)]

    resource = _build(acmpca_certificate_authority, "aws_acmpca_certificate_authority.ca", {},
                      usage={"monthly_requests": 500})
    assert [component.name for component in resource.cost_components] == [
        "Private certificate authority", "Certificates (first 1K)",
    ]


def test_s3_bucket_storage_classes():
    resource = _build(s3_bucket, "aws_s3_bucket.logs", {"region": "us-west-2"}, usage={
        "standard": {"storage_gb": 1000, "monthly_tier_1_requests": 20000},
    })

    assert resource.cost_components == []
    assert [sub.address for sub in resource.sub_resources] == [
        "aws_s3_bucket.logs.Standard",
        "aws_s3_bucket.logs.Standard - infrequent access",
        "aws_s3_bucket.logs.Glacier flexible retrieval",
    ]

    standard = resource.sub_resources[0].cost_components
    assert standard[0].monthly_quantity == Decimal(1000)
    assert standard[1].monthly_quantity == Decimal(20000)
    assert standard[2].monthly_quantity is None
    assert standard[1].product_filter.attribute_filters[0].value_regex == "/Requests-Tier1$/"
    assert all(
        component.monthly_quantity is None
        for component in resource.sub_resources[2].cost_components
    )
    assert not resource.is_free


def test_default_registry_contents():
    registry = get_default_registry()

    for resource_type in (
        "aws_acmpca_certificate_authority",
        "aws_api_gateway_stage",
        "aws_lightsail_instance",
        "aws_s3_bucket",
        "azurerm_mssql_database",
        "aws_vpc",
    ):
        assert resource_type in registry

    assert registry.get("aws_vpc").free
    assert registry.reference_attributes()["azurerm_mssql_database"] == ["server_id"]
    assert registry.supported_types() == sorted(registry.supported_types())
    assert get_default_registry() is registry


def test_free_resource_builds_empty_resource():
    item = get_default_registry().get("aws_vpc")
    node = AttributeNode("aws_vpc.main", "aws_vpc")

    resource = item.builder(node, resolve_usage([], None), AttributeGraph([node]))

    assert resource.is_free
    assert resource.address == "aws_vpc.main"


def test_registry_rejects_duplicates():
    registry = ResourceRegistry([RegistryItem("custom_type", builder=lambda node, usage, graph: None)])

    with pytest.raises(ValueError):
        registry.register(RegistryItem("custom_type", builder=lambda node, usage, graph: None))
    assert len(registry) == 1
    assert registry.get("missing") is None
