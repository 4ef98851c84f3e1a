"""
Tests for the cost estimator service.
"""

import asyncio
import copy
from decimal import Decimal
from unittest.mock import patch

import pytest

from iaccost.core.config import config
from iaccost.domain.cost_models import PriceStatus
from iaccost.domain.usage_models import UsageSpec
from iaccost.pricing.catalog_client import PricingCatalogClient, PricingCatalogError
from iaccost.providers.registry import RegistryItem, ResourceRegistry
from iaccost.services.cost_estimator import CostEstimator, CostEstimatorError


class DownCatalog(PricingCatalogClient):
    name = "down"

    async def batch_query(self, queries):
        raise PricingCatalogError("connection refused")


class SlowServiceCatalog(PricingCatalogClient):
    name = "slow"

    def __init__(self, inner, service):
        self.inner = inner
        self.service = service

    async def batch_query(self, queries):
        if any(query.product_filter.service == self.service for query in queries):
            await asyncio.sleep(30)
        return await self.inner.batch_query(queries)


def _resource(estimate, address):
    return next(resource for resource in estimate.resources if resource.address == address)


@pytest.mark.asyncio
async def test_estimate_plan(sample_plan, local_catalog):
    estimate = await CostEstimator(client=local_catalog).estimate(sample_plan)

    assert estimate.complete
    assert [resource.address for resource in estimate.resources] == [
        "azurerm_mssql_server.main",
        "azurerm_mssql_database.gp",
        "aws_api_gateway_stage.prod",
    ]
    assert [(item.address, item.reason) for item in estimate.skipped_resources] == [
        ("aws_unsupported_thing.x", "Resource type not supported"),
    ]

    database = _resource(estimate, "azurerm_mssql_database.gp")
    # 0.5 x 730 compute + 4 x 0.1 x 730 licence + 32 x 0.115 storage
    assert database.monthly_cost == Decimal("660.68")
    assert _resource(estimate, "aws_api_gateway_stage.prod").monthly_cost == Decimal("14.6")
    assert estimate.total_monthly_cost == Decimal("675.28")
    assert estimate.currency == "USD"

    summary = estimate.summary()
    assert summary["free_resources"] == 1
    assert summary["priced_components"] == 5
    assert summary["usage_dependent_components"] == 1
    assert summary["skipped_resources"] == 1

    # The compute lookup matches two products; the first wins with a warning
    assert any("2 products matched" in warning for warning in estimate.warnings)


@pytest.mark.asyncio
async def test_estimate_with_usage(sample_plan, local_catalog):
    usage = UsageSpec("0.1", {"azurerm_mssql_database.gp": {"long_term_retention_storage_gb": 100}})

    estimate = await CostEstimator(client=local_catalog).estimate(sample_plan, usage)

    assert _resource(estimate, "azurerm_mssql_database.gp").monthly_cost == Decimal("665.68")


@pytest.mark.asyncio
async def test_estimate_to_dict_is_json_ready(sample_plan, local_catalog):
    estimate = await CostEstimator(client=local_catalog).estimate(sample_plan)

    result = estimate.to_dict()

    assert result["total_monthly_cost"] == "675.28"
    assert result["complete"] is True
    assert result["resources"][1]["cost_components"][0]["status"] == "priced"


@pytest.mark.asyncio
async def test_bad_usage_skips_only_that_resource(sample_plan, local_catalog):
    usage = UsageSpec("0.1", {"azurerm_mssql_database.gp": {"long_term_retention_storage_gb": "lots"}})

    estimate = await CostEstimator(client=local_catalog).estimate(sample_plan, usage)

    skipped = {item.address: item.reason for item in estimate.skipped_resources}
    assert "Invalid usage value" in skipped["azurerm_mssql_database.gp"]
    assert estimate.total_monthly_cost == Decimal("14.6")


def test_builder_failures_are_skipped():
    def broken(node, usage, graph):
        raise RuntimeError("boom")

    def unpriceable(node, usage, graph):
        return None

    registry = ResourceRegistry([
        RegistryItem("custom_broken", builder=broken),
        RegistryItem("custom_none", builder=unpriceable),
    ])
    estimator = CostEstimator(registry=registry)
    graph = estimator.load_graph({"resources": [
        {"address": "custom_broken.a"},
        {"address": "custom_none.b"},
    ]})

    resources, skipped = estimator.build_resources(graph)

    assert resources == []
    assert [item.reason for item in skipped] == [
        "Unexpected error while building resource",
        "Resource could not be interpreted for pricing",
    ]


@pytest.mark.asyncio
async def test_empty_graph_is_an_error(local_catalog):
    with pytest.raises(CostEstimatorError):
        await CostEstimator(client=local_catalog).estimate({"resources": []})


@pytest.mark.asyncio
async def test_unreachable_catalog_is_an_error(sample_plan):
    with pytest.raises(CostEstimatorError, match="Pricing catalog unreachable"):
        await CostEstimator(client=DownCatalog()).estimate(sample_plan)


def test_missing_catalog_file_is_an_error(tmp_path):
    with patch.object(config, "PRICING_CATALOG_PATH", str(tmp_path / "missing.json")):
        with pytest.raises(CostEstimatorError):
            CostEstimator().matcher


@pytest.mark.asyncio
async def test_cancelled_estimate_is_marked_incomplete(sample_plan, local_catalog):
    client = SlowServiceCatalog(local_catalog, "AmazonApiGateway")

    with patch.object(config, "PRICING_BATCH_SIZE", 1), patch.object(config, "PRICING_MAX_CONCURRENCY", 8):
        estimate = await CostEstimator(client=client).estimate(sample_plan, timeout=0.2)

    assert not estimate.complete
    assert estimate.incomplete_resources == ["aws_api_gateway_stage.prod"]
    assert "aws_api_gateway_stage.prod" not in [resource.address for resource in estimate.resources]
    assert estimate.total_monthly_cost == Decimal("660.68")
    assert any(warning.startswith("Estimate incomplete") for warning in estimate.warnings)


@pytest.mark.asyncio
async def test_cancel_event_stops_estimate(sample_plan, local_catalog):
    client = SlowServiceCatalog(local_catalog, "SQL Database")
    cancel_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel_event.set)

    with patch.object(config, "PRICING_BATCH_SIZE", 1), patch.object(config, "PRICING_MAX_CONCURRENCY", 8):
        estimate = await CostEstimator(client=client).estimate(sample_plan, cancel_event=cancel_event)

    assert not estimate.complete
    assert estimate.incomplete_resources == ["azurerm_mssql_database.gp"]
    assert all(
        component.status is not PriceStatus.CANCELLED
        for resource in estimate.resources
        for _, component in resource.iter_components()
    )


@pytest.mark.asyncio
async def test_scenario_deltas(sample_plan, recording_catalog):
    base_usage = UsageSpec("0.1", {})
    scenario_usage = UsageSpec("0.1", {"azurerm_mssql_database.gp": {"long_term_retention_storage_gb": 100}})
    plan_copy = copy.deepcopy(sample_plan)

    result = await CostEstimator(client=recording_catalog).estimate_with_scenario(
        sample_plan, base_usage, scenario_usage
    )

    assert result.total_delta == Decimal("5")
    assert result.assumptions == ["Usage changed for azurerm_mssql_database.gp"]
    # Both estimates share one lookup cache
    assert recording_catalog.query_count == 5
    assert sample_plan == plan_copy

    deltas = result.to_dict()["deltas"]
    assert deltas[0]["address"] == "azurerm_mssql_database.gp"
    assert deltas[0]["delta"] == "5"
    assert deltas[0]["delta_percent"] == "0.8"
    server_delta = next(item for item in deltas if item["address"] == "azurerm_mssql_server.main")
    assert server_delta["delta_percent"] is None
    assert result.base_estimate.total_monthly_cost == Decimal("675.28")


@pytest.mark.asyncio
async def test_identical_scenario(sample_plan, local_catalog):
    result = await CostEstimator(client=local_catalog).estimate_with_scenario(sample_plan, None, None)

    assert result.total_delta == 0
    assert result.assumptions == ["Scenario usage is identical to base usage"]
