"""
Tests for the HTTP API.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from iaccost.core.config import config
from iaccost.middleware.request_size_limiter import count_plan_resources
from iaccost.services.cost_estimator import CostEstimator


@pytest.fixture
def estimator(local_catalog):
    """Estimator wired to the in-memory catalog."""
    test_estimator = CostEstimator(client=local_catalog)
    with patch("iaccost.api.estimate.get_estimator", return_value=test_estimator):
        yield test_estimator


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_resource_types(client):
    response = client.get("/api/resources")

    data = response.json()
    assert response.status_code == 200
    names = [item["name"] for item in data["resource_types"]]
    assert "azurerm_mssql_database" in names
    assert data["count"] == len(names)
    database = next(item for item in data["resource_types"] if item["name"] == "azurerm_mssql_database")
    assert database["usage_keys"] == [
        "extra_data_storage_gb", "monthly_vcore_hours", "long_term_retention_storage_gb",
    ]


def test_estimate_endpoint(client, estimator, sample_plan):
    usage_yaml = (
        "version: 0.1\n"
        "resource_usage:\n"
        "  azurerm_mssql_database.gp:\n"
        "    long_term_retention_storage_gb: 100\n"
    )

    response = client.post("/api/estimate", json={"plan": sample_plan, "usage_yaml": usage_yaml})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["estimate"]["total_monthly_cost"] == "680.28"
    assert data["estimate"]["skipped_resources"][0]["address"] == "aws_unsupported_thing.x"


def test_estimate_requires_plan(client, estimator):
    response = client.post("/api/estimate", json={"plan": {}})

    assert response.status_code == 400
    assert response.json()["detail"] == "Plan is required"


@pytest.mark.parametrize("payload", [
    {"plan": {"unknown": True}},
    {"plan": {"resources": []}},
    {"plan": {"values": []}},
    {"plan": {"values": ["aws_s3_bucket.a"]}},
    {"plan": {"planned_values": {"root_module": {"resources": "many", "child_modules": {"a": 1}}}}},
    {"plan": {"resources": [{"address": "aws_s3_bucket.a"}]}, "usage_yaml": "version: 7\n"},
])
def test_estimate_bad_input_is_400(client, estimator, payload):
    response = client.post("/api/estimate", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Failed to estimate costs")


def test_estimate_negative_timeout_is_rejected(client, estimator, sample_plan):
    response = client.post("/api/estimate", json={"plan": sample_plan, "timeout_seconds": -1})

    assert response.status_code == 422


def test_unexpected_error_is_500(client, sample_plan):
    broken = Mock()
    broken.estimate = AsyncMock(side_effect=RuntimeError("boom"))

    with patch("iaccost.api.estimate.get_estimator", return_value=broken):
        response = client.post("/api/estimate", json={"plan": sample_plan})

    assert response.status_code == 500
    assert "boom" not in response.json()["detail"]


def test_scenario_endpoint(client, estimator, sample_plan):
    response = client.post("/api/estimate/scenario", json={
        "plan": sample_plan,
        "scenario_usage_yaml": (
            "version: 0.1\n"
            "resource_usage:\n"
            "  azurerm_mssql_database.gp:\n"
            "    long_term_retention_storage_gb: 100\n"
        ),
    })

    assert response.status_code == 200
    result = response.json()["result"]
    assert result["total_delta"] == "5"
    assert result["deltas"][0]["address"] == "azurerm_mssql_database.gp"


def test_usage_sync_endpoint(client, estimator, sample_plan):
    response = client.post("/api/usage/sync", json={
        "plan": sample_plan,
        "existing_usage_yaml": "version: 0.1\n# keep me\nresource_usage:\n",
    })

    assert response.status_code == 200
    data = response.json()
    assert "# keep me" in data["usage_yaml"]
    assert "#~ azurerm_mssql_database.gp:" in data["usage_yaml"]
    assert data["resources_synced"] == 1
    assert [item["address"] for item in data["skipped_resources"]] == ["aws_unsupported_thing.x"]


def test_usage_sync_bad_existing_file_is_400(client, estimator, sample_plan):
    response = client.post("/api/usage/sync", json={"plan": sample_plan, "existing_usage_yaml": "version: 2\n"})

    assert response.status_code == 400


def test_oversized_body_is_413(client, sample_plan):
    with patch.object(config, "MAX_REQUEST_BODY_BYTES", 100):
        response = client.post("/api/estimate", json={"plan": sample_plan})

    assert response.status_code == 413
    assert response.json()["error"] == "request_too_large"


def test_too_many_resources_is_413(client, sample_plan):
    with patch.object(config, "MAX_GRAPH_RESOURCES", 2):
        response = client.post("/api/estimate", json={"plan": sample_plan})

    assert response.status_code == 413
    assert "Too many resources in plan: 4" in response.json()["message"]


def test_count_plan_resources():
    plan = {"planned_values": {"root_module": {
        "resources": [{}, {}],
        "child_modules": [{"resources": [{}], "child_modules": [{"resources": [{}, {}]}]}],
    }}}

    assert count_plan_resources(plan) == 5
    assert count_plan_resources({"resources": [{}]}) == 1
    assert count_plan_resources({}) == 0
    assert count_plan_resources({"values": []}) == 0
    assert count_plan_resources({"planned_values": "oops"}) == 0
    assert count_plan_resources({"values": {"root_module": {"resources": 3, "child_modules": "x"}}}) == 0
