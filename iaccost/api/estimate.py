"""
API routes for cost estimation and usage files.
"""
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from iaccost.graph.attribute_graph import AttributeGraphError
from iaccost.providers.registry import get_default_registry
from iaccost.services.cost_estimator import CostEstimator, CostEstimatorError
from iaccost.services.usage_file import UsageFileError, load_usage_spec, sync_usage_file


logger = logging.getLogger(__name__)
router = APIRouter()


class EstimateRequest(BaseModel):
    """Request model for cost estimation."""
    plan: Dict[str, Any] = Field(..., description="JSON plan, state, or generic resource graph")
    usage_yaml: Optional[str] = Field(None, description="Optional usage file (YAML text)")
    timeout_seconds: Optional[float] = Field(
        None, ge=0, description="Pricing deadline in seconds (0 = none, default from config)"
    )


class ScenarioRequest(BaseModel):
    """Request model for comparing two usage files on the same plan."""
    plan: Dict[str, Any] = Field(..., description="JSON plan, state, or generic resource graph")
    base_usage_yaml: Optional[str] = Field(None, description="Usage file for the base estimate")
    scenario_usage_yaml: Optional[str] = Field(None, description="Usage file for the scenario estimate")
    timeout_seconds: Optional[float] = Field(None, ge=0, description="Pricing deadline per estimate")


class UsageSyncRequest(BaseModel):
    """Request model for generating or refreshing a usage file."""
    plan: Dict[str, Any] = Field(..., description="JSON plan, state, or generic resource graph")
    existing_usage_yaml: Optional[str] = Field(None, description="Current usage file to merge into")


def get_estimator() -> CostEstimator:
    return CostEstimator()


@router.post("/api/estimate")
async def estimate_costs(estimate_request: EstimateRequest) -> Dict[str, Any]:
    """
    Estimate monthly costs of a plan.

    Args:
        estimate_request: Request body with plan and optional usage file

    Returns:
        JSON response with the cost estimate

    Raises:
        HTTPException: 400 for unreadable input or an unreachable catalog,
                       500 for unexpected errors
    """
    try:
        if not estimate_request.plan:
            raise HTTPException(status_code=400, detail="Plan is required")

        try:
            usage_spec = load_usage_spec(estimate_request.usage_yaml)
            estimator = get_estimator()
            cost_estimate = await estimator.estimate(
                estimate_request.plan,
                usage_spec,
                timeout=estimate_request.timeout_seconds,
            )
        except (CostEstimatorError, AttributeGraphError, UsageFileError) as error:
            raise HTTPException(
                status_code=400,
                detail=f"Failed to estimate costs: {str(error)}"
            ) from error

        return {
            "status": "ok",
            "estimate": cost_estimate.to_dict()
        }

    except HTTPException:
        # Re-raise HTTP exceptions as-is
        raise
    except Exception as error:
        logger.error(f"Unexpected error estimating costs: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while estimating costs"
        ) from error


@router.post("/api/estimate/scenario")
async def estimate_scenario(scenario_request: ScenarioRequest) -> Dict[str, Any]:
    """
    Estimate a plan under a base and a scenario usage file and compare them.

    Returns:
        JSON response with both estimates and per-resource monthly deltas
    """
    try:
        if not scenario_request.plan:
            raise HTTPException(status_code=400, detail="Plan is required")

        try:
            base_usage = load_usage_spec(scenario_request.base_usage_yaml)
            scenario_usage = load_usage_spec(scenario_request.scenario_usage_yaml)
            estimator = get_estimator()
            result = await estimator.estimate_with_scenario(
                scenario_request.plan,
                base_usage,
                scenario_usage,
                timeout=scenario_request.timeout_seconds,
            )
        except (CostEstimatorError, AttributeGraphError, UsageFileError) as error:
            raise HTTPException(
                status_code=400,
                detail=f"Failed to estimate scenario: {str(error)}"
            ) from error

        return {
            "status": "ok",
            "result": result.to_dict()
        }

    except HTTPException:
        raise
    except Exception as error:
        logger.error(f"Unexpected error estimating scenario: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while estimating the scenario"
        ) from error


@router.post("/api/usage/sync")
async def sync_usage(sync_request: UsageSyncRequest) -> Dict[str, Any]:
    """
    Generate a usage file for a plan, merging into an existing one.

    Existing values and comments are kept; keys not yet set are added
    commented out with their defaults.

    Returns:
        JSON response with the new usage file text and sync statistics
    """
    try:
        try:
            estimator = get_estimator()
            graph = estimator.load_graph(sync_request.plan)
            resources, skipped = estimator.build_resources(graph)
            result = sync_usage_file(resources, sync_request.existing_usage_yaml)
        except (AttributeGraphError, UsageFileError) as error:
            raise HTTPException(
                status_code=400,
                detail=f"Failed to sync usage file: {str(error)}"
            ) from error

        return {
            "status": "ok",
            "skipped_resources": [resource.to_dict() for resource in skipped],
            **result.to_dict(),
        }

    except HTTPException:
        raise
    except Exception as error:
        logger.error(f"Unexpected error syncing usage file: {error}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while syncing the usage file"
        ) from error


@router.get("/api/resources")
async def list_resource_types() -> Dict[str, Any]:
    """List registered resource types with their usage keys."""
    registry = get_default_registry()
    return {
        "status": "ok",
        "count": len(registry),
        "resource_types": [item.to_dict() for item in registry.items()],
    }
