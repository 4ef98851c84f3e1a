"""
Cost estimator service.
Builds typed resources from an attribute graph, prices them against the
pricing catalog and aggregates the result into a cost estimate.
"""
from typing import Any, Dict, List, Optional, Tuple, Union
from datetime import datetime, timezone
from decimal import Decimal
import asyncio
import logging

from iaccost.core.config import config
from iaccost.domain.cost_models import CostEstimate, Resource, SkippedResource
from iaccost.domain.scenario_models import ScenarioDeltaLineItem, ScenarioEstimateResult
from iaccost.domain.usage_models import UsageSpec
from iaccost.graph.attribute_graph import AttributeGraph
from iaccost.graph.plan_loader import load_attribute_graph
from iaccost.pricing.catalog_client import PricingCatalogClient, PricingCatalogError, create_catalog_client
from iaccost.providers.registry import ResourceBuildError, ResourceRegistry, get_default_registry
from iaccost.services.cost_aggregator import aggregate
from iaccost.services.price_matcher import PriceMatchingEngine, PricingRun
from iaccost.services.usage_engine import UsageValueError, resolve_usage, usage_for_address


logger = logging.getLogger(__name__)


GraphInput = Union[AttributeGraph, Dict[str, Any], str, bytes]


class CostEstimatorError(Exception):
    """Raised when cost estimation fails as a whole."""
    pass


class CostEstimator:
    """Service for estimating costs from an attribute graph."""

    def __init__(
        self,
        client: Optional[PricingCatalogClient] = None,
        registry: Optional[ResourceRegistry] = None,
    ):
        """
        Initialize cost estimator.

        Args:
            client: Pricing catalog client (created from config on first use if None)
            registry: Resource registry (the shipped builders if None)
        """
        self.registry = registry if registry is not None else get_default_registry()
        self._client = client
        self._matcher: Optional[PriceMatchingEngine] = None

    @property
    def matcher(self) -> PriceMatchingEngine:
        if self._matcher is None:
            if self._client is None:
                try:
                    self._client = create_catalog_client()
                except PricingCatalogError as error:
                    raise CostEstimatorError(f"Pricing catalog unavailable: {error}") from error
            self._matcher = PriceMatchingEngine(self._client)
        return self._matcher

    def load_graph(self, document: GraphInput) -> AttributeGraph:
        """Load a plan or generic resource document, indexing registered reference attributes."""
        if isinstance(document, AttributeGraph):
            return document
        return load_attribute_graph(document, self.registry.reference_attributes())

    def build_resources(
        self,
        graph: AttributeGraph,
        usage_spec: Optional[UsageSpec] = None,
    ) -> Tuple[List[Resource], List[SkippedResource]]:
        """
        Run the registered builder of every node.

        Nodes that cannot be built are returned as skipped with a reason;
        building never fails the run.

        Returns:
            Tuple of (resources in graph order, skipped resources)
        """
        resources: List[Resource] = []
        skipped: List[SkippedResource] = []

        for node in graph.list_resources():
            item = self.registry.get(node.type)
            if item is None:
                logger.debug(f"Resource type {node.type} not supported, skipping {node.address}")
                skipped.append(SkippedResource(
                    address=node.address,
                    resource_type=node.type,
                    reason="Resource type not supported",
                ))
                continue

            try:
                usage = resolve_usage(item.usage_schema, usage_for_address(usage_spec, node.address))
                resource = item.builder(node, usage, graph)
            except UsageValueError as error:
                logger.warning(f"Skipping {node.address}: {error}")
                skipped.append(SkippedResource(node.address, node.type, str(error)))
                continue
            except ResourceBuildError as error:
                logger.warning(f"Skipping {node.address}: {error}")
                skipped.append(SkippedResource(node.address, node.type, str(error)))
                continue
            except Exception as error:
                logger.error(
                    f"Unexpected error building {node.address} ({node.type}): {type(error).__name__}: {error}",
                    exc_info=True,
                )
                skipped.append(SkippedResource(
                    node.address, node.type, "Unexpected error while building resource"
                ))
                continue

            if resource is None:
                skipped.append(SkippedResource(
                    node.address, node.type, "Resource could not be interpreted for pricing"
                ))
                continue

            if not resource.usage_schema:
                resource.usage_schema = list(item.usage_schema)
            resources.append(resource)

        logger.info(f"Built {len(resources)} resources, skipped {len(skipped)}")
        return resources, skipped

    async def estimate(
        self,
        document: GraphInput,
        usage_spec: Optional[UsageSpec] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        run: Optional[PricingRun] = None,
    ) -> CostEstimate:
        """
        Estimate costs of a graph.

        Args:
            document: AttributeGraph, or a document accepted by load_attribute_graph
            usage_spec: Usage estimates (None means defaults everywhere)
            timeout: Pricing deadline in seconds (ESTIMATE_TIMEOUT_SECONDS if None, 0 = none)
            cancel_event: Setting this event abandons pricing early
            run: Lookup cache shared with other estimates of the same run

        Returns:
            CostEstimate; complete is False when pricing was cancelled, in
            which case unpriced resources are listed instead of included

        Raises:
            CostEstimatorError: If the graph is empty or the catalog is unreachable
        """
        graph = self.load_graph(document)
        if len(graph) == 0:
            raise CostEstimatorError("Graph has no resources")

        resources, skipped = self.build_resources(graph, usage_spec)

        if timeout is None:
            timeout = config.ESTIMATE_TIMEOUT_SECONDS

        warnings: List[str] = []
        incomplete: List[str] = []
        complete = True

        if resources:
            try:
                outcome = await self.matcher.match(
                    resources, run=run, timeout=timeout, cancel_event=cancel_event
                )
            except PricingCatalogError as error:
                logger.error(f"Pricing catalog unreachable: {error}")
                raise CostEstimatorError(f"Pricing catalog unreachable: {error}") from error

            warnings.extend(outcome.warnings)
            if outcome.cancelled:
                complete = False
                incomplete = outcome.incomplete_resources
                resources = [resource for resource in resources if resource.address not in incomplete]
                warnings.append(
                    f"Estimate incomplete: pricing was cancelled with {len(incomplete)} resources unpriced"
                )

        for resource in resources:
            warnings.extend(resource.warnings)

        total_hourly, total_monthly = aggregate(resources)

        return CostEstimate(
            currency=config.CURRENCY,
            total_hourly_cost=total_hourly,
            total_monthly_cost=total_monthly,
            resources=resources,
            skipped_resources=skipped,
            pricing_timestamp=datetime.now(timezone.utc),
            complete=complete,
            incomplete_resources=incomplete,
            warnings=warnings,
        )

    async def estimate_with_scenario(
        self,
        document: GraphInput,
        base_usage: Optional[UsageSpec],
        scenario_usage: Optional[UsageSpec],
        timeout: Optional[float] = None,
    ) -> ScenarioEstimateResult:
        """
        Estimate a graph under two usage specifications and compare them.

        Both estimates share one lookup cache, so filters common to both are
        queried once.

        Raises:
            CostEstimatorError: If either estimate fails
        """
        graph = self.load_graph(document)
        run = PricingRun()

        base_estimate = await self.estimate(graph, base_usage, timeout=timeout, run=run)
        scenario_estimate = await self.estimate(graph, scenario_usage, timeout=timeout, run=run)

        assumptions = _usage_assumptions(base_usage, scenario_usage)
        if not base_estimate.complete or not scenario_estimate.complete:
            assumptions.append("At least one estimate is incomplete; deltas cover priced resources only")

        return ScenarioEstimateResult(
            base_estimate=base_estimate,
            scenario_estimate=scenario_estimate,
            deltas=self._calculate_deltas(base_estimate.resources, scenario_estimate.resources),
            assumptions=assumptions,
        )

    def _calculate_deltas(
        self,
        base_resources: List[Resource],
        scenario_resources: List[Resource],
    ) -> List[ScenarioDeltaLineItem]:
        """
        Calculate per-resource monthly deltas, matched by address.

        A resource missing on one side counts as zero there.
        """
        base_map = {resource.address: resource for resource in base_resources}
        scenario_map = {resource.address: resource for resource in scenario_resources}

        addresses = list(base_map)
        addresses.extend(address for address in scenario_map if address not in base_map)

        deltas = []
        for address in addresses:
            base_resource = base_map.get(address)
            scenario_resource = scenario_map.get(address)
            resource_type = (base_resource or scenario_resource).resource_type

            base_cost = base_resource.monthly_cost if base_resource else Decimal(0)
            scenario_cost = scenario_resource.monthly_cost if scenario_resource else Decimal(0)
            delta = scenario_cost - base_cost

            delta_percent = None
            if base_cost > 0:
                delta_percent = delta / base_cost * 100

            deltas.append(ScenarioDeltaLineItem(
                address=address,
                resource_type=resource_type,
                base_monthly_cost=base_cost,
                scenario_monthly_cost=scenario_cost,
                delta=delta,
                delta_percent=delta_percent,
            ))

        return deltas


def _usage_assumptions(base_usage: Optional[UsageSpec], scenario_usage: Optional[UsageSpec]) -> List[str]:
    base_entries = base_usage.resource_usage if base_usage else {}
    scenario_entries = scenario_usage.resource_usage if scenario_usage else {}

    changed = sorted(
        key for key in set(base_entries) | set(scenario_entries)
        if base_entries.get(key) != scenario_entries.get(key)
    )
    if not changed:
        return ["Scenario usage is identical to base usage"]
    return [f"Usage changed for {key}" for key in changed]
