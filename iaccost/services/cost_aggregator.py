"""
Cost aggregation.
Turns priced components into hourly and monthly costs and rolls them up
through sub-resources to resource and estimate totals, in Decimal.
"""
import logging
from decimal import Decimal, localcontext
from typing import Iterable, Optional, Tuple

from iaccost.core.config import config
from iaccost.domain.cost_models import CostComponent, Resource


logger = logging.getLogger(__name__)

# Enough digits that sums of many components never round
AGGREGATION_PRECISION = 60

ZERO = Decimal(0)


def component_costs(
    component: CostComponent,
    hours_per_month: Optional[int] = None,
) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """
    Compute (hourly, monthly) cost of one component.

    cost = quantity x unit price x unit multiplier. An hourly quantity is
    normalized to a monthly one with the hours-per-month constant, a monthly
    quantity is spread back over the same hours. Components lacking a price
    or a quantity return (None, None): they count as zero but stay unknown.
    """
    hours = Decimal(hours_per_month or config.HOURS_PER_MONTH)

    if component.unit_price is None or not component.has_quantity:
        return None, None

    rate = component.unit_price * component.unit_multiplier
    if component.hourly_quantity is not None:
        hourly = component.hourly_quantity * rate
        return hourly, component.hourly_quantity * hours * rate

    monthly = component.monthly_quantity * rate
    return monthly / hours, monthly


def _sum(values: Iterable[Optional[Decimal]]) -> Decimal:
    total = ZERO
    for value in values:
        if value is not None:
            total += value
    return total


def aggregate_resource(resource: Resource, hours_per_month: Optional[int] = None) -> Resource:
    """Set costs on every component and sub-resource, then on the resource itself."""
    with localcontext() as context:
        context.prec = AGGREGATION_PRECISION

        for component in resource.cost_components:
            component.hourly_cost, component.monthly_cost = component_costs(component, hours_per_month)

        for sub_resource in resource.sub_resources:
            aggregate_resource(sub_resource, hours_per_month)

        resource.hourly_cost = _sum(
            [component.hourly_cost for component in resource.cost_components]
            + [sub_resource.hourly_cost for sub_resource in resource.sub_resources]
        )
        resource.monthly_cost = _sum(
            [component.monthly_cost for component in resource.cost_components]
            + [sub_resource.monthly_cost for sub_resource in resource.sub_resources]
        )
    return resource


def aggregate(resources: Iterable[Resource], hours_per_month: Optional[int] = None) -> Tuple[Decimal, Decimal]:
    """
    Aggregate a list of top-level resources.

    Returns:
        (total hourly cost, total monthly cost); independent of resource order
    """
    resources = list(resources)
    with localcontext() as context:
        context.prec = AGGREGATION_PRECISION
        for resource in resources:
            aggregate_resource(resource, hours_per_month)
        total_hourly = _sum(resource.hourly_cost for resource in resources)
        total_monthly = _sum(resource.monthly_cost for resource in resources)

    logger.debug(f"Aggregated {len(resources)} resources: {total_monthly} per month")
    return total_hourly, total_monthly
