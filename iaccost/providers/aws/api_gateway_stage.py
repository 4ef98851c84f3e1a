"""
aws_api_gateway_stage: priced only for its cache cluster.
"""
from typing import Optional

from iaccost.domain.cost_models import AttributeFilter, CostComponent, PriceFilter, ProductFilter, Resource
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.aws.common import VENDOR_NAME, aws_region
from iaccost.providers.registry import RegistryItem, ResourceBuildError
from iaccost.services.usage_engine import ResourceUsage


RESOURCE_TYPE = "aws_api_gateway_stage"


def cache_memory_label(size_gb: float) -> str:
    """Cache size as the catalog writes it: 0.5, 1.6, 6.1, 13.5, 28.4, 58.2, 118, 237."""
    return f"{size_gb:g}"


def build(node: AttributeNode, usage: ResourceUsage, graph: AttributeGraph) -> Optional[Resource]:
    region = aws_region(node)
    components = []

    if not node.is_empty("cache_cluster_size"):
        size = node.get_float("cache_cluster_size")
        if size is None:
            raise ResourceBuildError(f"Invalid cache_cluster_size for {node.address}: {node.get('cache_cluster_size')!r}")
        label = cache_memory_label(size)
        components.append(CostComponent(
            name=f"Cache memory ({label} GB)",
            unit="hours",
            hourly_quantity=1,
            product_filter=ProductFilter(
                vendor_name=VENDOR_NAME,
                service="AmazonApiGateway",
                product_family="Amazon API Gateway Cache",
                region=region,
                attribute_filters=[AttributeFilter("cacheMemorySizeGb", value=label)],
            ),
            price_filter=PriceFilter(purchase_option="on_demand"),
        ))

    return Resource(address=node.address, resource_type=RESOURCE_TYPE, cost_components=components)


def registry_item() -> RegistryItem:
    return RegistryItem(name=RESOURCE_TYPE, builder=build)
