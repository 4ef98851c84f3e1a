"""
aws_lightsail_instance: one hourly charge determined by the bundle.

Bundle ids look like "medium_2_0" or "medium_win_2_0"; the size prefix
selects memory and "_win_" selects Windows.
"""
from typing import Optional

from iaccost.domain.cost_models import AttributeFilter, CostComponent, PriceFilter, ProductFilter, Resource
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.aws.common import VENDOR_NAME, aws_region
from iaccost.providers.registry import RegistryItem, ResourceBuildError
from iaccost.services.usage_engine import ResourceUsage


RESOURCE_TYPE = "aws_lightsail_instance"

BUNDLE_MEMORY = {
    "nano": "0.5GB",
    "micro": "1GB",
    "small": "2GB",
    "medium": "4GB",
    "large": "8GB",
    "xlarge": "16GB",
    "2xlarge": "32GB",
}


def build(node: AttributeNode, usage: ResourceUsage, graph: AttributeGraph) -> Optional[Resource]:
    bundle_id = node.get_str("bundle_id")
    size = bundle_id.split("_")[0]
    memory = BUNDLE_MEMORY.get(size)
    if memory is None:
        raise ResourceBuildError(f"Unsupported Lightsail bundle for {node.address}: {bundle_id!r}")

    operating_system = "Windows" if "_win_" in bundle_id else "Linux"

    component = CostComponent(
        name=f"Virtual server ({operating_system})",
        unit="hours",
        hourly_quantity=1,
        product_filter=ProductFilter(
            vendor_name=VENDOR_NAME,
            service="AmazonLightsail",
            product_family="Lightsail Instance",
            region=aws_region(node),
            attribute_filters=[
                AttributeFilter("memory", value=memory),
                AttributeFilter("operatingSystem", value=operating_system),
            ],
        ),
        price_filter=PriceFilter(purchase_option="on_demand"),
    )
    return Resource(address=node.address, resource_type=RESOURCE_TYPE, cost_components=[component])


def registry_item() -> RegistryItem:
    return RegistryItem(name=RESOURCE_TYPE, builder=build)
