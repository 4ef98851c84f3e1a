"""
aws_s3_bucket.

Every storage class becomes a sub-resource with its own storage and request
components. Usage is nested per class, e.g.

    standard:
      storage_gb: 100
      monthly_tier_1_requests: 20000
"""
from dataclasses import dataclass
from typing import List, Optional

from iaccost.domain.cost_models import AttributeFilter, CostComponent, ProductFilter, Resource
from iaccost.domain.usage_models import UsageItem, UsageValueType
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.aws.common import VENDOR_NAME, aws_region
from iaccost.providers.registry import RegistryItem
from iaccost.services.usage_engine import ResourceUsage


RESOURCE_TYPE = "aws_s3_bucket"

SERVICE_NAME = "AmazonS3"


@dataclass(frozen=True)
class StorageClass:
    usage_key: str
    name: str
    volume_type: str
    request_prefix: str


STORAGE_CLASSES = [
    StorageClass("standard", "Standard", "Standard", "Requests"),
    StorageClass("standard_infrequent_access", "Standard - infrequent access",
                 "Standard - Infrequent Access", "Requests-SIA"),
    StorageClass("glacier", "Glacier flexible retrieval", "Amazon Glacier", "Requests-GLACIER"),
]


def _class_usage_items(storage_class: StorageClass) -> List[UsageItem]:
    return [
        UsageItem("storage_gb", 0.0, UsageValueType.FLOAT,
                  f"Total storage in {storage_class.name} (GB)."),
        UsageItem("monthly_tier_1_requests", 0, UsageValueType.INT,
                  "PUT, COPY, POST, LIST requests per month."),
        UsageItem("monthly_tier_2_requests", 0, UsageValueType.INT,
                  "GET, SELECT and other requests per month."),
    ]


USAGE_SCHEMA = [
    UsageItem(storage_class.usage_key, _class_usage_items(storage_class), UsageValueType.OBJECT)
    for storage_class in STORAGE_CLASSES
]


def _explicit(usage: Optional[ResourceUsage], key: str):
    if usage is None:
        return None
    return usage.explicit(key)


def _storage_class_resource(
    address: str,
    region: str,
    storage_class: StorageClass,
    usage: Optional[ResourceUsage],
) -> Resource:
    def product_filter(product_family: str, attribute_filter: AttributeFilter) -> ProductFilter:
        return ProductFilter(
            vendor_name=VENDOR_NAME,
            service=SERVICE_NAME,
            product_family=product_family,
            region=region,
            attribute_filters=[attribute_filter],
        )

    return Resource(
        address=f"{address}.{storage_class.name}",
        resource_type=RESOURCE_TYPE,
        cost_components=[
            CostComponent(
                name="Storage",
                unit="GB",
                monthly_quantity=_explicit(usage, "storage_gb"),
                product_filter=product_filter(
                    "Storage", AttributeFilter("volumeType", value=storage_class.volume_type)
                ),
            ),
            CostComponent(
                name="PUT, COPY, POST, LIST requests",
                unit="requests",
                monthly_quantity=_explicit(usage, "monthly_tier_1_requests"),
                product_filter=product_filter(
                    "API Request",
                    AttributeFilter("usagetype", value_regex=f"/{storage_class.request_prefix}-Tier1$/"),
                ),
            ),
            CostComponent(
                name="GET, SELECT, and all other requests",
                unit="requests",
                monthly_quantity=_explicit(usage, "monthly_tier_2_requests"),
                product_filter=product_filter(
                    "API Request",
                    AttributeFilter("usagetype", value_regex=f"/{storage_class.request_prefix}-Tier2$/"),
                ),
            ),
        ],
    )


def build(node: AttributeNode, usage: ResourceUsage, graph: AttributeGraph) -> Optional[Resource]:
    region = aws_region(node)
    sub_resources = [
        _storage_class_resource(node.address, region, storage_class, usage.get(storage_class.usage_key))
        for storage_class in STORAGE_CLASSES
    ]
    return Resource(
        address=node.address,
        resource_type=RESOURCE_TYPE,
        sub_resources=sub_resources,
        usage_schema=list(USAGE_SCHEMA),
    )


def registry_item() -> RegistryItem:
    return RegistryItem(name=RESOURCE_TYPE, builder=build, usage_schema=USAGE_SCHEMA)
