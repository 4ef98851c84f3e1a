"""
aws_acmpca_certificate_authority.

A flat monthly fee per private CA plus certificate issuance priced in
volume tiers; the number of certificates comes from usage.
"""
from decimal import Decimal
from typing import List, Optional, Tuple

from iaccost.domain.cost_models import AttributeFilter, CostComponent, PriceFilter, ProductFilter, Resource
from iaccost.domain.usage_models import UsageItem, UsageValueType
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.aws.common import VENDOR_NAME, aws_region
from iaccost.providers.registry import RegistryItem
from iaccost.services.usage_engine import ResourceUsage


RESOURCE_TYPE = "aws_acmpca_certificate_authority"

SERVICE_NAME = "AWSCertificateManager"
PRODUCT_FAMILY = "AWS Certificate Manager"

# (label, start usage amount, tier size or None for the last tier)
CERTIFICATE_TIERS: List[Tuple[str, int, Optional[int]]] = [
    ("first 1K", 0, 1000),
    ("next 9K", 1000, 9000),
    ("over 10K", 10000, None),
]

USAGE_SCHEMA = [
    UsageItem("monthly_requests", 0, UsageValueType.INT, "Private certificates issued per month."),
]


def split_into_tiers(quantity: Decimal) -> List[Decimal]:
    """Spread a monthly quantity over the tiers, first tier first."""
    remaining = quantity
    split = []
    for _, _, size in CERTIFICATE_TIERS:
        if size is None:
            split.append(max(remaining, Decimal(0)))
            break
        used = min(max(remaining, Decimal(0)), Decimal(size))
        split.append(used)
        remaining -= used
    return split


def _product_filter(region: str, usage_type: str) -> ProductFilter:
    return ProductFilter(
        vendor_name=VENDOR_NAME,
        service=SERVICE_NAME,
        product_family=PRODUCT_FAMILY,
        region=region,
        attribute_filters=[AttributeFilter("usagetype", value_regex=f"/{usage_type}/")],
    )


def _certificate_component(region: str, label: str, start: int, quantity: Optional[Decimal]) -> CostComponent:
    return CostComponent(
        name=f"Certificates ({label})",
        unit="requests",
        monthly_quantity=quantity,
        product_filter=_product_filter(region, "PrivateCertificatesIssued"),
        price_filter=PriceFilter(start_usage_amount=str(start)),
    )


def build(node: AttributeNode, usage: ResourceUsage, graph: AttributeGraph) -> Optional[Resource]:
    region = aws_region(node)

    components = [
        CostComponent(
            name="Private certificate authority",
            unit="months",
            monthly_quantity=1,
            product_filter=_product_filter(region, "PaidPrivateCA"),
            price_filter=PriceFilter(purchase_option="on_demand"),
        )
    ]

    monthly_requests = usage.explicit("monthly_requests")
    if monthly_requests is None:
        label, start, _ = CERTIFICATE_TIERS[0]
        components.append(_certificate_component(region, label, start, None))
    else:
        for (label, start, _), quantity in zip(
            CERTIFICATE_TIERS, split_into_tiers(Decimal(monthly_requests))
        ):
            if quantity > 0 or start == 0:
                components.append(_certificate_component(region, label, start, quantity))

    return Resource(
        address=node.address,
        resource_type=RESOURCE_TYPE,
        cost_components=components,
        usage_schema=list(USAGE_SCHEMA),
    )


def registry_item() -> RegistryItem:
    return RegistryItem(name=RESOURCE_TYPE, builder=build, usage_schema=USAGE_SCHEMA)
