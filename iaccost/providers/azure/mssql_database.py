"""
azurerm_mssql_database.

DTU databases (Basic, S*, P*) are billed per day plus extra storage above the
included size; vCore databases by provisioned or serverless compute, storage,
an optional SQL licence and hyperscale read replicas.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from iaccost.core.config import config
from iaccost.domain.cost_models import AttributeFilter, CostComponent, PriceFilter, ProductFilter, Resource
from iaccost.domain.usage_models import UsageItem, UsageValueType
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.providers.registry import RegistryItem, ResourceBuildError
from iaccost.services.usage_engine import ResourceUsage


logger = logging.getLogger(__name__)

RESOURCE_TYPE = "azurerm_mssql_database"

VENDOR_NAME = "azure"
SERVICE_NAME = "SQL Database"
PRODUCT_FAMILY = "Databases"

SERVERLESS_TIER = "General Purpose - Serverless"
HYPERSCALE_TIER = "Hyperscale"

TIERS = {
    "GP": "General Purpose",
    "GP_S": SERVERLESS_TIER,
    "HS": HYPERSCALE_TIER,
    "BC": "Business Critical",
}

FAMILIES = {
    "Gen5": "Compute Gen5",
    "Gen4": "Compute Gen4",
    "M": "Compute M Series",
}

DTU_STORAGE_TIERS = {
    "p": ("Premium", 500),
    "s": ("Standard", 250),
}

# Days billed per month for DTU databases
DTU_DAYS_PER_MONTH = 30

DEFAULT_STORAGE_GB = 5

CONSUMPTION = PriceFilter(purchase_option="Consumption")

USAGE_SCHEMA = [
    UsageItem("extra_data_storage_gb", 0, UsageValueType.INT,
              "Extra data storage above the included size (DTU tiers)."),
    UsageItem("monthly_vcore_hours", 0, UsageValueType.INT,
              "vCore-hours consumed per month (serverless tier)."),
    UsageItem("long_term_retention_storage_gb", 0, UsageValueType.INT,
              "Long-term retention backup storage."),
]


@dataclass
class SkuConfig:
    """Parsed vCore SKU, e.g. GP_S_Gen5_2."""
    tier: str
    family: str
    cores: int


def parse_vcore_sku(address: str, sku: str) -> SkuConfig:
    """
    Parse a vCore SKU name of the form <tier>_<family>_<cores>.

    Raises:
        ResourceBuildError: If any part is not recognised
    """
    parts = sku.split("_")
    if len(parts) < 3:
        raise ResourceBuildError(f"Unrecognized MSSQL SKU format for resource {address}: {sku}")

    tier = TIERS.get("_".join(parts[:-2]))
    if tier is None:
        raise ResourceBuildError(f"Invalid tier in MSSQL SKU for resource {address}: {sku}")

    family = FAMILIES.get(parts[-2])
    if family is None:
        raise ResourceBuildError(f"Invalid family in MSSQL SKU for resource {address}: {sku}")

    if not parts[-1].isdigit():
        raise ResourceBuildError(f"Invalid core count in MSSQL SKU for resource {address}: {sku}")

    return SkuConfig(tier=tier, family=family, cores=int(parts[-1]))


def is_dtu_sku(sku: str) -> bool:
    lowered = sku.lower()
    return lowered == "basic" or lowered.startswith("s") or lowered.startswith("p")


def normalize_region(location: str) -> str:
    """'West Europe' -> 'westeurope'."""
    return re.sub(r"\s+", "", location).lower()


def lookup_region(node: AttributeNode, graph: AttributeGraph, reference_attributes: Sequence[str]) -> str:
    """Region from the node's location, else from the first referenced resource that has one."""
    location = node.get_str("location")
    if location:
        return normalize_region(location)

    for attribute in reference_attributes:
        referenced = graph.resolve_reference(node, attribute)
        if isinstance(referenced, list):
            referenced = referenced[0] if referenced else None
        if referenced is not None and referenced.get_str("location"):
            return normalize_region(referenced.get_str("location"))

    logger.warning(
        f"No location found for {node.address}, using default region {config.DEFAULT_AZURE_REGION}"
    )
    return config.DEFAULT_AZURE_REGION


def licence_region(region: str) -> str:
    if "usgov" in region:
        return "US Gov"
    if "china" in region:
        return "China"
    if "germany" in region:
        return "Germany"
    return "Global"


class MSSQLDatabase:
    """Cost model of one SQL database."""

    def __init__(
        self,
        address: str,
        region: str,
        sku: str,
        licence_type: str = "LicenseIncluded",
        max_size_gb: Optional[int] = None,
        read_replica_count: Optional[int] = None,
        zone_redundant: bool = False,
        sku_config: Optional[SkuConfig] = None,
        usage: Optional[ResourceUsage] = None,
    ):
        self.address = address
        self.region = region
        self.sku = sku
        self.licence_type = licence_type
        self.max_size_gb = max_size_gb
        self.read_replica_count = read_replica_count
        self.zone_redundant = zone_redundant
        self.sku_config = sku_config

        usage = usage or {}
        self.extra_data_storage_gb = _explicit(usage, "extra_data_storage_gb")
        self.monthly_vcore_hours = _explicit(usage, "monthly_vcore_hours")
        self.long_term_retention_storage_gb = _explicit(usage, "long_term_retention_storage_gb")

    def _product_filter(self, attribute_filters: List[AttributeFilter], region: Optional[str] = None) -> ProductFilter:
        return ProductFilter(
            vendor_name=VENDOR_NAME,
            service=SERVICE_NAME,
            product_family=PRODUCT_FAMILY,
            region=region or self.region,
            attribute_filters=attribute_filters,
        )

    def _sku_name(self, cores: int) -> str:
        name = f"{cores} vCore"
        if self.zone_redundant:
            name += " Zone Redundancy"
        return name

    def build(self) -> Resource:
        if self.sku_config is None:
            components = self.dtu_components()
        else:
            components = self.vcore_components()
        return Resource(
            address=self.address,
            resource_type=RESOURCE_TYPE,
            cost_components=components,
            usage_schema=list(USAGE_SCHEMA),
        )

    def vcore_components(self) -> List[CostComponent]:
        tier = self.sku_config.tier
        components = []

        if tier == SERVERLESS_TIER:
            components.append(self.serverless_compute())
        else:
            components.append(self.provisioned_compute())

        if tier == HYPERSCALE_TIER:
            components.append(self.read_replicas())

        if tier != SERVERLESS_TIER and self.licence_type.lower() == "licenseincluded":
            components.append(self.sql_licence())

        components.append(self.storage())

        if tier != HYPERSCALE_TIER:
            components.append(self.long_term_retention())

        return components

    def _compute_filters(self, cores: int) -> List[AttributeFilter]:
        return [
            AttributeFilter("productName", value_regex=f"/{self.sku_config.tier} - {self.sku_config.family}/"),
            AttributeFilter("skuName", value=self._sku_name(cores)),
        ]

    def provisioned_compute(self) -> CostComponent:
        return CostComponent(
            name=f"Compute (provisioned, {self.sku})",
            unit="hours",
            hourly_quantity=1,
            product_filter=self._product_filter(self._compute_filters(self.sku_config.cores)),
            price_filter=CONSUMPTION,
        )

    def serverless_compute(self) -> CostComponent:
        return CostComponent(
            name=f"Compute (serverless, {self.sku})",
            unit="vCore-hours",
            monthly_quantity=self.monthly_vcore_hours,
            product_filter=self._product_filter(self._compute_filters(1)),
            price_filter=CONSUMPTION,
        )

    def read_replicas(self) -> CostComponent:
        return CostComponent(
            name="Read replicas",
            unit="hours",
            hourly_quantity=self.read_replica_count,
            product_filter=self._product_filter(self._compute_filters(self.sku_config.cores)),
            price_filter=CONSUMPTION,
        )

    def sql_licence(self) -> CostComponent:
        return CostComponent(
            name="SQL license",
            unit="vCore-hours",
            hourly_quantity=self.sku_config.cores,
            product_filter=self._product_filter(
                [AttributeFilter("productName", value_regex=f"/{self.sku_config.tier} - SQL License/")],
                region=licence_region(self.region),
            ),
            price_filter=CONSUMPTION,
        )

    def storage(self) -> CostComponent:
        storage_tier = self.sku_config.tier
        if storage_tier == SERVERLESS_TIER:
            storage_tier = "General Purpose"

        sku_name = storage_tier
        if self.zone_redundant:
            sku_name += " Zone Redundancy"

        return CostComponent(
            name="Storage",
            unit="GB",
            monthly_quantity=self.max_size_gb if self.max_size_gb is not None else DEFAULT_STORAGE_GB,
            product_filter=self._product_filter([
                AttributeFilter("productName", value_regex=f"/{storage_tier} - Storage/"),
                AttributeFilter("skuName", value=sku_name),
                AttributeFilter("meterName", value_regex="/^Data Stored/"),
            ]),
        )

    def long_term_retention(self) -> CostComponent:
        return CostComponent(
            name="Long-term retention",
            unit="GB",
            monthly_quantity=self.long_term_retention_storage_gb,
            product_filter=self._product_filter([
                AttributeFilter("productName", value="SQL Database - LTR Backup Storage"),
                AttributeFilter("skuName", value="Backup RA-GRS"),
                AttributeFilter("meterName", value="RA-GRS Data Stored"),
            ]),
            price_filter=CONSUMPTION,
        )

    def dtu_components(self) -> List[CostComponent]:
        sku_name = self.sku.lower()
        if sku_name == "basic":
            sku_name = "b"

        components = [
            CostComponent(
                name=f"Compute ({self.sku.upper()})",
                unit="days",
                monthly_quantity=DTU_DAYS_PER_MONTH,
                product_filter=self._product_filter([
                    AttributeFilter("productName", value_regex="/^SQL Database Single/i"),
                    AttributeFilter("skuName", value_regex=f"/^{re.escape(sku_name)}$/i"),
                ]),
                price_filter=CONSUMPTION,
            )
        ]

        if sku_name != "b":
            components.append(self.extra_data_storage())

        components.append(self.long_term_retention())
        return components

    def extra_data_storage(self) -> CostComponent:
        tier_name, included_gb = DTU_STORAGE_TIERS[self.sku.lower()[0]]

        storage_gb = None
        if self.max_size_gb is not None and self.max_size_gb - included_gb >= 0:
            storage_gb = self.max_size_gb - included_gb

        if self.extra_data_storage_gb is not None:
            storage_gb = self.extra_data_storage_gb

        return CostComponent(
            name="Extra data storage",
            unit="GB",
            monthly_quantity=storage_gb,
            product_filter=self._product_filter([
                AttributeFilter("productName", value_regex=f"/SQL Database {tier_name} - Storage/i"),
                AttributeFilter("skuName", value_regex=f"/^{tier_name}$/i"),
                AttributeFilter("meterName", value="Data Stored"),
            ]),
            price_filter=CONSUMPTION,
        )


def _explicit(usage, key: str):
    if isinstance(usage, ResourceUsage):
        return usage.explicit(key)
    return usage.get(key)


def build(node: AttributeNode, usage: ResourceUsage, graph: AttributeGraph) -> Optional[Resource]:
    sku = node.get_str("sku_name")
    if not sku:
        raise ResourceBuildError(f"No sku_name set for {node.address}")

    sku_config = None
    if not is_dtu_sku(sku):
        sku_config = parse_vcore_sku(node.address, sku)

    licence_type = node.get_str("license_type") or "LicenseIncluded"

    return MSSQLDatabase(
        address=node.address,
        region=lookup_region(node, graph, ["server_id"]),
        sku=sku,
        licence_type=licence_type,
        max_size_gb=node.get_int("max_size_gb"),
        read_replica_count=node.get_int("read_replica_count"),
        zone_redundant=node.get_bool("zone_redundant"),
        sku_config=sku_config,
        usage=usage,
    ).build()


def registry_item() -> RegistryItem:
    return RegistryItem(
        name=RESOURCE_TYPE,
        builder=build,
        usage_schema=USAGE_SCHEMA,
        reference_attributes=["server_id"],
        notes=["Multiple matching compute products are expected for vCore SKUs; the first is used."],
    )
