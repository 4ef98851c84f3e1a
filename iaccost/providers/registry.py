"""
Resource registry.
Maps resource type tags to the builders that turn graph nodes into priced resources.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from iaccost.domain.cost_models import Resource
from iaccost.domain.usage_models import UsageItem
from iaccost.graph.attribute_graph import AttributeGraph, AttributeNode
from iaccost.services.usage_engine import ResourceUsage


logger = logging.getLogger(__name__)


# build(node, usage, graph) -> Resource, or None when the node cannot be priced
Builder = Callable[[AttributeNode, ResourceUsage, AttributeGraph], Optional[Resource]]


class ResourceBuildError(Exception):
    """Raised by a builder that cannot interpret a node (e.g. unsupported SKU)."""
    pass


class RegistryItem:
    """
    Registry entry for one resource type.

    Attributes:
        name: Resource type tag, e.g. "azurerm_mssql_database"
        builder: Callable constructing the Resource
        usage_schema: Usage keys the resource understands
        reference_attributes: Attribute names holding references to other resources
        notes: Free-form notes shown in the resource listing
    """

    def __init__(
        self,
        name: str,
        builder: Builder,
        usage_schema: Optional[Sequence[UsageItem]] = None,
        reference_attributes: Optional[Sequence[str]] = None,
        notes: Optional[Sequence[str]] = None,
        free: bool = False,
    ):
        self.name = name
        self.builder = builder
        self.usage_schema = list(usage_schema or [])
        self.reference_attributes = list(reference_attributes or [])
        self.notes = list(notes or [])
        self.free = free

    def __repr__(self) -> str:
        return f"RegistryItem(name={self.name!r}, references={self.reference_attributes})"

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "free": self.free,
            "reference_attributes": list(self.reference_attributes),
            "usage_keys": [item.key for item in self.usage_schema],
            "notes": list(self.notes),
        }


class ResourceRegistry:
    """Resource type tag -> RegistryItem. The engine never depends on how many are registered."""

    def __init__(self, items: Optional[Iterable[RegistryItem]] = None):
        self._items: Dict[str, RegistryItem] = {}
        for item in items or []:
            self.register(item)

    def register(self, item: RegistryItem) -> None:
        if item.name in self._items:
            raise ValueError(f"Resource type already registered: {item.name}")
        self._items[item.name] = item

    def get(self, resource_type: str) -> Optional[RegistryItem]:
        return self._items.get(resource_type)

    def __contains__(self, resource_type: str) -> bool:
        return resource_type in self._items

    def __len__(self) -> int:
        return len(self._items)

    def supported_types(self) -> List[str]:
        return sorted(self._items)

    def reference_attributes(self) -> Dict[str, List[str]]:
        """Reference attribute names per type, as needed by the graph loader."""
        return {
            name: list(item.reference_attributes)
            for name, item in self._items.items()
            if item.reference_attributes
        }

    def items(self) -> List[RegistryItem]:
        return [self._items[name] for name in self.supported_types()]


_default_registry: Optional[ResourceRegistry] = None


def get_default_registry() -> ResourceRegistry:
    """Registry with every builder shipped in iaccost.providers (built once)."""
    global _default_registry
    if _default_registry is None:
        from iaccost.providers.aws import acmpca_certificate_authority, api_gateway_stage
        from iaccost.providers.aws import lightsail_instance, s3_bucket
        from iaccost.providers.azure import mssql_database
        from iaccost.providers import free_resources

        registry = ResourceRegistry()
        for module in (
            acmpca_certificate_authority,
            api_gateway_stage,
            lightsail_instance,
            s3_bucket,
            mssql_database,
        ):
            registry.register(module.registry_item())
        for item in free_resources.registry_items():
            registry.register(item)

        logger.info(f"Registered {len(registry)} resource types")
        _default_registry = registry
    return _default_registry
