"""
Domain models for usage estimates.
Defines usage schema entries and the loaded usage specification.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class UsageValueType(Enum):
    """Value types a usage key can declare."""
    INT = "int"
    FLOAT = "float"
    STRING = "str"
    ENUM = "enum"
    OBJECT = "object"  # Nested sub-schema, default_value is a list of UsageItem


@dataclass(frozen=True)
class UsageItem:
    """A usage key a resource understands, with its default and type."""
    key: str
    default_value: Any
    value_type: UsageValueType
    description: str = ""
    allowed_values: Optional[List[str]] = None

    def __post_init__(self):
        if self.value_type is UsageValueType.OBJECT:
            if not isinstance(self.default_value, (list, tuple)) or not all(
                isinstance(item, UsageItem) for item in self.default_value
            ):
                raise ValueError(f"Usage key '{self.key}' of type object needs a list of UsageItem")
        if self.value_type is UsageValueType.ENUM and not self.allowed_values:
            raise ValueError(f"Usage key '{self.key}' of type enum needs allowed_values")

    @property
    def children(self) -> List["UsageItem"]:
        if self.value_type is UsageValueType.OBJECT:
            return list(self.default_value)
        return []

    def default_tree(self) -> Any:
        """Default value with nested objects expanded to plain dicts."""
        if self.value_type is UsageValueType.OBJECT:
            return {child.key: child.default_tree() for child in self.children}
        return self.default_value


@dataclass
class UsageSpec:
    """
    A loaded usage specification.

    resource_usage maps an address pattern (possibly ending in [*]) to a nested
    mapping of usage parameters. Treated as immutable once loaded.
    """
    version: str
    resource_usage: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def empty(cls, version: str = "0.1") -> "UsageSpec":
        return cls(version=version, resource_usage={})

    def entry(self, address: str) -> Optional[Dict[str, Any]]:
        return self.resource_usage.get(address)

    def __len__(self) -> int:
        return len(self.resource_usage)
