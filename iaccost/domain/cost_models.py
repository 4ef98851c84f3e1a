"""
Domain models for cost estimation.
Defines cost components, their price lookups, resources and the estimate tree.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from iaccost.domain.usage_models import UsageItem


Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    """Convert to Decimal through str so floats keep their printed value."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a quantity")
    return Decimal(str(value))


def format_decimal(value: Optional[Decimal]) -> Optional[str]:
    """Fixed-point string for JSON output (None stays None)."""
    if value is None:
        return None
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


@dataclass(frozen=True)
class AttributeFilter:
    """Exact or pattern match on one catalog product attribute."""
    key: str
    value: Optional[str] = None
    value_regex: Optional[str] = None  # "/pattern/flags", flag i = case-insensitive

    def __post_init__(self):
        if (self.value is None) == (self.value_regex is None):
            raise ValueError(f"Attribute filter '{self.key}' needs exactly one of value or value_regex")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"key": self.key}
        if self.value is not None:
            result["value"] = self.value
        else:
            result["value_regex"] = self.value_regex
        return result


@dataclass(frozen=True)
class ProductFilter:
    """Query describing which catalog product prices a cost component."""
    vendor_name: str
    service: str
    product_family: str
    region: Optional[str] = None
    attribute_filters: Tuple[AttributeFilter, ...] = ()

    def __post_init__(self):
        # Accept lists from builders but store an immutable tuple
        object.__setattr__(self, "attribute_filters", tuple(self.attribute_filters))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_name": self.vendor_name,
            "service": self.service,
            "product_family": self.product_family,
            "region": self.region,
            "attribute_filters": [item.to_dict() for item in self.attribute_filters],
        }


@dataclass(frozen=True)
class PriceFilter:
    """Narrows a matched product's price list."""
    purchase_option: Optional[str] = None
    unit: Optional[str] = None
    description_regex: Optional[str] = None
    term_length: Optional[str] = None
    term_purchase_option: Optional[str] = None
    term_offering_class: Optional[str] = None
    start_usage_amount: Optional[str] = None
    end_usage_amount: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in self.__dict__.items() if value is not None}


class PriceStatus(Enum):
    """Outcome of pricing a single cost component."""
    PENDING = "pending"
    PRICED = "priced"
    NO_PRICE = "no_price_found"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class CostComponent:
    """
    One billable dimension of a resource.

    Exactly one of hourly_quantity / monthly_quantity may be set; when neither
    is set the component is priced but contributes nothing to totals.
    """
    name: str
    unit: str
    product_filter: ProductFilter
    price_filter: Optional[PriceFilter] = None
    unit_multiplier: Decimal = Decimal(1)
    hourly_quantity: Optional[Decimal] = None
    monthly_quantity: Optional[Decimal] = None

    # Filled in by the price matching and aggregation stages
    unit_price: Optional[Decimal] = None
    currency: Optional[str] = None
    price_hash: Optional[str] = None
    status: PriceStatus = PriceStatus.PENDING
    warnings: List[str] = field(default_factory=list)
    hourly_cost: Optional[Decimal] = None
    monthly_cost: Optional[Decimal] = None

    def __post_init__(self):
        if self.hourly_quantity is not None and self.monthly_quantity is not None:
            raise ValueError(
                f"Cost component '{self.name}' cannot have both hourly and monthly quantity"
            )
        self.unit_multiplier = to_decimal(self.unit_multiplier)
        self.hourly_quantity = to_decimal(self.hourly_quantity)
        self.monthly_quantity = to_decimal(self.monthly_quantity)

    @property
    def has_quantity(self) -> bool:
        return self.hourly_quantity is not None or self.monthly_quantity is not None

    @property
    def no_price_found(self) -> bool:
        return self.status is PriceStatus.NO_PRICE

    def set_price(self, unit_price: Decimal, currency: str, price_hash: Optional[str] = None) -> None:
        self.unit_price = unit_price
        self.currency = currency
        self.price_hash = price_hash
        self.status = PriceStatus.PRICED

    def flag(self, status: PriceStatus, message: Optional[str] = None) -> None:
        """Mark the component as not (fully) priced, keeping it in the result."""
        self.status = status
        if message:
            self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "unit": self.unit,
            "unit_multiplier": format_decimal(self.unit_multiplier),
            "hourly_quantity": format_decimal(self.hourly_quantity),
            "monthly_quantity": format_decimal(self.monthly_quantity),
            "unit_price": format_decimal(self.unit_price),
            "currency": self.currency,
            "price_hash": self.price_hash,
            "status": self.status.value,
            "no_price_found": self.no_price_found,
            "hourly_cost": format_decimal(self.hourly_cost),
            "monthly_cost": format_decimal(self.monthly_cost),
            "warnings": list(self.warnings),
        }


@dataclass
class Resource:
    """A typed resource produced by a builder, possibly with sub-resources."""
    address: str
    resource_type: str
    cost_components: List[CostComponent] = field(default_factory=list)
    sub_resources: List["Resource"] = field(default_factory=list)
    usage_schema: List[UsageItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    # Filled in by the aggregator
    hourly_cost: Optional[Decimal] = None
    monthly_cost: Optional[Decimal] = None

    @property
    def is_free(self) -> bool:
        """True when neither the resource nor its sub-resources declare any cost component."""
        return not self.cost_components and all(sub.is_free for sub in self.sub_resources)

    def iter_components(self) -> Iterator[Tuple["Resource", CostComponent]]:
        """Yield (owning resource, component) depth-first in declaration order."""
        for component in self.cost_components:
            yield self, component
        for sub_resource in self.sub_resources:
            yield from sub_resource.iter_components()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "address": self.address,
            "resource_type": self.resource_type,
            "hourly_cost": format_decimal(self.hourly_cost),
            "monthly_cost": format_decimal(self.monthly_cost),
            "is_free": self.is_free,
            "cost_components": [component.to_dict() for component in self.cost_components],
            "sub_resources": [sub.to_dict() for sub in self.sub_resources],
            "warnings": list(self.warnings),
        }


@dataclass
class SkippedResource:
    """Represents a resource that could not be built or priced."""
    address: str
    resource_type: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "address": self.address,
            "resource_type": self.resource_type,
            "reason": self.reason,
        }


@dataclass
class CostEstimate:
    """Represents a complete (or explicitly incomplete) cost estimate."""
    currency: str
    total_hourly_cost: Decimal
    total_monthly_cost: Decimal
    resources: List[Resource]
    skipped_resources: List[SkippedResource]
    pricing_timestamp: datetime
    complete: bool = True
    incomplete_resources: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        """Counts of resources and components by pricing outcome."""
        counts = {
            "total_resources": len(self.resources),
            "free_resources": 0,
            "priced_components": 0,
            "no_price_components": 0,
            "error_components": 0,
            "usage_dependent_components": 0,
            "skipped_resources": len(self.skipped_resources),
        }
        for resource in self.resources:
            if resource.is_free:
                counts["free_resources"] += 1
            for _, component in resource.iter_components():
                if component.status is PriceStatus.PRICED:
                    counts["priced_components"] += 1
                    if not component.has_quantity:
                        counts["usage_dependent_components"] += 1
                elif component.status is PriceStatus.NO_PRICE:
                    counts["no_price_components"] += 1
                elif component.status in (PriceStatus.ERROR, PriceStatus.CANCELLED):
                    counts["error_components"] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (resources keep declaration order)."""
        return {
            "currency": self.currency,
            "total_hourly_cost": format_decimal(self.total_hourly_cost),
            "total_monthly_cost": format_decimal(self.total_monthly_cost),
            "pricing_timestamp": self.pricing_timestamp.isoformat(),
            "complete": self.complete,
            "incomplete_resources": list(self.incomplete_resources),
            "summary": self.summary(),
            "resources": [resource.to_dict() for resource in self.resources],
            "skipped_resources": [resource.to_dict() for resource in self.skipped_resources],
            "warnings": list(self.warnings),
        }
