"""
Domain models for pricing catalog queries and matches.
"""
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from iaccost.domain.cost_models import PriceFilter, PriceStatus, ProductFilter


@dataclass(frozen=True)
class PriceQuery:
    """A product filter / price filter pair sent to the catalog."""
    product_filter: ProductFilter
    price_filter: Optional[PriceFilter] = None

    def cache_key(self) -> str:
        """
        Normalized key: None fields dropped, attribute filters sorted,
        vendor lower-cased as every catalog client does. Region stays as
        written since catalogs match it exactly. Equal keys share one
        catalog query per run.
        """
        product = self.product_filter.to_dict()
        product["vendor_name"] = (product["vendor_name"] or "").lower()
        product["attribute_filters"] = sorted(
            product["attribute_filters"],
            key=lambda item: (item["key"], json.dumps(item, sort_keys=True)),
        )
        product = {key: value for key, value in product.items() if value not in (None, [])}
        price = self.price_filter.to_dict() if self.price_filter else {}
        return json.dumps({"product": product, "price": price}, sort_keys=True)


@dataclass
class CatalogPrice:
    """One price entry of a catalog product."""
    price_hash: str
    amount: Decimal
    currency: str = "USD"
    unit: Optional[str] = None
    purchase_option: Optional[str] = None
    description: Optional[str] = None
    term_length: Optional[str] = None
    term_purchase_option: Optional[str] = None
    term_offering_class: Optional[str] = None
    start_usage_amount: Optional[str] = None
    end_usage_amount: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], currency: str = "USD") -> "CatalogPrice":
        amount = data.get(currency, data.get("amount"))
        if amount is None:
            raise ValueError(f"Price entry has no {currency} amount: {data!r}")
        return cls(
            price_hash=str(data.get("priceHash") or data.get("price_hash") or ""),
            amount=Decimal(str(amount)),
            currency=currency,
            unit=data.get("unit"),
            purchase_option=data.get("purchaseOption") or data.get("purchase_option"),
            description=data.get("description"),
            term_length=data.get("termLength") or data.get("term_length"),
            term_purchase_option=data.get("termPurchaseOption") or data.get("term_purchase_option"),
            term_offering_class=data.get("termOfferingClass") or data.get("term_offering_class"),
            start_usage_amount=_optional_str(data.get("startUsageAmount", data.get("start_usage_amount"))),
            end_usage_amount=_optional_str(data.get("endUsageAmount", data.get("end_usage_amount"))),
        )


@dataclass
class CatalogProduct:
    """A catalog product with its attributes and price list."""
    product_hash: str
    attributes: Dict[str, str]
    prices: List[CatalogPrice] = field(default_factory=list)
    vendor_name: Optional[str] = None
    service: Optional[str] = None
    product_family: Optional[str] = None
    region: Optional[str] = None


@dataclass
class QueryResult:
    """Catalog answer to one PriceQuery: the matching products, or a per-query error."""
    products: List[CatalogProduct] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class PriceMatch:
    """The price selected for one query, with how it was selected."""
    status: PriceStatus
    product: Optional[CatalogProduct] = None
    price: Optional[CatalogPrice] = None
    product_count: int = 0
    price_count: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
