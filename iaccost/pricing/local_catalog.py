"""
Local pricing catalog.
Answers price queries from a catalog dump on disk instead of the network.

Expected file format (.json or .json.gz), either a list of products or
{"products": [...]}, each product like:

    {
      "productHash": "...",
      "vendorName": "azure",
      "service": "SQL Database",
      "productFamily": "Databases",
      "region": "eastus",
      "attributes": {"skuName": "4 vCore", "productName": "..."},
      "prices": [{"priceHash": "...", "USD": "0.5", "unit": "1 Hour",
                  "purchaseOption": "Consumption"}]
    }
"""
import gzip
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from iaccost.core.config import config
from iaccost.domain.pricing_models import CatalogPrice, CatalogProduct, PriceQuery, QueryResult
from iaccost.pricing.catalog_client import PricingCatalogClient, PricingCatalogError
from iaccost.pricing.filters import filter_prices, product_matches


logger = logging.getLogger(__name__)


class LocalCatalogClient(PricingCatalogClient):
    """
    In-memory catalog indexed by (vendor, service, product family, region).

    Product order within the dump is preserved, so ambiguous queries always
    resolve to the same product.
    """

    name = "local_catalog"

    def __init__(self, products: List[CatalogProduct]):
        """
        Initialize local catalog.

        Args:
            products: Catalog products in catalog order
        """
        self.products = list(products)
        # (vendor, service, family, region) -> products
        self._index: Dict[Tuple[str, str, str, str], List[CatalogProduct]] = {}
        # (vendor, service, family) -> products in any region
        self._index_any_region: Dict[Tuple[str, str, str], List[CatalogProduct]] = {}

        for product in self.products:
            base_key = (
                (product.vendor_name or "").lower(),
                product.service or "",
                product.product_family or "",
            )
            self._index_any_region.setdefault(base_key, []).append(product)
            self._index.setdefault(base_key + (product.region or "",), []).append(product)

        logger.info(f"Indexed {len(self.products)} catalog products")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "LocalCatalogClient":
        """
        Load a catalog dump.

        Raises:
            PricingCatalogError: If the file is missing or unreadable
        """
        file_path = Path(path)
        if not file_path.exists():
            raise PricingCatalogError(f"Pricing catalog file not found: {file_path}")

        try:
            if file_path.suffix == ".gz":
                with gzip.open(file_path, "rt", encoding="utf-8") as handle:
                    data = json.load(handle)
            else:
                with open(file_path, "r", encoding="utf-8") as handle:
                    data = json.load(handle)
        except (json.JSONDecodeError, OSError, gzip.BadGzipFile) as error:
            logger.error(f"Error loading pricing catalog {file_path}: {error}")
            raise PricingCatalogError(f"Cannot read pricing catalog {file_path}: {error}") from error

        return cls.from_dicts(data.get("products", []) if isinstance(data, dict) else data)

    @classmethod
    def from_dicts(cls, raw_products: List[Dict[str, Any]]) -> "LocalCatalogClient":
        products = []
        for position, raw in enumerate(raw_products):
            try:
                products.append(_parse_product(raw, position))
            except (KeyError, TypeError, ValueError, ArithmeticError) as error:
                raise PricingCatalogError(f"Invalid catalog product at position {position}: {error}") from error
        return cls(products)

    def _candidates(self, query: PriceQuery) -> List[CatalogProduct]:
        product_filter = query.product_filter
        base_key = (
            product_filter.vendor_name.lower(),
            product_filter.service,
            product_filter.product_family,
        )
        if product_filter.region is None:
            return self._index_any_region.get(base_key, [])
        return self._index.get(base_key + (product_filter.region,), [])

    def query(self, query: PriceQuery) -> QueryResult:
        """Answer one query: matching products with their prices narrowed by the price filter."""
        try:
            matches = [
                product for product in self._candidates(query)
                if product_matches(query.product_filter, product)
            ]
        except re.error as error:
            return QueryResult(error=f"Invalid pattern in product filter: {error}")

        try:
            return QueryResult(products=[
                CatalogProduct(
                    product_hash=product.product_hash,
                    attributes=product.attributes,
                    prices=filter_prices(query.price_filter, product.prices),
                    vendor_name=product.vendor_name,
                    service=product.service,
                    product_family=product.product_family,
                    region=product.region,
                )
                for product in matches
            ])
        except re.error as error:
            return QueryResult(error=f"Invalid pattern in price filter: {error}")

    async def batch_query(self, queries: List[PriceQuery]) -> List[QueryResult]:
        return [self.query(query) for query in queries]


def _parse_product(raw: Dict[str, Any], position: int) -> CatalogProduct:
    attributes = raw.get("attributes") or {}
    if isinstance(attributes, list):
        attributes = {entry["key"]: entry["value"] for entry in attributes}

    currency = config.CURRENCY
    return CatalogProduct(
        product_hash=str(raw.get("productHash") or raw.get("product_hash") or position),
        attributes={str(key): str(value) for key, value in attributes.items()},
        prices=[CatalogPrice.from_dict(price, currency) for price in raw.get("prices") or []],
        vendor_name=raw.get("vendorName") or raw.get("vendor_name"),
        service=raw.get("service"),
        product_family=raw.get("productFamily") or raw.get("product_family"),
        region=_optional_region(raw.get("region")),
    )


def _optional_region(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)
