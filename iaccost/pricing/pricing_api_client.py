"""
Pricing API client.
Queries a GraphQL pricing catalog; each batch is one POST carrying a JSON
array of GraphQL queries, answered by an array of results in the same order.
"""
from typing import Any, Dict, List, Optional
import logging

import httpx

from iaccost.core.config import config
from iaccost.domain.pricing_models import CatalogPrice, CatalogProduct, PriceQuery, QueryResult
from iaccost.pricing.catalog_client import PricingCatalogClient, PricingCatalogError
from iaccost.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerError


logger = logging.getLogger(__name__)


PRODUCTS_QUERY = """
query($productFilter: ProductFilter!, $priceFilter: PriceFilter) {
  products(filter: $productFilter) {
    productHash
    attributes { key value }
    prices(filter: $priceFilter) {
      priceHash
      USD
      unit
      purchaseOption
      description
      termLength
      termPurchaseOption
      termOfferingClass
      startUsageAmount
      endUsageAmount
    }
  }
}
"""


def _product_filter_variables(query: PriceQuery) -> Dict[str, Any]:
    product_filter = query.product_filter
    variables: Dict[str, Any] = {
        "vendorName": product_filter.vendor_name.lower(),
        "service": product_filter.service,
        "productFamily": product_filter.product_family,
        "attributeFilters": [
            {"key": item.key, "value": item.value} if item.value is not None
            else {"key": item.key, "value_regex": item.value_regex}
            for item in product_filter.attribute_filters
        ],
    }
    if product_filter.region is not None:
        variables["region"] = product_filter.region
    return variables


def _price_filter_variables(query: PriceQuery) -> Optional[Dict[str, Any]]:
    price_filter = query.price_filter
    if price_filter is None:
        return None
    fields = {
        "purchaseOption": price_filter.purchase_option,
        "unit": price_filter.unit,
        "description_regex": price_filter.description_regex,
        "termLength": price_filter.term_length,
        "termPurchaseOption": price_filter.term_purchase_option,
        "termOfferingClass": price_filter.term_offering_class,
        "startUsageAmount": price_filter.start_usage_amount,
        "endUsageAmount": price_filter.end_usage_amount,
    }
    return {key: value for key, value in fields.items() if value is not None}


class PricingAPIClient(PricingCatalogClient):
    """Client for a GraphQL pricing catalog."""

    name = "pricing_api"

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize pricing API client.

        Args:
            endpoint: GraphQL endpoint (defaults to PRICING_API_ENDPOINT)
            api_key: API key sent as X-Api-Key (defaults to PRICING_API_KEY)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            circuit_breaker: Breaker owned by this client (creates new if None)
        """
        self.endpoint = endpoint or config.PRICING_API_ENDPOINT
        self.api_key = api_key if api_key is not None else config.PRICING_API_KEY
        self.timeout = timeout or config.PRICING_TIMEOUT_SECONDS
        self.currency = config.CURRENCY
        self._transport = transport
        self.circuit_breaker = circuit_breaker or CircuitBreaker(self.name)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def _parse_result(self, item: Any) -> QueryResult:
        if not isinstance(item, dict):
            return QueryResult(error=f"Malformed catalog result: {item!r}")

        errors = item.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            return QueryResult(error=f"Catalog query failed: {messages}")

        products = []
        try:
            for raw_product in (item.get("data") or {}).get("products") or []:
                attributes = {
                    entry["key"]: entry["value"]
                    for entry in raw_product.get("attributes") or []
                }
                prices = [
                    CatalogPrice.from_dict(raw_price, self.currency)
                    for raw_price in raw_product.get("prices") or []
                ]
                products.append(CatalogProduct(
                    product_hash=str(raw_product.get("productHash", "")),
                    attributes=attributes,
                    prices=prices,
                ))
        except (KeyError, TypeError, ValueError, ArithmeticError) as error:
            logger.error(f"Error parsing catalog result: {error}")
            return QueryResult(error=f"Malformed catalog result: {error}")

        return QueryResult(products=products)

    async def batch_query(self, queries: List[PriceQuery]) -> List[QueryResult]:
        """
        Send one batch of queries.

        Args:
            queries: Price queries for this batch

        Returns:
            One QueryResult per query, in order

        Raises:
            PricingCatalogError: If the request fails or the breaker is open
        """
        if not queries:
            return []

        try:
            self.circuit_breaker.guard()
        except CircuitBreakerError as error:
            raise PricingCatalogError(str(error)) from error

        payload = [
            {
                "query": PRODUCTS_QUERY,
                "variables": {
                    "productFilter": _product_filter_variables(query),
                    "priceFilter": _price_filter_variables(query),
                },
            }
            for query in queries
        ]

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=self._headers())
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as error:
            self.circuit_breaker.record_failure()
            logger.error(f"Pricing API HTTP error: {error}")
            raise PricingCatalogError(
                f"Pricing API returned HTTP {error.response.status_code}"
            ) from error
        except httpx.RequestError as error:
            self.circuit_breaker.record_failure()
            logger.error(f"Pricing API request error: {error}")
            raise PricingCatalogError(f"Failed to connect to pricing API: {error}") from error
        except ValueError as error:
            self.circuit_breaker.record_failure()
            logger.error(f"Pricing API returned invalid JSON: {error}")
            raise PricingCatalogError("Pricing API returned invalid JSON") from error

        if not isinstance(data, list) or len(data) != len(queries):
            self.circuit_breaker.record_failure()
            raise PricingCatalogError(
                f"Pricing API returned {len(data) if isinstance(data, list) else 'no'} results "
                f"for {len(queries)} queries"
            )

        self.circuit_breaker.record_success()
        return [self._parse_result(item) for item in data]
