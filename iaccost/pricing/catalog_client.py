"""
Pricing catalog client contract and factory.
"""
import logging
from abc import ABC, abstractmethod
from typing import List

from iaccost.core.config import config
from iaccost.domain.pricing_models import PriceQuery, QueryResult


logger = logging.getLogger(__name__)


class PricingCatalogError(Exception):
    """Raised when a catalog request fails as a whole (transport, protocol, breaker open)."""
    pass


class PricingCatalogClient(ABC):
    """
    A pricing catalog that answers batches of price queries.

    batch_query returns one QueryResult per query, in query order. A failure
    of a single query is reported in its QueryResult; a failure of the whole
    request raises PricingCatalogError.
    """

    name = "catalog"

    @abstractmethod
    async def batch_query(self, queries: List[PriceQuery]) -> List[QueryResult]:
        ...


def create_catalog_client() -> PricingCatalogClient:
    """
    Create the configured catalog client.

    A local catalog dump (PRICING_CATALOG_PATH) is preferred: it needs no
    network and answers instantly. Otherwise the GraphQL pricing API is used.
    """
    if config.PRICING_CATALOG_PATH:
        from iaccost.pricing.local_catalog import LocalCatalogClient

        logger.info(f"Using local pricing catalog at {config.PRICING_CATALOG_PATH}")
        return LocalCatalogClient.from_file(config.PRICING_CATALOG_PATH)

    from iaccost.pricing.pricing_api_client import PricingAPIClient

    logger.info(f"Using pricing API at {config.PRICING_API_ENDPOINT}")
    return PricingAPIClient()
