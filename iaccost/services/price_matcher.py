"""
Price matching engine.

Collects the product/price filters of every cost component, sends the
distinct ones to the pricing catalog in bounded concurrent batches and
writes the selected prices back onto the components.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from iaccost.core.config import config
from iaccost.domain.cost_models import CostComponent, PriceStatus, Resource
from iaccost.domain.pricing_models import PriceMatch, PriceQuery, QueryResult
from iaccost.pricing.catalog_client import PricingCatalogClient, PricingCatalogError


logger = logging.getLogger(__name__)


class PricingRun:
    """
    Per-run lookup cache.

    Maps a normalized filter key to the future of its catalog answer, so
    identical filters are queried once per run even when they are requested
    while the first lookup is still in flight. Never shared between runs.
    """

    def __init__(self):
        self.cache: Dict[str, "asyncio.Future[QueryResult]"] = {}
        self.queries_sent = 0
        self.cache_hits = 0

    def pending(self, key: str) -> Optional["asyncio.Future[QueryResult]"]:
        future = self.cache.get(key)
        if future is not None and future.cancelled():
            del self.cache[key]
            return None
        return future

    def forget(self, keys: Sequence[str]) -> None:
        """Drop unanswered lookups so a later call can retry them."""
        for key in keys:
            future = self.cache.get(key)
            if future is not None and not future.done():
                future.cancel()
                del self.cache[key]


@dataclass
class PricingOutcome:
    """What happened while pricing one set of resources."""
    components: int = 0
    distinct_queries: int = 0
    batches: int = 0
    failed_batches: int = 0
    cancelled: bool = False
    incomplete_resources: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def select_price(result: QueryResult) -> PriceMatch:
    """
    Pick one price from a catalog answer.

    The first product and its first price win, in catalog order; more than
    one candidate is reported through the match's warnings, never as an error.
    """
    if result.error:
        return PriceMatch(status=PriceStatus.ERROR, error=result.error)

    if not result.products:
        return PriceMatch(status=PriceStatus.NO_PRICE)

    product = result.products[0]
    match = PriceMatch(
        status=PriceStatus.NO_PRICE,
        product=product,
        product_count=len(result.products),
        price_count=len(product.prices),
    )
    if match.product_count > 1:
        match.warnings.append(
            f"{match.product_count} products matched, using product {product.product_hash}"
        )
    if not product.prices:
        return match

    match.price = product.prices[0]
    match.status = PriceStatus.PRICED
    if match.price_count > 1:
        match.warnings.append(
            f"{match.price_count} prices matched, using price {match.price.price_hash}"
        )
    return match


def apply_match(resource: Resource, component: CostComponent, match: PriceMatch) -> List[str]:
    """Write a price match onto a component; returns the warnings raised."""
    label = f"'{component.name}' of {resource.address}"
    messages = [f"Ambiguous price for {label}: {warning}" for warning in match.warnings]

    if match.status is PriceStatus.PRICED:
        component.set_price(match.price.amount, match.price.currency, match.price.price_hash)
    elif match.status is PriceStatus.ERROR:
        messages.append(f"Price lookup failed for {label}: {match.error}")
    else:
        messages.append(f"No price found for {label}")

    for message in messages:
        logger.warning(message)
        component.warnings.append(message)

    if match.status is not PriceStatus.PRICED:
        component.status = match.status
    return messages


class PriceMatchingEngine:
    """Resolves cost component prices against a pricing catalog."""

    def __init__(
        self,
        client: PricingCatalogClient,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        """
        Initialize price matching engine.

        Args:
            client: Pricing catalog to query
            batch_size: Queries per catalog request (defaults to PRICING_BATCH_SIZE)
            max_concurrency: Concurrent catalog requests (defaults to PRICING_MAX_CONCURRENCY)
        """
        self.client = client
        self.batch_size = batch_size or config.PRICING_BATCH_SIZE
        self.max_concurrency = max_concurrency or config.PRICING_MAX_CONCURRENCY

    async def _run_batch(
        self,
        run: PricingRun,
        keys: List[str],
        queries: List[PriceQuery],
        semaphore: asyncio.Semaphore,
        outcome: PricingOutcome,
        failures: List[str],
    ) -> None:
        futures = [run.cache[key] for key in keys]
        try:
            async with semaphore:
                logger.debug(f"Sending batch of {len(queries)} queries to {self.client.name}")
                results = await self.client.batch_query(queries)
                if len(results) != len(queries):
                    raise PricingCatalogError(
                        f"Catalog answered {len(results)} of {len(queries)} queries"
                    )
        except asyncio.CancelledError:
            run.forget(keys)
            raise
        except PricingCatalogError as error:
            outcome.failed_batches += 1
            failures.append(str(error))
            logger.error(f"Catalog batch of {len(queries)} queries failed: {error}")
            results = [QueryResult(error=str(error)) for _ in queries]
        except Exception as error:
            outcome.failed_batches += 1
            failures.append(str(error))
            logger.error(f"Unexpected error in catalog batch: {error}", exc_info=True)
            results = [QueryResult(error=f"Unexpected catalog error: {error}") for _ in queries]

        for future, result in zip(futures, results):
            if not future.done():
                future.set_result(result)

    async def match(
        self,
        resources: Sequence[Resource],
        run: Optional[PricingRun] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PricingOutcome:
        """
        Price every cost component of the given resources in place.

        Args:
            resources: Built resources (sub-resources are included)
            run: Lookup cache to reuse within one run (a new one if None)
            timeout: Seconds before in-flight lookups are abandoned (None or 0 = no limit)
            cancel_event: Setting this event abandons in-flight lookups

        Returns:
            PricingOutcome; on cancellation the components without an answer
            are CANCELLED and their top-level resources listed as incomplete

        Raises:
            PricingCatalogError: If every catalog batch of this call failed
        """
        run = run or PricingRun()
        outcome = PricingOutcome()

        # Slots in declaration order: (top-level resource, owner, component, key)
        slots: List[Tuple[Resource, Resource, CostComponent, str]] = []
        new_keys: List[str] = []
        new_queries: List[PriceQuery] = []
        waiting: Dict[str, "asyncio.Future[QueryResult]"] = {}
        loop = asyncio.get_running_loop()

        for resource in resources:
            for owner, component in resource.iter_components():
                query = PriceQuery(component.product_filter, component.price_filter)
                key = query.cache_key()
                slots.append((resource, owner, component, key))

                if key in waiting:
                    continue
                future = run.pending(key)
                if future is not None:
                    run.cache_hits += 1
                    logger.debug(f"Catalog cache hit for {key}")
                else:
                    future = loop.create_future()
                    run.cache[key] = future
                    new_keys.append(key)
                    new_queries.append(query)
                waiting[key] = future

        outcome.components = len(slots)
        outcome.distinct_queries = len(waiting)
        if not slots:
            return outcome

        semaphore = asyncio.Semaphore(self.max_concurrency)
        failures: List[str] = []
        tasks = []
        for start in range(0, len(new_queries), self.batch_size):
            tasks.append(self._run_batch(
                run,
                new_keys[start:start + self.batch_size],
                new_queries[start:start + self.batch_size],
                semaphore,
                outcome,
                failures,
            ))
        outcome.batches = len(tasks)
        run.queries_sent += len(new_queries)
        logger.info(
            f"Pricing {len(slots)} components with {len(new_queries)} new catalog queries "
            f"in {len(tasks)} batches ({len(waiting) - len(new_queries)} served from cache)"
        )

        # Shielded so cancelling this call never cancels a lookup another call shares
        shared = [asyncio.shield(future) for key, future in waiting.items() if key not in new_keys]
        dispatch = asyncio.ensure_future(asyncio.gather(*tasks, *shared, return_exceptions=True))

        watchers = {dispatch}
        stop = None
        if cancel_event is not None:
            stop = asyncio.ensure_future(cancel_event.wait())
            watchers.add(stop)

        done, _ = await asyncio.wait(
            watchers,
            timeout=timeout or None,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if stop is not None:
            stop.cancel()

        if dispatch not in done:
            outcome.cancelled = True
            dispatch.cancel()
            await asyncio.wait({dispatch})
            run.forget(new_keys)
            logger.warning("Pricing run cancelled before all catalog lookups finished")

        if outcome.batches and outcome.failed_batches == outcome.batches and not shared:
            raise PricingCatalogError(
                f"All {outcome.batches} catalog batches failed: {failures[-1]}"
            )

        incomplete: Set[str] = set()
        for resource, owner, component, key in slots:
            future = waiting[key]
            if not future.done() or future.cancelled():
                component.flag(PriceStatus.CANCELLED, f"Price lookup for '{component.name}' was cancelled")
                incomplete.add(resource.address)
                continue
            outcome.warnings.extend(apply_match(owner, component, select_price(future.result())))

        outcome.incomplete_resources = [
            resource.address for resource in resources if resource.address in incomplete
        ]
        return outcome
