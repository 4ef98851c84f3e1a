"""
Product and price filter evaluation.

Pattern filters are written as "/pattern/flags" where flag i makes the match
case-insensitive; a pattern without slashes is used as-is.
"""
import re
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Dict, List, Optional, Pattern

from iaccost.domain.cost_models import AttributeFilter, PriceFilter, ProductFilter
from iaccost.domain.pricing_models import CatalogPrice, CatalogProduct


_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


@lru_cache(maxsize=1024)
def compile_value_regex(pattern: str) -> Pattern:
    """
    Compile a '/pattern/flags' expression.

    Raises:
        re.error: If the pattern is not a valid regular expression
    """
    body, flags = pattern, 0
    if len(pattern) >= 2 and pattern.startswith("/"):
        end = pattern.rfind("/")
        suffix = pattern[end + 1:]
        if end > 0 and all(flag in _FLAG_MAP for flag in suffix):
            body = pattern[1:end]
            for flag in suffix:
                flags |= _FLAG_MAP[flag]
    return re.compile(body, flags)


def attribute_filter_matches(attribute_filter: AttributeFilter, attributes: Dict[str, str]) -> bool:
    actual = attributes.get(attribute_filter.key)
    if actual is None:
        return False
    if attribute_filter.value is not None:
        return str(actual) == attribute_filter.value
    return compile_value_regex(attribute_filter.value_regex).search(str(actual)) is not None


def product_matches(product_filter: ProductFilter, product: CatalogProduct) -> bool:
    """True when the product satisfies every part of the filter."""
    if product.vendor_name is not None and (
        product.vendor_name.lower() != product_filter.vendor_name.lower()
    ):
        return False
    if product.service is not None and product.service != product_filter.service:
        return False
    if product.product_family is not None and product.product_family != product_filter.product_family:
        return False
    if product_filter.region is not None and (product.region or "") != product_filter.region:
        return False
    return all(
        attribute_filter_matches(attribute_filter, product.attributes)
        for attribute_filter in product_filter.attribute_filters
    )


def _same_amount(expected: str, actual: Optional[str]) -> bool:
    if actual is None:
        return False
    try:
        return Decimal(expected) == Decimal(actual)
    except InvalidOperation:
        return expected == actual


def price_matches(price_filter: Optional[PriceFilter], price: CatalogPrice) -> bool:
    """True when the price entry satisfies every field set on the filter."""
    if price_filter is None:
        return True
    if price_filter.purchase_option is not None and price.purchase_option != price_filter.purchase_option:
        return False
    if price_filter.unit is not None and price.unit != price_filter.unit:
        return False
    if price_filter.description_regex is not None and (
        price.description is None
        or compile_value_regex(price_filter.description_regex).search(price.description) is None
    ):
        return False
    if price_filter.term_length is not None and price.term_length != price_filter.term_length:
        return False
    if price_filter.term_purchase_option is not None and (
        price.term_purchase_option != price_filter.term_purchase_option
    ):
        return False
    if price_filter.term_offering_class is not None and (
        price.term_offering_class != price_filter.term_offering_class
    ):
        return False
    if price_filter.start_usage_amount is not None and not _same_amount(
        price_filter.start_usage_amount, price.start_usage_amount
    ):
        return False
    if price_filter.end_usage_amount is not None and not _same_amount(
        price_filter.end_usage_amount, price.end_usage_amount
    ):
        return False
    return True


def filter_prices(price_filter: Optional[PriceFilter], prices: List[CatalogPrice]) -> List[CatalogPrice]:
    """Prices of a product that satisfy the filter, in catalog order."""
    return [price for price in prices if price_matches(price_filter, price)]
