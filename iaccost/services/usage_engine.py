"""
Usage schema engine.

Matches usage-file entries to resource addresses and resolves every key of a
resource's usage schema to an explicit value or its declared default.
"""
import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Sequence

from iaccost.domain.usage_models import UsageItem, UsageSpec, UsageValueType
from iaccost.graph.address import AddressParseError, ResourceAddress


logger = logging.getLogger(__name__)

_MISSING = object()


class UsageValueError(Exception):
    """Raised when a usage value cannot be coerced to its declared type."""

    def __init__(self, address: str, key: str, message: str):
        self.address = address
        self.key = key
        super().__init__(f"Invalid usage value for {address}, key '{key}': {message}")


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into base key by key; nested mappings are merged, not replaced."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(dict(current), dict(value))
        else:
            merged[key] = value
    return merged


class UsageData:
    """Raw usage parameters that apply to one resource address."""

    def __init__(self, address: str, attributes: Optional[Dict[str, Any]] = None):
        self.address = address
        self.attributes: Dict[str, Any] = attributes or {}

    def __repr__(self) -> str:
        return f"UsageData(address={self.address!r}, keys={sorted(self.attributes)})"

    def is_empty(self) -> bool:
        return not self.attributes


def usage_for_address(spec: Optional[UsageSpec], address: str) -> UsageData:
    """
    Collect the usage entry for an address.

    Precedence (most specific wins, nested values merged key by key):
    exact address, then the wildcard entry base[*], then the un-indexed base address.

    Args:
        spec: Loaded usage specification (None means no usage file)
        address: Concrete resource address

    Returns:
        UsageData with the merged raw parameters
    """
    if spec is None or not spec.resource_usage:
        return UsageData(address)

    try:
        parsed = ResourceAddress.parse(address)
    except AddressParseError:
        return UsageData(address, dict(spec.entry(address) or {}))

    layers: List[Dict[str, Any]] = []
    if parsed.has_index:
        for key in (parsed.base_address, parsed.wildcard_address):
            entry = spec.entry(key)
            if isinstance(entry, Mapping):
                layers.append(dict(entry))

    exact = spec.entry(str(parsed)) or spec.entry(address)
    if isinstance(exact, Mapping):
        layers.append(dict(exact))

    merged: Dict[str, Any] = {}
    for layer in layers:
        merged = deep_merge(merged, layer)
    return UsageData(address, merged)


class ResourceUsage(Mapping):
    """
    Usage values resolved against a schema.

    Every schema key maps to the user's value or the declared default;
    explicit() tells the two apart for usage-driven quantities.
    """

    def __init__(self, address: str, values: Dict[str, Any], explicit_keys: Sequence[str]):
        self.address = address
        self._values = values
        self._explicit = set(explicit_keys)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResourceUsage(address={self.address!r}, values={self._values!r})"

    def is_explicit(self, key: str) -> bool:
        return key in self._explicit

    def explicit(self, key: str) -> Any:
        """The user-supplied value, or None when the key fell back to its default."""
        if key not in self._explicit:
            return None
        return self._values[key]

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: value.to_dict() if isinstance(value, ResourceUsage) else value
            for key, value in self._values.items()
        }


def _type_error(item: UsageItem, raw: Any) -> str:
    expected = item.value_type.value
    if item.value_type is UsageValueType.ENUM:
        expected = f"one of {item.allowed_values}"
    return f"expected {expected}, got {raw!r}"


def coerce_usage_value(item: UsageItem, raw: Any, address: str, path: str) -> Any:
    """
    Coerce a raw usage value to the item's declared type.

    Raises:
        UsageValueError: If the value cannot be represented in the declared type
    """
    value_type = item.value_type

    if raw is None:
        return item.default_value

    if value_type is UsageValueType.INT:
        if isinstance(raw, bool):
            raise UsageValueError(address, path, _type_error(item, raw))
        if isinstance(raw, int):
            return raw
        if isinstance(raw, float) and raw.is_integer():
            return int(raw)
        if isinstance(raw, str):
            try:
                number = float(raw.strip().replace("_", ""))
            except ValueError as error:
                raise UsageValueError(address, path, _type_error(item, raw)) from error
            if number.is_integer():
                return int(number)
        raise UsageValueError(address, path, _type_error(item, raw))

    if value_type is UsageValueType.FLOAT:
        if isinstance(raw, bool):
            raise UsageValueError(address, path, _type_error(item, raw))
        if isinstance(raw, (int, float)):
            return float(raw)
        if isinstance(raw, str):
            try:
                return float(raw.strip().replace("_", ""))
            except ValueError as error:
                raise UsageValueError(address, path, _type_error(item, raw)) from error
        raise UsageValueError(address, path, _type_error(item, raw))

    if value_type is UsageValueType.STRING:
        if isinstance(raw, (Mapping, list)):
            raise UsageValueError(address, path, _type_error(item, raw))
        return str(raw)

    if value_type is UsageValueType.ENUM:
        if isinstance(raw, (Mapping, list, bool)):
            raise UsageValueError(address, path, _type_error(item, raw))
        for allowed in item.allowed_values:
            if str(raw).lower() == allowed.lower():
                return allowed
        raise UsageValueError(address, path, _type_error(item, raw))

    raise UsageValueError(address, path, f"unsupported value type {value_type}")


def _resolve_items(
    schema: Sequence[UsageItem],
    raw_values: Dict[str, Any],
    address: str,
    prefix: str,
) -> ResourceUsage:
    values: Dict[str, Any] = {}
    explicit: List[str] = []
    known = {item.key for item in schema}

    for key in raw_values:
        if key not in known:
            logger.warning(f"Unknown usage key '{prefix}{key}' for {address} is ignored")

    for item in schema:
        raw = raw_values.get(item.key, _MISSING)
        path = f"{prefix}{item.key}"

        if item.value_type is UsageValueType.OBJECT:
            if raw is _MISSING or raw is None:
                nested: Dict[str, Any] = {}
            elif isinstance(raw, Mapping):
                nested = dict(raw)
                explicit.append(item.key)
            else:
                raise UsageValueError(address, path, _type_error(item, raw))
            values[item.key] = _resolve_items(item.children, nested, address, f"{path}.")
            continue

        if raw is _MISSING or raw is None:
            values[item.key] = item.default_value
        else:
            values[item.key] = coerce_usage_value(item, raw, address, path)
            explicit.append(item.key)

    return ResourceUsage(address, values, explicit)


def resolve_usage(schema: Sequence[UsageItem], usage: Optional[UsageData]) -> ResourceUsage:
    """
    Resolve every schema key for a resource.

    Args:
        schema: The resource's usage schema
        usage: Raw usage matched to the resource (may be empty)

    Returns:
        ResourceUsage with a value for every schema key

    Raises:
        UsageValueError: If a supplied value has the wrong type
    """
    address = usage.address if usage else ""
    raw_values = usage.attributes if usage else {}
    return _resolve_items(schema, raw_values, address, "")
