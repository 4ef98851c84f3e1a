"""
Attribute graph and reference resolver.

The graph is an address-keyed, read-only view over the planned resources.
Relations between nodes are stored as address strings only; the resolver
turns them into nodes at lookup time.
"""
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from iaccost.graph.address import (
    AddressParseError,
    ResourceAddress,
    index_sort_key,
)


logger = logging.getLogger(__name__)

_MISSING = object()

ReferenceResult = Union["AttributeNode", List["AttributeNode"], None]


def _freeze(value: Any) -> Any:
    """Copy a JSON-like tree into read-only mappings and tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


class AttributeGraphError(Exception):
    """Raised when the attribute graph cannot be built from its input."""
    pass


class AttributeNode:
    """
    A single planned resource instance.

    Attribute values are kept as the plain JSON-like tree from the plan
    and read through the typed getters below.
    """

    def __init__(
        self,
        address: str,
        resource_type: str,
        values: Optional[Dict[str, Any]] = None,
        references: Optional[Dict[str, Union[str, List[str]]]] = None,
        provider_name: str = "",
    ):
        try:
            self.parsed_address = ResourceAddress.parse(address)
        except AddressParseError as error:
            raise AttributeGraphError(f"Invalid resource address: {error}") from error

        if self.parsed_address.is_wildcard:
            raise AttributeGraphError(
                f"Wildcard index is only allowed in usage files, not in the graph: {address}"
            )

        self.address = str(self.parsed_address)
        self.type = resource_type or self.parsed_address.type
        self.provider_name = provider_name
        self._values = _freeze(values or {})

        # attribute name -> list of raw reference strings; multi marks one-to-many
        self._references: Dict[str, Tuple[str, ...]] = {}
        self._multi_references = set()
        for name, value in (references or {}).items():
            if isinstance(value, (list, tuple)):
                self._references[name] = tuple(str(item) for item in value if item)
                self._multi_references.add(name)
            elif value:
                self._references[name] = (str(value),)

    def __repr__(self) -> str:
        return f"AttributeNode(address={self.address!r}, type={self.type!r})"

    @property
    def values(self) -> Mapping[str, Any]:
        return self._values

    @property
    def module_path(self) -> Tuple[str, ...]:
        return self.parsed_address.module_path

    def reference_values(self, name: str) -> Tuple[str, ...]:
        return self._references.get(name, ())

    def is_multi_reference(self, name: str) -> bool:
        return name in self._multi_references

    def _lookup(self, path: str) -> Any:
        current: Any = self._values
        for part in path.split("."):
            if isinstance(current, Mapping):
                if part not in current:
                    return _MISSING
                current = current[part]
            elif isinstance(current, tuple):
                if not part.isdigit() or int(part) >= len(current):
                    return _MISSING
                current = current[int(part)]
            else:
                return _MISSING
        return current

    def get(self, path: str, default: Any = None) -> Any:
        """Get a raw value by dotted path ('sku.0.name'); lists are indexed by number."""
        value = self._lookup(path)
        if value is _MISSING or value is None:
            return default
        return value

    def exists(self, path: str) -> bool:
        return self._lookup(path) is not _MISSING

    def is_empty(self, path: str) -> bool:
        value = self._lookup(path)
        if value is _MISSING or value is None:
            return True
        if isinstance(value, (str, tuple, Mapping)):
            return len(value) == 0
        return False

    def get_str(self, path: str, default: str = "") -> str:
        value = self.get(path)
        if value is None or isinstance(value, (Mapping, tuple)):
            return default
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_int(self, path: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(path)
        if value is None or isinstance(value, bool):
            return default
        try:
            return int(float(value))
        except (TypeError, ValueError):
            logger.debug(f"Attribute {path} of {self.address} is not an integer: {value!r}")
            return default

    def get_float(self, path: str, default: Optional[float] = None) -> Optional[float]:
        value = self.get(path)
        if value is None or isinstance(value, bool):
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.debug(f"Attribute {path} of {self.address} is not a number: {value!r}")
            return default

    def get_bool(self, path: str, default: bool = False) -> bool:
        value = self.get(path)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)


class ReferenceResolver:
    """
    Resolves reference attributes to the nodes they point at.

    Lookup order for a reference from a node inside module scope M:
    the reference relative to M, then relative to each ancestor of M
    (ending with the literal address at the root), then any sibling scope
    whose address ends with the reference.
    """

    def __init__(self, nodes: Mapping[str, AttributeNode]):
        self._nodes = nodes
        # base address (no index) -> concrete instance addresses
        self._instances: Dict[str, List[str]] = {}
        # local base address (no module, no index) -> concrete addresses in any module
        self._by_local_base: Dict[str, List[str]] = {}

        for address, node in nodes.items():
            parsed = node.parsed_address
            self._instances.setdefault(parsed.base_address, []).append(address)
            local_base = parsed.with_module_path(()).base_address
            self._by_local_base.setdefault(local_base, []).append(address)

        for addresses in self._instances.values():
            addresses.sort(key=lambda item: index_sort_key(nodes[item].parsed_address.index))

    def resolve(self, node: AttributeNode, attribute: str) -> ReferenceResult:
        """
        Resolve a reference attribute of a node.

        Args:
            node: The referencing node
            attribute: Name of the reference attribute (e.g. 'server_id')

        Returns:
            A node, a list of nodes for one-to-many references, or None
        """
        raw_references = node.reference_values(attribute)
        is_multi = node.is_multi_reference(attribute)

        if not raw_references:
            # Fall back to a literal address stored in the attribute itself
            literal = node.get(attribute)
            if isinstance(literal, str):
                raw_references = (literal,)
            elif isinstance(literal, tuple):
                raw_references = tuple(item for item in literal if isinstance(item, str))
                is_multi = True

        resolved: List[AttributeNode] = []
        for reference in raw_references:
            target = self._resolve_one(node, reference)
            if target is None:
                logger.debug(f"Unresolved reference {attribute}={reference!r} on {node.address}")
            elif target not in resolved:
                resolved.append(target)
            if resolved and not is_multi:
                break

        if is_multi:
            return resolved
        return resolved[0] if resolved else None

    def _resolve_one(self, node: AttributeNode, reference: str) -> Optional[AttributeNode]:
        try:
            target = ResourceAddress.parse(reference, allow_attribute=True)
        except AddressParseError:
            return None

        scope = node.module_path
        for depth in range(len(scope), -1, -1):
            candidate = target.with_module_path(scope[:depth] + target.module_path)
            found = self._lookup(candidate, node)
            if found is not None:
                return found

        return self._search_siblings(node, target)

    def _lookup(self, candidate: ResourceAddress, node: AttributeNode) -> Optional[AttributeNode]:
        if candidate.has_index:
            return self._nodes.get(str(candidate))

        exact = self._nodes.get(candidate.base_address)
        if exact is not None:
            return exact

        instances = self._instances.get(candidate.base_address)
        if not instances:
            return None
        for address in instances:
            if self._nodes[address].parsed_address.index == node.parsed_address.index:
                return self._nodes[address]
        return self._nodes[instances[0]]

    def _search_siblings(self, node: AttributeNode, target: ResourceAddress) -> Optional[AttributeNode]:
        local_base = target.with_module_path(()).base_address
        suffix = target.module_path
        candidates = []
        for address in self._by_local_base.get(local_base, []):
            parsed = self._nodes[address].parsed_address
            if suffix and parsed.module_path[-len(suffix):] != suffix:
                continue
            if target.has_index and parsed.index != target.index:
                continue
            shared = 0
            for own, other in zip(node.module_path, parsed.module_path):
                if own != other:
                    break
                shared += 1
            candidates.append((-shared, index_sort_key(parsed.index), address))

        if not candidates:
            return None

        candidates.sort()
        if len(candidates) > 1 and candidates[0][0] == candidates[1][0]:
            logger.warning(
                f"Reference {target} from {node.address} matches several resources; using {candidates[0][2]}"
            )
        return self._nodes[candidates[0][2]]


class AttributeGraph:
    """Address-keyed index of planned resources, immutable once built."""

    def __init__(self, nodes: Iterable[AttributeNode]):
        self._nodes: Dict[str, AttributeNode] = {}
        for node in nodes:
            if node.address in self._nodes:
                raise AttributeGraphError(f"Duplicate resource address in graph: {node.address}")
            self._nodes[node.address] = node
        self._resolver = ReferenceResolver(MappingProxyType(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, address: str) -> bool:
        return address in self._nodes

    def get(self, address: str) -> Optional[AttributeNode]:
        return self._nodes.get(address)

    def list_resources(self) -> List[AttributeNode]:
        """All nodes in declaration order."""
        return list(self._nodes.values())

    def resolve_reference(self, node: AttributeNode, attribute: str) -> ReferenceResult:
        return self._resolver.resolve(node, attribute)

    @property
    def resolver(self) -> ReferenceResolver:
        return self._resolver
