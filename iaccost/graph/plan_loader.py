"""
Builds an AttributeGraph from a JSON plan/state document.

Two shapes are accepted:
- the infrastructure tool's JSON plan (planned_values / configuration), or
  its JSON state (values);
- a generic document: {"resources": [{"address", "type", "values", "references"}]}.
"""
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from iaccost.graph.address import AddressParseError, ResourceAddress
from iaccost.graph.attribute_graph import AttributeGraph, AttributeGraphError, AttributeNode


logger = logging.getLogger(__name__)

# Reference roots that never point at a resource
NON_RESOURCE_ROOTS = {"var", "local", "each", "count", "path", "self", "terraform"}

_MODULE_CALL_PATTERN = re.compile(r'module\.([^.\[]+)(?:\[(?:"(?:[^"\\]|\\.)*"|[^\]]*)\])?')


def load_attribute_graph(
    document: Union[str, bytes, Dict[str, Any]],
    reference_attributes: Optional[Mapping[str, Sequence[str]]] = None,
) -> AttributeGraph:
    """
    Load an attribute graph.

    Args:
        document: Parsed JSON document, or its raw text
        reference_attributes: resource type -> attribute names holding references

    Returns:
        AttributeGraph with one node per managed resource instance

    Raises:
        AttributeGraphError: If the document is not a readable plan, state or graph
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as error:
            raise AttributeGraphError(f"Plan is not valid JSON: {error}") from error

    if not isinstance(document, dict):
        raise AttributeGraphError("Plan document must be a JSON object")

    reference_attributes = reference_attributes or {}

    if "planned_values" in document or "values" in document:
        nodes = _load_plan(document, reference_attributes)
    elif isinstance(document.get("resources"), list):
        nodes = _load_generic(document["resources"])
    else:
        raise AttributeGraphError(
            "Unrecognised plan document: expected 'planned_values', 'values' or 'resources'"
        )

    logger.info(f"Loaded attribute graph with {len(nodes)} resources")
    return AttributeGraph(nodes)


def _walk_modules(module: Any) -> Iterator[Dict[str, Any]]:
    if not isinstance(module, dict):
        raise AttributeGraphError(f"Plan module must be an object: {module!r}")
    yield module
    children = module.get("child_modules") or []
    if not isinstance(children, list):
        raise AttributeGraphError(f"Plan 'child_modules' must be a list in module {module.get('address', 'root')}")
    for child in children:
        yield from _walk_modules(child)


def _config_module(config_root: Dict[str, Any], module_address: str) -> Dict[str, Any]:
    """Find the configuration block for a (possibly indexed) module instance address."""
    current = config_root
    for name in _MODULE_CALL_PATTERN.findall(module_address or ""):
        current = (current.get("module_calls") or {}).get(name, {}).get("module") or {}
    return current


def _config_resource(config_module: Dict[str, Any], resource: Dict[str, Any]) -> Dict[str, Any]:
    wanted = f"{resource.get('type')}.{resource.get('name')}"
    if resource.get("mode") == "data":
        wanted = f"data.{wanted}"
    for candidate in config_module.get("resources") or []:
        if candidate.get("address") == wanted:
            return candidate
    return {}


def _expression_references(config_resource: Dict[str, Any], attribute: str) -> List[str]:
    expression: Any = config_resource.get("expressions") or {}
    for part in attribute.split("."):
        if isinstance(expression, list):
            expression = expression[0] if expression else {}
        if not isinstance(expression, dict):
            return []
        expression = expression.get(part) or {}

    if not isinstance(expression, dict):
        return []

    references: List[str] = []
    seen = set()
    for reference in expression.get("references") or []:
        if not isinstance(reference, str) or reference.split(".", 1)[0] in NON_RESOURCE_ROOTS:
            continue
        try:
            parsed = ResourceAddress.parse(reference, allow_attribute=True)
        except AddressParseError:
            continue
        key = str(parsed)
        if key not in seen:
            seen.add(key)
            references.append(key)
    return references


def _load_plan(
    document: Dict[str, Any],
    reference_attributes: Mapping[str, Sequence[str]],
) -> List[AttributeNode]:
    values_root = document.get("planned_values") or document.get("values") or {}
    if not isinstance(values_root, dict):
        raise AttributeGraphError("Plan 'planned_values' must be an object")

    config_root = (document.get("configuration") or {}).get("root_module") or {}
    nodes: List[AttributeNode] = []

    for module in _walk_modules(values_root.get("root_module") or {}):
        config_module = _config_module(config_root, module.get("address", ""))
        resources = module.get("resources") or []
        if not isinstance(resources, list):
            raise AttributeGraphError(f"Plan 'resources' must be a list in module {module.get('address', 'root')}")
        for resource in resources:
            if not isinstance(resource, dict):
                raise AttributeGraphError(f"Plan resource must be an object: {resource!r}")
            if resource.get("mode", "managed") != "managed":
                continue
            if "address" not in resource or "type" not in resource:
                raise AttributeGraphError(f"Plan resource without address or type: {resource!r}")

            values = resource.get("values") or {}
            config_resource = _config_resource(config_module, resource)
            references: Dict[str, Union[str, List[str]]] = {}
            for attribute in reference_attributes.get(resource["type"], ()):
                found = _expression_references(config_resource, attribute)
                if not found:
                    continue
                if isinstance(values.get(attribute), list):
                    references[attribute] = found
                else:
                    references[attribute] = found[0]

            nodes.append(AttributeNode(
                address=resource["address"],
                resource_type=resource["type"],
                values=values,
                references=references,
                provider_name=resource.get("provider_name", ""),
            ))
    return nodes


def _load_generic(resources: List[Any]) -> List[AttributeNode]:
    nodes = []
    for entry in resources:
        if not isinstance(entry, dict) or not entry.get("address"):
            raise AttributeGraphError(f"Graph resource without address: {entry!r}")
        address = entry["address"]
        resource_type = entry.get("type")
        if not resource_type:
            try:
                resource_type = ResourceAddress.parse(address).type
            except AddressParseError as error:
                raise AttributeGraphError(str(error)) from error
        nodes.append(AttributeNode(
            address=address,
            resource_type=resource_type,
            values=entry.get("values") or {},
            references=entry.get("references") or {},
            provider_name=entry.get("provider_name", ""),
        ))
    return nodes
