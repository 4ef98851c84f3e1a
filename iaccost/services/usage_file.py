"""
Usage file loading and syncing.

The usage file is YAML:

    version: 0.1
    resource_usage:
      azurerm_mssql_database.main:
        long_term_retention_storage_gb: 100
      aws_s3_bucket.logs[*]:
        standard:
          storage_gb: 250

It is read with ruamel.yaml in round-trip mode so that a sync rewrites the
file without losing the comments operators have added by hand.
"""
import io
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap
from ruamel.yaml.error import YAMLError

from iaccost.core.config import config
from iaccost.domain.cost_models import Resource
from iaccost.domain.usage_models import UsageItem, UsageSpec, UsageValueType
from iaccost.graph.address import AddressParseError, ResourceAddress, index_sort_key


logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = {"0.1"}
KNOWN_TOP_LEVEL_KEYS = {"version", "resource_usage"}

# Keys carrying this prefix are written as commented-out YAML
_COMMENT_MARKER = "__iaccost_commented__"
_MARKER_LINE = re.compile(r"^(\s*)(['\"]?)" + _COMMENT_MARKER + r"(.*)$")
# Commented-out defaults are written with this prefix; only these lines are
# regenerated on the next sync, any other comment belongs to the operator
GENERATED_COMMENT_PREFIX = "#~ "


class UsageFileError(Exception):
    """Raised when a usage file cannot be read."""
    pass


def _yaml() -> YAML:
    yaml = YAML(typ="rt")
    yaml.indent(mapping=2, sequence=4, offset=2)
    yaml.width = 4096
    return yaml


def _to_plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return value


def load_usage_spec(text: Optional[str]) -> UsageSpec:
    """
    Parse usage-file text into a UsageSpec.

    Args:
        text: YAML text (None or blank means no usage)

    Returns:
        UsageSpec

    Raises:
        UsageFileError: If the document is malformed or has an unsupported version
    """
    if text is None or not text.strip():
        return UsageSpec.empty(config.USAGE_FILE_VERSION)

    try:
        data = _yaml().load(text)
    except YAMLError as error:
        raise UsageFileError(f"Usage file is not valid YAML: {error}") from error

    if data is None:
        return UsageSpec.empty(config.USAGE_FILE_VERSION)
    if not isinstance(data, Mapping):
        raise UsageFileError("Usage file must be a mapping with 'version' and 'resource_usage'")

    if data.get("version") is None:
        raise UsageFileError("Usage file is missing 'version'")
    version = str(data["version"])
    if version not in SUPPORTED_VERSIONS:
        raise UsageFileError(
            f"Unsupported usage file version {version} (supported: {', '.join(sorted(SUPPORTED_VERSIONS))})"
        )

    for key in data:
        if key not in KNOWN_TOP_LEVEL_KEYS:
            logger.warning(f"Unknown top-level key '{key}' in usage file is ignored")

    raw_usage = data.get("resource_usage")
    if raw_usage is None:
        raw_usage = {}
    if not isinstance(raw_usage, Mapping):
        raise UsageFileError("'resource_usage' must be a mapping of resource address to usage")

    resource_usage: Dict[str, Dict[str, Any]] = {}
    for address, params in raw_usage.items():
        try:
            ResourceAddress.parse(str(address))
        except AddressParseError as error:
            logger.warning(f"Usage entry '{address}' is not a resource address and is ignored: {error}")
            continue
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            logger.warning(f"Usage entry '{address}' must be a mapping and is ignored")
            continue
        resource_usage[str(address)] = _to_plain(params)

    logger.info(f"Loaded usage file with {len(resource_usage)} resource entries")
    return UsageSpec(version=version, resource_usage=resource_usage)


def load_usage_file(path: Union[str, Path]) -> UsageSpec:
    """Read and parse a usage file from disk."""
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as error:
        raise UsageFileError(f"Cannot read usage file {file_path}: {error}") from error
    return load_usage_spec(text)


@dataclass
class UsageSyncResult:
    """Regenerated usage file text and what the sync changed."""
    text: str
    resources_synced: int
    keys_added: int
    entries_kept: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "usage_yaml": self.text,
            "resources_synced": self.resources_synced,
            "keys_added": self.keys_added,
            "entries_kept": self.entries_kept,
        }


def _strip_generated_comments(text: str) -> str:
    """Drop the commented-out defaults a previous sync wrote; every other comment is kept."""
    kept = [
        line for line in text.splitlines()
        if not line.lstrip(" ").startswith(GENERATED_COMMENT_PREFIX.rstrip())
    ]
    return "\n".join(kept) + "\n"


def _commented_defaults(schema: Sequence[UsageItem]) -> Tuple[CommentedMap, int]:
    block = CommentedMap()
    count = 0
    for item in schema:
        if item.value_type is UsageValueType.OBJECT:
            child, child_count = _commented_defaults(item.children)
            block[item.key] = child
            count += child_count
        else:
            block[item.key] = item.default_value
            count += 1
            if item.description:
                block.yaml_add_eol_comment(item.description, item.key)
    return block, count


def _fill_missing(entry: CommentedMap, schema: Sequence[UsageItem]) -> int:
    """Add commented defaults for schema keys missing from an existing entry."""
    added = 0
    for item in schema:
        if item.key in entry:
            current = entry[item.key]
            if item.value_type is UsageValueType.OBJECT and isinstance(current, CommentedMap):
                added += _fill_missing(current, item.children)
            continue

        if item.value_type is UsageValueType.OBJECT:
            block, count = _commented_defaults(item.children)
            entry[_COMMENT_MARKER + item.key] = block
            added += count
        else:
            entry[_COMMENT_MARKER + item.key] = item.default_value
            if item.description:
                entry.yaml_add_eol_comment(item.description, _COMMENT_MARKER + item.key)
            added += 1
    return added


def _render(document: CommentedMap) -> str:
    stream = io.StringIO()
    _yaml().dump(document, stream)

    lines: List[str] = []
    comment_indent: Optional[int] = None
    for line in stream.getvalue().splitlines():
        stripped = line.lstrip(" ")
        indent = len(line) - len(stripped)

        if comment_indent is not None:
            if stripped and indent > comment_indent:
                lines.append(" " * comment_indent + GENERATED_COMMENT_PREFIX + line[comment_indent:])
                continue
            comment_indent = None

        match = _MARKER_LINE.match(line)
        if match:
            comment_indent = len(match.group(1))
            lines.append(match.group(1) + GENERATED_COMMENT_PREFIX + match.group(2) + match.group(3))
            continue
        lines.append(line)

    return "\n".join(lines) + "\n"


def _template_addresses(resources: Sequence[Resource]) -> List[Tuple[str, Resource, bool]]:
    """
    Addresses to write, in declaration order: un-indexed resources as is;
    counted resources as one base[*] template plus their lowest index as example.
    The bool marks the example entry.
    """
    first_instance: Dict[str, Resource] = {}
    order: List[str] = []
    plain: Dict[str, Resource] = {}

    for resource in resources:
        if not resource.usage_schema:
            continue
        try:
            parsed = ResourceAddress.parse(resource.address)
        except AddressParseError:
            continue
        if not parsed.has_index:
            plain[resource.address] = resource
            order.append(resource.address)
            continue

        base = parsed.base_address
        if base not in first_instance:
            first_instance[base] = resource
            order.append(base)
        else:
            current = ResourceAddress.parse(first_instance[base].address)
            if index_sort_key(parsed.index) < index_sort_key(current.index):
                first_instance[base] = resource

    addresses: List[Tuple[str, Resource, bool]] = []
    for key in order:
        if key in plain:
            addresses.append((key, plain[key], False))
        else:
            resource = first_instance[key]
            wildcard = ResourceAddress.parse(resource.address).wildcard_address
            addresses.append((wildcard, resource, False))
            addresses.append((resource.address, resource, True))
    return addresses


def sync_usage_file(
    resources: Sequence[Resource],
    existing_text: Optional[str] = None,
) -> UsageSyncResult:
    """
    Regenerate a usage file for the given resources.

    Existing values and hand-written comments are kept. Every discovered
    resource gets its schema keys that are not already set written as
    commented-out defaults.

    Args:
        resources: Built resources (their usage_schema drives the template)
        existing_text: Current usage file text, if any

    Returns:
        UsageSyncResult with the new text and sync statistics

    Raises:
        UsageFileError: If the existing text is not a usable usage file
    """
    templates = _template_addresses(resources)

    document: Optional[CommentedMap] = None
    if existing_text and existing_text.strip():
        # Validates version and structure before rewriting
        load_usage_spec(existing_text)
        try:
            document = _yaml().load(_strip_generated_comments(existing_text))
        except YAMLError as error:
            raise UsageFileError(f"Usage file is not valid YAML: {error}") from error

    if not isinstance(document, CommentedMap):
        document = CommentedMap()
        document["version"] = float(config.USAGE_FILE_VERSION)

    resource_usage = document.get("resource_usage")
    if not isinstance(resource_usage, CommentedMap):
        resource_usage = CommentedMap()
        document["resource_usage"] = resource_usage

    entries_kept = len(resource_usage)
    keys_added = 0
    synced = 0

    for address, resource, is_example in templates:
        existing = resource_usage.get(address)
        if isinstance(existing, CommentedMap):
            keys_added += _fill_missing(existing, resource.usage_schema)
            synced += 1
            continue
        if address in resource_usage:
            # Present but empty or scalar: leave the operator's value alone
            synced += 1
            continue
        if is_example and resource_usage.get(ResourceAddress.parse(address).wildcard_address) is not None:
            # The operator already configures the wildcard; no example needed
            continue

        block, count = _commented_defaults(resource.usage_schema)
        resource_usage[_COMMENT_MARKER + address] = block
        keys_added += count
        synced += 1

    text = _render(document)
    logger.info(
        f"Synced usage file: {synced} resources, {keys_added} keys added, {entries_kept} entries kept"
    )
    return UsageSyncResult(
        text=text,
        resources_synced=synced,
        keys_added=keys_added,
        entries_kept=entries_kept,
    )
