"""
Resource address parsing.

Addresses follow the infrastructure tool's syntax:
    [module.<name>[<index>].]*[data.]<type>.<name>[<index>]
where <index> is a count index (0), a quoted for_each key ("eu-west")
or, in usage files only, the wildcard *.
"""
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple


WILDCARD_INDEX = "*"

_SEGMENT_PATTERN = re.compile(r'^([^\[\]"]+)(?:\[(.+)\])?$', re.DOTALL)


class AddressParseError(Exception):
    """Raised when a resource address cannot be parsed."""
    pass


def _split_segments(text: str) -> List[str]:
    """Split an address on dots that are outside brackets and quotes."""
    segments: List[str] = []
    current: List[str] = []
    depth = 0
    in_quotes = False
    escaped = False

    for char in text:
        if in_quotes:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
            continue

        if char == '"':
            in_quotes = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                raise AddressParseError(f"Unbalanced brackets in address: {text}")
        elif char == "." and depth == 0:
            segments.append("".join(current))
            current = []
            continue
        current.append(char)

    if in_quotes or depth != 0:
        raise AddressParseError(f"Unterminated index in address: {text}")
    segments.append("".join(current))

    if any(not segment for segment in segments):
        raise AddressParseError(f"Empty segment in address: {text}")
    return segments


def _split_index(segment: str, text: str) -> Tuple[str, Optional[str]]:
    match = _SEGMENT_PATTERN.match(segment)
    if not match:
        raise AddressParseError(f"Invalid segment '{segment}' in address: {text}")

    name, index = match.group(1), match.group(2)
    if index is not None:
        index = index.strip()
        is_quoted = len(index) >= 2 and index.startswith('"') and index.endswith('"')
        if not (index.isdigit() or index == WILDCARD_INDEX or is_quoted):
            raise AddressParseError(f"Invalid index [{index}] in address: {text}")
    return name, index


@dataclass(frozen=True)
class ResourceAddress:
    """
    Parsed resource address.

    module_path holds the printed module segments, e.g. ('module.db', 'module.app[0]').
    index holds the printed index token without brackets: '0', '"key"' or '*'.
    """
    type: str
    name: str
    module_path: Tuple[str, ...] = ()
    mode: str = "managed"
    index: Optional[str] = None

    @classmethod
    def parse(cls, text: str, allow_attribute: bool = False) -> "ResourceAddress":
        """
        Parse an address string.

        Args:
            text: Address such as 'module.db.azurerm_mssql_database.main[0]'
            allow_attribute: Ignore trailing attribute segments ('aws_vpc.main.id')

        Returns:
            Parsed ResourceAddress

        Raises:
            AddressParseError: If the text is not a resource address
        """
        if not isinstance(text, str) or not text.strip():
            raise AddressParseError(f"Empty or non-string address: {text!r}")

        segments = _split_segments(text.strip())
        module_path: List[str] = []
        position = 0

        while position < len(segments) and segments[position] == "module":
            if position + 1 >= len(segments):
                raise AddressParseError(f"Module segment without name in address: {text}")
            module_name, module_index = _split_index(segments[position + 1], text)
            if module_index == WILDCARD_INDEX:
                raise AddressParseError(f"Wildcard module index is not supported: {text}")
            module_path.append(
                f"module.{module_name}[{module_index}]" if module_index is not None
                else f"module.{module_name}"
            )
            position += 2

        mode = "managed"
        if position < len(segments) and segments[position] == "data":
            mode = "data"
            position += 1

        remaining = segments[position:]
        if len(remaining) < 2:
            raise AddressParseError(f"Address has no type and name: {text}")
        if len(remaining) > 2 and not allow_attribute:
            raise AddressParseError(f"Unexpected trailing segments in address: {text}")

        resource_type, type_index = _split_index(remaining[0], text)
        if type_index is not None:
            raise AddressParseError(f"Index not allowed on resource type: {text}")
        name, index = _split_index(remaining[1], text)

        return cls(
            type=resource_type,
            name=name,
            module_path=tuple(module_path),
            mode=mode,
            index=index,
        )

    @property
    def module_prefix(self) -> str:
        return ".".join(self.module_path)

    @property
    def is_wildcard(self) -> bool:
        return self.index == WILDCARD_INDEX

    @property
    def has_index(self) -> bool:
        return self.index is not None

    def _local(self, index: Optional[str]) -> str:
        local = f"{self.type}.{self.name}"
        if self.mode == "data":
            local = f"data.{local}"
        if index is not None:
            local = f"{local}[{index}]"
        return local

    @property
    def local_address(self) -> str:
        """Address without the module prefix."""
        return self._local(self.index)

    @property
    def base_address(self) -> str:
        """Full address without the resource index."""
        return self._join(self._local(None))

    @property
    def wildcard_address(self) -> str:
        """Full address with the index replaced by [*]."""
        return self._join(self._local(WILDCARD_INDEX))

    def with_module_path(self, module_path: Tuple[str, ...]) -> "ResourceAddress":
        return replace(self, module_path=tuple(module_path))

    def with_index(self, index: Optional[str]) -> "ResourceAddress":
        return replace(self, index=index)

    def _join(self, local: str) -> str:
        if self.module_path:
            return f"{self.module_prefix}.{local}"
        return local

    def __str__(self) -> str:
        return self._join(self.local_address)


def format_index(value) -> str:
    """Render a plan index value (int count index or str for_each key) as an address token."""
    if isinstance(value, bool):
        raise AddressParseError(f"Invalid index value: {value!r}")
    if isinstance(value, int):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def index_sort_key(index: Optional[str]) -> Tuple[int, int, str]:
    """Order indices numerically for count and lexically for for_each keys."""
    if index is None:
        return (0, 0, "")
    if index.isdigit():
        return (1, int(index), "")
    return (2, 0, index)
