"""
Recursive schema extraction for event properties.

Walks an arbitrary JSON-like value and describes its structure as an
ordered list of SchemaEntry objects. Values are never recorded, only
property names and type tags.

Lists are summarised rather than enumerated: fields of mapping elements
are merged by name (the first element that defines a field fixes its
type), and non-mapping elements contribute one unnamed entry per
distinct type.
"""

import dataclasses
from collections.abc import Mapping
from typing import Any, Iterable, List, Tuple

from .types import UNDEFINED, SchemaEntry, TypeTag


DEFAULT_MAX_DEPTH = 32


class RecursionLimitExceeded(RecursionError):
    """Raised when a value nests deeper than the configured limit (or is cyclic)."""

    def __init__(self, max_depth: int):
        super().__init__(f"Schema extraction exceeded maximum depth of {max_depth}")
        self.max_depth = max_depth


def classify(value: Any) -> TypeTag:
    """
    Classify a single value.

    Order matters: bool is a subclass of int, so it is checked first.

    Args:
        value: Any Python value

    Returns:
        TypeTag for the value
    """
    if value is UNDEFINED:
        return TypeTag.UNDEFINED
    if value is None:
        return TypeTag.NULL
    if isinstance(value, bool):
        return TypeTag.BOOLEAN
    if isinstance(value, int):
        return TypeTag.INT
    if isinstance(value, float):
        return TypeTag.FLOAT
    if isinstance(value, str):
        return TypeTag.STRING
    if isinstance(value, (list, tuple)):
        return TypeTag.LIST
    if isinstance(value, Mapping) or _is_dataclass_instance(value):
        return TypeTag.OBJECT
    return TypeTag.UNKNOWN


def _is_dataclass_instance(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _fields(value: Any) -> Iterable[Tuple[Any, Any]]:
    if isinstance(value, Mapping):
        return value.items()
    return ((f.name, getattr(value, f.name)) for f in dataclasses.fields(value))


_LIST_ELEMENT = object()


def _merge_key(entry: SchemaEntry):
    # Element entries are keyed by type so they never collide with a field named ""
    if entry.list_element:
        return (_LIST_ELEMENT, entry.property_type)
    return entry.property_name


class SchemaParser:
    """
    Stateless schema extractor.

    The only setting is the maximum container depth; exceeding it raises
    RecursionLimitExceeded, which is also how cyclic values terminate.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        """
        Initialize parser.

        Args:
            max_depth: Maximum number of nested containers to descend into
        """
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth

    def extract_schema(self, properties: Any) -> List[SchemaEntry]:
        """
        Extract the schema of an event's properties.

        Args:
            properties: Mapping (or dataclass instance) of property name to value

        Returns:
            Schema entries in the mapping's iteration order

        Raises:
            TypeError: If properties is not a mapping
            RecursionLimitExceeded: If nesting exceeds max_depth
        """
        if properties is None or properties is UNDEFINED:
            return []

        if classify(properties) is not TypeTag.OBJECT:
            raise TypeError(
                f"Event properties must be a mapping, got {type(properties).__name__}"
            )

        return self._object_entries(properties, 1)

    def _check_depth(self, depth: int):
        if depth > self.max_depth:
            raise RecursionLimitExceeded(self.max_depth)

    def _object_entries(self, obj: Any, depth: int) -> List[SchemaEntry]:
        self._check_depth(depth)
        return [self._entry(name, value, depth) for name, value in _fields(obj)]

    def _entry(
        self,
        name: Any,
        value: Any,
        depth: int,
        list_element: bool = False
    ) -> SchemaEntry:
        property_type = classify(value)

        if property_type is TypeTag.OBJECT:
            children = self._object_entries(value, depth + 1)
        elif property_type is TypeTag.LIST:
            children = self._list_entries(value, depth + 1)
        else:
            children = None

        return SchemaEntry(str(name), property_type, children, list_element=list_element)

    def _list_entries(self, items: Iterable[Any], depth: int) -> List[SchemaEntry]:
        self._check_depth(depth)

        merged: List[SchemaEntry] = []
        for item in items:
            if classify(item) is TypeTag.OBJECT:
                entries = self._object_entries(item, depth)
            else:
                entries = [self._entry("", item, depth, list_element=True)]
            self._merge_entries(merged, entries)

        return merged

    def _merge_entries(
        self,
        target: List[SchemaEntry],
        entries: Iterable[SchemaEntry]
    ) -> List[SchemaEntry]:
        """
        Merge entries into target in place, first-wins by key.

        Children of two entries with the same container type are merged
        recursively; any other conflict keeps the entry already in target.
        """
        index = {_merge_key(entry): entry for entry in target}

        for entry in entries:
            key = _merge_key(entry)
            kept = index.get(key)

            if kept is None:
                index[key] = entry
                target.append(entry)
            elif (
                kept.property_type is entry.property_type
                and kept.children is not None
                and entry.children is not None
            ):
                self._merge_entries(kept.children, entry.children)

        return target


def extract_schema(properties: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> List[SchemaEntry]:
    """
    Extract the schema of an event's properties.

    Args:
        properties: Mapping of property name to value
        max_depth: Maximum nesting depth

    Returns:
        Ordered list of SchemaEntry
    """
    return SchemaParser(max_depth=max_depth).extract_schema(properties)
