"""
Schema data model.

Defines the type tags and schema entries produced by schema extraction,
plus their JSON-ready dictionary forms.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class _Undefined:
    """Marker for a property that is declared but has no value."""

    _instance = None

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


class TypeTag(Enum):
    """Structural type of a property value."""
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"
    NULL = "null"
    UNDEFINED = "undefined"
    LIST = "list"
    OBJECT = "object"
    UNKNOWN = "unknown"


@dataclass
class SchemaEntry:
    """One property of an inferred schema."""
    property_name: str
    property_type: TypeTag
    children: Optional[List["SchemaEntry"]] = None  # set for LIST and OBJECT only
    # Unnamed entry standing for list elements of one type; not serialized
    list_element: bool = field(default=False, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary (camelCase keys, lowercase type names)."""
        data = {
            "propertyName": self.property_name,
            "propertyType": self.property_type.value,
        }
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaEntry":
        """Rebuild an entry from its wire dictionary."""
        children = data.get("children")
        return cls(
            property_name=data["propertyName"],
            property_type=TypeTag(data["propertyType"]),
            children=[cls.from_dict(c) for c in children] if children is not None else None,
        )


def schema_to_dicts(schema: List[SchemaEntry]) -> List[Dict[str, Any]]:
    """Serialize a whole schema."""
    return [entry.to_dict() for entry in schema]


def schema_from_dicts(data: List[Dict[str, Any]]) -> List[SchemaEntry]:
    """Deserialize a whole schema."""
    return [SchemaEntry.from_dict(entry) for entry in data]
