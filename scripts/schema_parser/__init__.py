"""
Schema inference for event payloads.

Provides a recursive classifier that turns arbitrary nested event
properties into an ordered structural schema (names and types only).
"""

from .types import (
    UNDEFINED,
    TypeTag,
    SchemaEntry,
    schema_to_dicts,
    schema_from_dicts
)

from .parser import (
    DEFAULT_MAX_DEPTH,
    RecursionLimitExceeded,
    SchemaParser,
    classify,
    extract_schema
)

__all__ = [
    # Types
    'UNDEFINED',
    'TypeTag',
    'SchemaEntry',
    'schema_to_dicts',
    'schema_from_dicts',
    # Parser
    'DEFAULT_MAX_DEPTH',
    'RecursionLimitExceeded',
    'SchemaParser',
    'classify',
    'extract_schema',
]

__version__ = '1.0.0'
