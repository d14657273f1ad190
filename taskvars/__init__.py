"""Scoped variable store with ${Scope.Key[...]} path lookup and interpolation."""

from .errors import (
    ConfigError,
    MalformedExpressionError,
    VariableNotFoundError,
    VariableStoreError,
)
from .navigation import drill
from .paths import Path, Segment, parse_path
from .store import (
    MissingVariablePolicy,
    VariableStore,
    parse_json,
    parse_xml,
    rows_from_cursor,
)
from .stringify import stringify

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "MalformedExpressionError",
    "MissingVariablePolicy",
    "Path",
    "Segment",
    "VariableNotFoundError",
    "VariableStore",
    "VariableStoreError",
    "drill",
    "parse_json",
    "parse_path",
    "parse_xml",
    "rows_from_cursor",
    "stringify",
]
