"""Scoped variable store with path lookup and ${...} interpolation.

Only base variables (Scope.Key) are stored. Everything after the base key in
an expression is a drill-down applied at read time:

    store = VariableStore()
    store.set_scoped("Task1", "ResponseBody", parse_json('[{"key1": "v1"}]'))
    store.get("${Task1.ResponseBody[0].key1}")                 # "v1"
    store.resolve_variables("Got ${Task1.ResponseBody[0].key1}")  # "Got v1"
"""

import json
import logging
import re
import threading
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lxml import etree

from .errors import MalformedExpressionError, VariableNotFoundError
from .navigation import drill
from .paths import parse_path
from .stringify import stringify

logger = logging.getLogger(__name__)

# ${...} with no braces inside, so adjacent placeholders stay unambiguous
PLACEHOLDER_PATTERN = re.compile(r"\$\{([^{}]+)\}")

_ABSENT = object()


class MissingVariablePolicy(str, Enum):
    """Behavior of interpolation when a base variable is absent."""

    KEEP_AS_IS = "keep_as_is"
    REPLACE_WITH_EMPTY = "replace_with_empty"
    THROW_ERROR = "throw_error"

    @classmethod
    def parse(cls, value: Any) -> "MissingVariablePolicy":
        """Accept a policy member or its name/value in any case."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for policy in cls:
            if text in (policy.value, policy.name.lower()):
                return policy
        valid = ", ".join(p.value for p in cls)
        raise ValueError(f"Invalid missing variable policy '{value}'. Valid: {valid}")


class VariableStore:
    """Thread-safe store of base variables keyed by (scope, key).

    Values are kept in whatever shape the producer supplied: scalars, JSON
    trees, lxml documents, mappings, lists or arbitrary objects. Writes to
    the same base variable are last-write-wins.
    """

    def __init__(
        self,
        missing_policy: MissingVariablePolicy = MissingVariablePolicy.KEEP_AS_IS,
    ) -> None:
        self._variables: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.RLock()
        self._missing_policy = MissingVariablePolicy.parse(missing_policy)

    @property
    def missing_policy(self) -> MissingVariablePolicy:
        """Policy applied by resolve_variables to absent base variables."""
        return self._missing_policy

    @missing_policy.setter
    def missing_policy(self, policy: MissingVariablePolicy) -> None:
        self._missing_policy = MissingVariablePolicy.parse(policy)

    # -- writes ------------------------------------------------------------

    def set(self, name: str, value: Any) -> None:
        """Store a value under a full name ("${Task1.Body}" or "Task1.Body").

        Any drill-down after the base key is ignored; the value always
        replaces the whole base variable.

        Raises:
            MalformedExpressionError: If name has no scope and key
        """
        path = parse_path(name)
        self._put(path.scope, path.base_key, value)

    def set_scoped(self, scope: str, key: str, value: Any) -> None:
        """Store a value under an explicit scope and key."""
        if scope is None or key is None or not str(scope).strip() or not str(key).strip():
            raise MalformedExpressionError(
                f"{scope}.{key}", "Scope and key must be non-empty"
            )
        self._put(str(scope).strip(), str(key).strip(), value)

    def update(self, variables: Optional[Mapping[str, Any]]) -> List[str]:
        """Store several variables, one independent write per entry.

        Malformed names are skipped and the remaining entries still apply.

        Args:
            variables: Mapping of full variable names to values

        Returns:
            Names that were skipped because they could not be parsed
        """
        skipped: List[str] = []
        if not variables:
            return skipped
        for name, value in variables.items():
            try:
                self.set(name, value)
            except MalformedExpressionError as e:
                logger.warning("Skipping variable %r: %s", name, e)
                skipped.append(name)
        return skipped

    def set_from_cursor(self, name: str, cursor: Any) -> None:
        """Read a DB-API cursor fully and store its rows as a list of dicts.

        The cursor is not closed.
        """
        self.set(name, rows_from_cursor(cursor))

    def remove(self, name: str) -> bool:
        """Remove a base variable. Returns True if it was present."""
        path = parse_path(name)
        with self._lock:
            removed = self._variables.pop((path.scope, path.base_key), _ABSENT)
        if removed is not _ABSENT:
            logger.debug("Removed %s", path.base_name)
            return True
        return False

    def clear(self) -> None:
        """Remove every variable."""
        with self._lock:
            count = len(self._variables)
            self._variables.clear()
        logger.debug("Cleared %d variable(s)", count)

    def _put(self, scope: str, key: str, value: Any) -> None:
        with self._lock:
            self._variables[(scope, key)] = value
        logger.debug("Set %s.%s (%s)", scope, key, type(value).__name__)

    # -- reads -------------------------------------------------------------

    def lookup_base(self, scope: str, key: str, default: Any = None) -> Any:
        """Return the stored value for (scope, key), or default if absent."""
        with self._lock:
            return self._variables.get((scope, key), default)

    def has(self, scope: str, key: str) -> bool:
        """Check whether a base variable is present."""
        return self.lookup_base(scope, key, _ABSENT) is not _ABSENT

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        try:
            path = parse_path(name)
        except MalformedExpressionError:
            return False
        return self.has(path.scope, path.base_key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._variables)

    def names(self) -> List[str]:
        """List stored variable names as Scope.Key, in insertion order."""
        with self._lock:
            keys = list(self._variables)
        return [f"{scope}.{key}" for scope, key in keys]

    def snapshot(self) -> Dict[str, Any]:
        """Return a shallow copy of the store keyed by Scope.Key."""
        with self._lock:
            items = list(self._variables.items())
        return {f"{scope}.{key}": value for (scope, key), value in items}

    def get(self, expression: str) -> Optional[Any]:
        """Resolve an expression to a value.

        Args:
            expression: e.g. "${Task1.ResponseBody[0].key1}" or
                "Task1.ResponseHeader[TestHeader]"

        Returns:
            The resolved value, or None if the base variable is absent or
            any drill-down step is missing

        Raises:
            MalformedExpressionError: If the expression cannot be parsed
        """
        path = parse_path(expression)
        base = self.lookup_base(path.scope, path.base_key)
        if base is None:
            return None
        return drill(base, path.segments)

    def resolve_variables(self, template: Optional[str]) -> Optional[str]:
        """Replace every ${...} placeholder in a template with its value.

        A placeholder whose base variable is absent is handled by the
        missing-variable policy. A present base variable whose drill-down
        is missing becomes "" under every policy.

        Args:
            template: Text containing ${Scope.Key...} placeholders

        Returns:
            The interpolated text (None and "" are returned unchanged)

        Raises:
            MalformedExpressionError: If a placeholder cannot be parsed
            VariableNotFoundError: Under THROW_ERROR, for the first absent
                base variable
        """
        if not template:
            return template

        policy = self._missing_policy
        parts: List[str] = []
        last = 0

        for match in PLACEHOLDER_PATTERN.finditer(template):
            parts.append(template[last:match.start()])
            last = match.end()

            path = parse_path(match.group(1))
            base = self.lookup_base(path.scope, path.base_key, _ABSENT)
            if base is _ABSENT:
                if policy is MissingVariablePolicy.THROW_ERROR:
                    raise VariableNotFoundError(path.scope, path.base_key)
                if policy is MissingVariablePolicy.KEEP_AS_IS:
                    parts.append(match.group(0))
                continue

            parts.append(stringify(drill(base, path.segments)))

        parts.append(template[last:])
        return "".join(parts)

    def __repr__(self) -> str:
        return f"VariableStore({len(self)} variable(s), policy={self._missing_policy.value})"


def rows_from_cursor(cursor: Any) -> List[Dict[str, Any]]:
    """Convert the current result set of a DB-API cursor to row dicts.

    Column names come from cursor.description; column order is kept.
    """
    description = cursor.description or []
    columns = [col[0] for col in description]
    rows = [dict(zip(columns, record)) for record in cursor.fetchall()]
    logger.debug("Converted result set -> %d row(s)", len(rows))
    return rows


def parse_json(text: str) -> Any:
    """Parse JSON text into a dict/list tree before storing it.

    Raises:
        ValueError: If text is not valid JSON
    """
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValueError(f"Invalid JSON: {e}") from e


_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def parse_xml(text: str) -> "etree._ElementTree":
    """Parse XML text into an lxml document before storing it.

    Raises:
        ValueError: If text is not well-formed XML
    """
    data = text.encode("utf-8") if isinstance(text, str) else text
    try:
        root = etree.fromstring(data, parser=_XML_PARSER)
    except (etree.XMLSyntaxError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid XML: {e}") from e
    return etree.ElementTree(root)
