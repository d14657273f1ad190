"""Drill-down navigation over heterogeneous stored values.

The shape of the current value is checked again at every step, so paths may
cross JSON trees, maps, lists, XML documents and plain Python objects in any
nesting. A step that cannot be applied yields None; navigation never raises.
"""

import inspect
import logging
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Union

from lxml import etree

from .paths import Segment

logger = logging.getLogger(__name__)

SCALAR_TYPES = (str, bytes, bytearray, int, float, bool, Decimal, date, datetime, time)

_XPATH_PREFIXES = ("/", "//", ".//")


def is_xml(value: Any) -> bool:
    """Return True for lxml documents and elements."""
    return isinstance(value, (etree._ElementTree, etree._Element))


def looks_like_xpath(text: str) -> bool:
    """Check whether a key segment should be evaluated as an XPath query."""
    return text.startswith(_XPATH_PREFIXES)


def drill(value: Any, segments: Iterable[Segment]) -> Optional[Any]:
    """Apply segments to a value, one shape-dispatched step at a time.

    Args:
        value: The base value taken from the store
        segments: Drill-down segments in order

    Returns:
        The value at the end of the path, or None if any step is absent
    """
    current = value
    for segment in segments:
        if current is None:
            return None

        if is_xml(current):
            stop = segment.is_key and looks_like_xpath(segment.value)
            current = navigate_xml(current, segment)
            if stop:
                # The XPath addresses the target on its own; ignore the rest.
                return current
        elif isinstance(current, SCALAR_TYPES):
            return None
        elif isinstance(current, Mapping):
            current = navigate_mapping(current, segment)
        elif isinstance(current, (list, tuple)):
            current = navigate_sequence(current, segment)
        else:
            current = navigate_object(current, segment)

    return current


def navigate_mapping(mapping: Mapping, segment: Segment) -> Optional[Any]:
    """Key lookup on a mapping; maps have no positional order."""
    if segment.is_index:
        return None
    return mapping.get(segment.value)


def navigate_sequence(items: Union[list, tuple], segment: Segment) -> Optional[Any]:
    """Index lookup on a list or tuple; lists have no named members."""
    if not segment.is_index:
        return None
    idx = segment.value
    if 0 <= idx < len(items):
        return items[idx]
    return None


def navigate_xml(document: Any, segment: Segment) -> Optional[Any]:
    """Evaluate a segment against an XML document.

    A key that looks like XPath is evaluated as is; a plain tag name becomes
    a descendant search (//tag). One match gives its text content, several
    give a list of text contents, none gives None.
    """
    if not segment.is_key:
        return None

    key = segment.value
    xpath = key if looks_like_xpath(key) else f"//{key}"
    try:
        result = document.xpath(xpath)
    except (etree.XPathError, ValueError) as e:
        logger.debug("XPath %r failed: %s", xpath, e)
        return None

    # Only node sets are meaningful here; numbers and booleans are not.
    if not isinstance(result, list) or not result:
        return None

    texts = [_text_content(node) for node in result]
    if len(texts) == 1:
        return texts[0]
    return texts


def _text_content(node: Any) -> str:
    if isinstance(node, etree._Element):
        return "".join(node.itertext())
    return str(node)


def _accessor_names(key: str) -> List[str]:
    capitalized = key[:1].upper() + key[1:]
    return [f"get{capitalized}", f"get_{key}", f"is{capitalized}", f"is_{key}"]


def _call_without_args(func: Any) -> Any:
    """Call func if it accepts zero arguments, raising TypeError otherwise."""
    try:
        inspect.signature(func).bind()
    except ValueError:
        # Builtins without signature metadata; let the call decide.
        pass
    return func()


def navigate_object(obj: Any, segment: Segment) -> Optional[Any]:
    """Probe an arbitrary object for a named member or positional item.

    Keys try zero-argument accessors (getX, get_x, isX, is_x) and then the
    attribute itself, calling it when it is a zero-argument callable.
    Indexes go through __getitem__. Private names are never probed.
    """
    if segment.is_index:
        try:
            return obj[segment.value]
        except Exception as e:
            logger.debug("Index %s on %s failed: %s", segment.value, type(obj).__name__, e)
            return None

    key = segment.value
    if not key or key.startswith("_"):
        return None

    for name in _accessor_names(key):
        try:
            accessor = getattr(obj, name, None)
            if accessor is None or not callable(accessor):
                continue
            return _call_without_args(accessor)
        except Exception as e:
            logger.debug("Accessor %s on %s failed: %s", name, type(obj).__name__, e)

    try:
        attr = getattr(obj, key)
    except Exception:
        return None

    if callable(attr) and not isinstance(attr, type):
        try:
            return _call_without_args(attr)
        except Exception as e:
            logger.debug("Accessor %s on %s failed: %s", key, type(obj).__name__, e)
            return None
    return attr
