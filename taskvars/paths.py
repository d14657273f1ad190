"""Path expression parsing for ${Scope.Key[...]} variable references.

An expression is a scope, a base key and an ordered list of drill-down
segments:

    ${Task1.ResponseBody[0].key1}      -> Task1, ResponseBody, [0, "key1"]
    Task1.ResponseHeader[TestHeader]   -> Task1, ResponseHeader, ["TestHeader"]
    ${Task1.Xml[//root/items/item]}    -> Task1, Xml, ["//root/items/item"]

Bracket contents made only of ASCII digits are indexes, anything else is a
key. Brackets do not nest; their content is taken verbatim up to the first
closing bracket.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple, Union

from .errors import MalformedExpressionError

_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Segment:
    """One drill-down step: a named key or a positional index."""

    value: Union[str, int]

    @classmethod
    def key(cls, name: str) -> "Segment":
        return cls(name)

    @classmethod
    def index(cls, position: int) -> "Segment":
        return cls(position)

    @property
    def is_index(self) -> bool:
        return isinstance(self.value, int)

    @property
    def is_key(self) -> bool:
        return isinstance(self.value, str)

    def __str__(self) -> str:
        if self.is_index:
            return f"[{self.value}]"
        return str(self.value)


@dataclass(frozen=True)
class Path:
    """A parsed variable expression."""

    scope: str
    base_key: str
    segments: Tuple[Segment, ...] = ()

    @property
    def base_name(self) -> str:
        """Return the base variable name as Scope.Key."""
        return f"{self.scope}.{self.base_key}"


def unwrap(expression: str) -> str:
    """Strip surrounding whitespace and an optional ${...} wrapper."""
    text = expression.strip()
    if text.startswith("${") and text.endswith("}"):
        text = text[2:-1].strip()
    return text


def _bracket_segment(raw: str) -> Segment:
    content = raw.strip()
    if _DIGITS.fullmatch(content):
        return Segment.index(int(content))
    return Segment.key(content)


def tokenize(text: str) -> List[Segment]:
    """Split an unwrapped expression into segments.

    Args:
        text: Expression without the ${...} wrapper

    Returns:
        Segments in source order

    Raises:
        MalformedExpressionError: If a bracket is left open
    """
    segments: List[Segment] = []
    buf: List[str] = []
    in_bracket = False

    for char in text:
        if in_bracket:
            if char == "]":
                segments.append(_bracket_segment("".join(buf)))
                buf.clear()
                in_bracket = False
            else:
                buf.append(char)
        elif char == ".":
            if buf:
                segments.append(Segment.key("".join(buf)))
                buf.clear()
        elif char == "[":
            if buf:
                segments.append(Segment.key("".join(buf)))
                buf.clear()
            in_bracket = True
        else:
            buf.append(char)

    if in_bracket:
        raise MalformedExpressionError(text, f"Unterminated bracket in expression: {text!r}")
    if buf:
        segments.append(Segment.key("".join(buf)))
    return segments


def parse_path(expression: str) -> Path:
    """Parse a variable expression into scope, base key and segments.

    Args:
        expression: Expression with or without the ${...} wrapper

    Returns:
        The parsed Path

    Raises:
        MalformedExpressionError: If the expression is empty, has an
            unterminated bracket, or does not start with two keys
    """
    if expression is None or not expression.strip():
        raise MalformedExpressionError(expression or "", "Empty variable expression")

    segments = tokenize(unwrap(expression))
    if (
        len(segments) < 2
        or not segments[0].is_key
        or not segments[1].is_key
        or not segments[0].value.strip()
        or not segments[1].value.strip()
    ):
        raise MalformedExpressionError(expression)

    return Path(
        scope=segments[0].value.strip(),
        base_key=segments[1].value.strip(),
        segments=tuple(segments[2:]),
    )


def base_name(expression: str) -> str:
    """Normalize any expression to its base variable name (Scope.Key)."""
    return parse_path(expression).base_name
