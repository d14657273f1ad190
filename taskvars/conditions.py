"""Grouped IF-condition evaluation over resolved variable values.

An IF task holds groups of conditions. Conditions inside a group are joined
by the group operator; groups are joined by the between-groups operator:

    between_groups_operator: AND
    groups:
      - group_operator: OR
        conditions:
          - first_value: ${Task1.ResponseCode}
            operator: equals
            second_value: "200"
          - first_value: ${Task1.ResponseBody[0].status}
            operator: isnotnull
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .store import PLACEHOLDER_PATTERN, VariableStore
from .stringify import stringify

OPERATORS = (
    "equals",
    "notequal",
    "isnull",
    "isnotnull",
    "isemptystring",
    "isnotemptystring",
)


class ConditionError(Exception):
    """Raised when an IF condition is invalid."""

    pass


@dataclass
class ConditionResult:
    """Result of an IF evaluation."""

    satisfied: bool
    reason: str


@dataclass
class Condition:
    """A single comparison between two operand templates."""

    first_value: Optional[str]
    operator: str
    second_value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        operator = data.get("operator")
        if not operator:
            raise ConditionError("Condition requires 'operator' field")
        if str(operator).lower() not in OPERATORS:
            raise ConditionError(
                f"Unknown operator '{operator}'. Valid: {', '.join(OPERATORS)}"
            )
        return cls(
            first_value=_optional_str(data.get("first_value")),
            operator=str(operator),
            second_value=_optional_str(data.get("second_value")),
        )


@dataclass
class ConditionGroup:
    """Conditions joined by one operator."""

    conditions: List[Condition] = field(default_factory=list)
    group_operator: str = "AND"
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionGroup":
        return cls(
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
            group_operator=str(data.get("group_operator", "AND")),
            id=_optional_str(data.get("id")),
        )


@dataclass
class IfSettings:
    """Groups of conditions joined by the between-groups operator."""

    groups: List[ConditionGroup] = field(default_factory=list)
    between_groups_operator: str = "AND"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IfSettings":
        """Build settings from a task configuration dictionary.

        Raises:
            ConditionError: If a condition is missing or has an unknown operator
        """
        groups = data.get("groups") or []
        if not isinstance(groups, list):
            raise ConditionError("IF 'groups' must be a list")
        return cls(
            groups=[ConditionGroup.from_dict(g) for g in groups],
            between_groups_operator=str(data.get("between_groups_operator", "AND")),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return stringify(value)


def _is_and(operator: Optional[str]) -> bool:
    return (operator or "").strip().upper() == "AND"


def _combine(operator: str, results: List[bool]) -> bool:
    # AND starts from true, anything else is OR and starts from false
    if _is_and(operator):
        return all(results)
    return any(results)


class ConditionEvaluator:
    """Evaluates IfSettings against a variable store."""

    def __init__(self, store: VariableStore) -> None:
        self.store = store

    def evaluate(self, settings: IfSettings) -> ConditionResult:
        """Evaluate every group and combine the results.

        Args:
            settings: Groups and operators to evaluate

        Returns:
            ConditionResult with the outcome and a short reason

        Raises:
            ConditionError: If a condition uses an unknown operator
        """
        if not settings.groups:
            return ConditionResult(satisfied=True, reason="No condition specified")

        group_results = [self._evaluate_group(group) for group in settings.groups]
        satisfied = _combine(settings.between_groups_operator, group_results)
        passed = sum(1 for r in group_results if r)
        return ConditionResult(
            satisfied=satisfied,
            reason=(
                f"{passed}/{len(group_results)} group(s) satisfied "
                f"({settings.between_groups_operator.upper()})"
            ),
        )

    def _evaluate_group(self, group: ConditionGroup) -> bool:
        if not group.conditions:
            return True
        return _combine(
            group.group_operator,
            [self.evaluate_condition(c) for c in group.conditions],
        )

    def evaluate_condition(self, condition: Condition) -> bool:
        """Evaluate a single condition after resolving both operands."""
        left = self._resolve_operand(condition.first_value)
        right = self._resolve_operand(condition.second_value)
        op = condition.operator.strip().lower()

        if op == "equals":
            return _equals(left, right)
        if op == "notequal":
            return not _equals(left, right)
        if op == "isnull":
            return left is None
        if op == "isnotnull":
            return left is not None
        if op == "isemptystring":
            return left is None or left == ""
        if op == "isnotemptystring":
            return left is not None and left != ""
        raise ConditionError(f"Unknown operator '{condition.operator}'")

    def _resolve_operand(self, template: Optional[str]) -> Optional[str]:
        """Resolve an operand template.

        An operand that is exactly one placeholder is looked up directly so
        that an absent variable stays None; anything else is interpolated.
        """
        if template is None:
            return None
        stripped = template.strip()
        match = PLACEHOLDER_PATTERN.fullmatch(stripped)
        if match:
            value = self.store.get(stripped)
            return None if value is None else stringify(value)
        return self.store.resolve_variables(template)


def _equals(left: Optional[str], right: Optional[str]) -> bool:
    if left is None and right is None:
        return True
    if left is None or right is None:
        return False
    try:
        return float(left) == float(right)
    except ValueError:
        return left == right
