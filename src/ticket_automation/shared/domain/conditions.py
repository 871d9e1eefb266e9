"""
Conditions
==========

Declarative predicates over entity field paths, shared by workflow
templates and assignment rules.

Conditions are validated when a definition is loaded, so an unknown
operator or a non-list membership operand never reaches evaluation.
Evaluation is pure: no I/O and no side effects.
"""

import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from ticket_automation.config import ConditionOperator
from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

ConditionOperatorStr = Literal[
    "equals", "not_equals", "contains", "not_contains",
    "greater_than", "less_than", "in", "not_in"
]

PREVIOUS_PREFIX = "previous."

_MISSING = object()


class Condition(BaseModel):
    """A single predicate: `<field> <operator> <value>`."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1, description="Dot-separated field path")
    operator: ConditionOperatorStr = Field(..., description="Comparison operator")
    value: Any = Field(default=None, description="Comparison operand")

    @model_validator(mode="after")
    def validate_membership_operand(self) -> "Condition":
        """`in` / `not_in` compare against a list."""
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, (list, tuple)):
                raise ValueError(f"operator '{self.operator}' requires a list value")
        return self


_conditions_adapter = TypeAdapter(List[Condition])


def parse_conditions(raw: Optional[list]) -> List[Condition]:
    """Validate stored condition JSON; raises pydantic.ValidationError."""
    return _conditions_adapter.validate_python(raw or [])


def dump_conditions(conditions: List[Condition]) -> list:
    return [c.model_dump(mode="json") for c in conditions]


class ConditionEvaluator:
    """
    Evaluate conjunctive condition lists against entity snapshots.

    Field paths walk nested mappings (and attributes of nested objects);
    a missing segment resolves to "undefined". Paths prefixed with
    `previous.` are resolved against the previous snapshot of a change
    trigger.
    """

    def evaluate(
        self,
        conditions: List[Condition],
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Return True iff every condition holds (an empty list holds)."""
        for condition in conditions:
            if not self.evaluate_single(condition, current, previous):
                return False
        return True

    def evaluate_single(
        self,
        condition: Condition,
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None
    ) -> bool:
        path = condition.field
        source = current
        if path.startswith(PREVIOUS_PREFIX):
            path = path[len(PREVIOUS_PREFIX):]
            source = previous

        field_value = self.get_field_value(source, path)
        return self._compare(field_value, condition.operator, condition.value)

    @staticmethod
    def get_field_value(data: Any, field_path: str) -> Any:
        """
        Get a field value using dot notation.

        Example: "asset.office_location" -> data["asset"]["office_location"]
        """
        value = data
        for part in field_path.split("."):
            if isinstance(value, dict):
                value = value.get(part, _MISSING)
            elif value is not None and value is not _MISSING and hasattr(value, part):
                value = getattr(value, part)
            else:
                return _MISSING
            if value is _MISSING:
                return _MISSING
        return value

    def _compare(self, field_value: Any, operator: str, compare_value: Any) -> bool:
        """Compare values using operator."""
        if operator == ConditionOperator.EQUALS:
            return _strict_equals(field_value, compare_value)

        elif operator == ConditionOperator.NOT_EQUALS:
            return not _strict_equals(field_value, compare_value)

        elif operator == ConditionOperator.CONTAINS:
            return _as_text(compare_value) in _as_text(field_value)

        elif operator == ConditionOperator.NOT_CONTAINS:
            return _as_text(compare_value) not in _as_text(field_value)

        elif operator == ConditionOperator.GREATER_THAN:
            return _as_number(field_value) > _as_number(compare_value)

        elif operator == ConditionOperator.LESS_THAN:
            return _as_number(field_value) < _as_number(compare_value)

        elif operator == ConditionOperator.IN:
            return isinstance(compare_value, (list, tuple)) and _is_member(field_value, compare_value)

        elif operator == ConditionOperator.NOT_IN:
            return isinstance(compare_value, (list, tuple)) and not _is_member(field_value, compare_value)

        # Unreachable for validated conditions
        logger.warning("Unknown condition operator", extra={"operator": operator})
        return False


def _strict_equals(left: Any, right: Any) -> bool:
    if left is _MISSING:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _is_member(value: Any, candidates) -> bool:
    return any(_strict_equals(value, candidate) for candidate in candidates)


def _as_text(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).lower()


def _as_number(value: Any) -> float:
    """Numeric coercion; anything unparseable becomes NaN (compares false)."""
    if value is _MISSING or value is None:
        return math.nan
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan
