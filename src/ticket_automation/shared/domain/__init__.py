"""
Shared Domain
=============

Generic domain building blocks used by more than one bounded context.
"""

from ticket_automation.shared.domain.conditions import (
    Condition,
    ConditionEvaluator,
    ConditionOperatorStr,
    parse_conditions,
    dump_conditions,
)

__all__ = [
    "Condition",
    "ConditionEvaluator",
    "ConditionOperatorStr",
    "parse_conditions",
    "dump_conditions",
]
