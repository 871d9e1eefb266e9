"""
Assignment Domain Entities
==========================

Auto-assignment rules: conditions over the ticket plus the policy used to
pick a technician when they match.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ticket_automation.config import AssignmentType
from ticket_automation.core.exceptions import ValidationException
from ticket_automation.shared.domain import Condition


@dataclass
class AssignmentRule:
    """
    An administrator-authored assignment rule.

    Rules are tried in priority order; the first matching rule that
    resolves an available technician wins.
    """

    id: str
    name: str
    assignment_type: str
    conditions: List[Condition] = field(default_factory=list)
    target_user_id: Optional[str] = None
    target_user_ids: List[str] = field(default_factory=list)
    is_active: bool = True
    priority: int = 0
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def rotation(self) -> List[str]:
        """Round-robin targets in declared order, without duplicates."""
        return list(dict.fromkeys(self.target_user_ids))


    def validate(self) -> None:
        """Raises ValidationException if the policy lacks the targets it needs."""
        errors = {}
        if self.assignment_type == AssignmentType.SPECIFIC_USER and not self.target_user_id:
            errors["target_user_id"] = "specific_user rules require target_user_id"
        if self.assignment_type == AssignmentType.ROUND_ROBIN and not self.target_user_ids:
            errors["target_user_ids"] = "round_robin rules require target_user_ids"
        if errors:
            raise ValidationException(f"Assignment rule {self.id} is incomplete", errors)
