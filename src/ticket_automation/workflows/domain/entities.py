"""
Workflow Domain Entities
========================

Pure Python entities for rule-driven ticket and asset automation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ticket_automation.config import ExecutionStatus
from ticket_automation.core.exceptions import ExecutionStateException
from ticket_automation.shared.domain import Condition
from ticket_automation.workflows.domain.value_objects import WorkflowAction


@dataclass
class WorkflowTemplate:
    """
    An administrator-authored automation rule.

    Fires on (entity_type, trigger); when every condition holds its
    actions run in declared order. Higher priority templates run first.
    """

    id: str
    name: str
    entity_type: str
    trigger: str
    actions: List[WorkflowAction] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)
    is_active: bool = True
    priority: int = 0
    description: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ActionResult:
    """Outcome of a single action."""

    action: str
    success: bool
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, action: str, **details: Any) -> "ActionResult":
        return cls(action=action, success=True, details=details)

    @classmethod
    def failed(cls, action: str, error: str) -> "ActionResult":
        return cls(action=action, success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action, "success": self.success, **self.details}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class WorkflowExecution:
    """
    Audit record of one template run against one entity.

    Starts `running` and moves exactly once to `completed` or `failed`;
    a terminal record can no longer be changed. `event_id` ties the run to
    the lifecycle event that triggered it, so a redelivered event does not
    run the template a second time.
    """

    workflow_id: str
    entity_type: str
    entity_id: str
    id: Optional[str] = None
    event_id: Optional[str] = None
    status: str = ExecutionStatus.RUNNING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    def _ensure_running(self) -> None:
        if self.is_terminal:
            raise ExecutionStateException(self.id, self.status)

    def complete(self, result: Dict[str, Any], at: Optional[datetime] = None) -> None:
        self._ensure_running()
        self.status = ExecutionStatus.COMPLETED
        self.result = result
        self.completed_at = at or datetime.now(timezone.utc)

    def skip(self, reason: str, at: Optional[datetime] = None) -> None:
        self.complete({"skipped": True, "reason": reason}, at)

    def fail(
        self,
        error: str,
        partial_results: Optional[List[Dict[str, Any]]] = None,
        at: Optional[datetime] = None
    ) -> None:
        self._ensure_running()
        self.status = ExecutionStatus.FAILED
        self.error = error
        if partial_results:
            self.result = {"actions": partial_results}
        self.completed_at = at or datetime.now(timezone.utc)
