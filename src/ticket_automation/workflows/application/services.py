"""
Workflow Application Services
=============================

Application services that drive rule matching and execution for
ticket and asset lifecycle events.

- ActionExecutor: applies exactly one declarative action
- WorkflowOrchestrator: loads the matching templates, evaluates their
  conditions and runs their actions, recording an execution per template
"""

import hashlib
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ticket_automation.config import ActionType, NotificationType
from ticket_automation.core import (
    ApplicationException,
    IEntityStore,
    INotificationSink,
    IMessagingGateway,
)
from ticket_automation.shared.domain import ConditionEvaluator
from ticket_automation.shared.infrastructure.logging import get_logger
from ticket_automation.workflows.domain import (
    WorkflowTemplate,
    WorkflowExecution,
    ActionResult,
    WorkflowAction,
    AssignAction,
    ChangeStatusAction,
    ChangePriorityAction,
    AddCommentAction,
    SendNotificationAction,
    SendWhatsAppAction,
)

logger = get_logger(__name__)

SYSTEM_COMMENT_PREFIX = "🤖 "
DEFAULT_NOTIFICATION_TITLE = "Workflow Notification"
DEFAULT_NOTIFICATION_MESSAGE = "You have a new notification"
DEFAULT_WHATSAPP_MESSAGE = "You have a new update"


# ========== Repository Interfaces (Dependency Inversion) ==========

class IWorkflowTemplateRepository(ABC):
    """Interface for workflow template data access."""

    @abstractmethod
    async def list_active(self, entity_type: str, trigger: str) -> List[WorkflowTemplate]:
        """Active templates for the pair, priority desc, then created_at asc, then id."""

    @abstractmethod
    async def list_all(self) -> List[WorkflowTemplate]:
        """All templates, priority desc, then created_at asc, then id."""

    @abstractmethod
    async def get(self, template_id: str) -> Optional[WorkflowTemplate]:
        """Get template by ID."""

    @abstractmethod
    async def create(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Create new template."""

    @abstractmethod
    async def update(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Update existing template."""

    @abstractmethod
    async def delete(self, template_id: str) -> bool:
        """Delete template; returns False if it did not exist."""


class IWorkflowExecutionRepository(ABC):
    """Interface for the append-only execution log."""

    @abstractmethod
    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist a new running execution and assign its ID."""

    @abstractmethod
    async def save(self, execution: WorkflowExecution) -> None:
        """Persist the terminal state of an execution."""

    @abstractmethod
    async def find_for_event(self, workflow_id: str, event_id: str) -> Optional[WorkflowExecution]:
        """The execution a template already recorded for a lifecycle event, if any."""

    @abstractmethod
    def savepoint(self) -> AbstractAsyncContextManager:
        """Isolation boundary; changes inside are discarded if it exits with an error."""

    @abstractmethod
    async def list(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50
    ) -> List[WorkflowExecution]:
        """Most recent executions first."""


# ========== Application Services ==========

class ActionExecutor:
    """
    Applies one workflow action to an entity.

    Each action writes inside its own savepoint of the entity store: a
    failing action undoes only its own writes, while actions that already
    succeeded stay applied. Collaborator failures (ApplicationException)
    come back as `success=False` results, anything else propagates to the
    orchestrator.
    """

    def __init__(
        self,
        store: IEntityStore,
        notifications: INotificationSink,
        messaging: IMessagingGateway
    ):
        self._store = store
        self._notifications = notifications
        self._messaging = messaging
        self._handlers: Dict[str, Callable[[Any, str], Awaitable[ActionResult]]] = {
            ActionType.ASSIGN: self._assign,
            ActionType.CHANGE_STATUS: self._change_status,
            ActionType.CHANGE_PRIORITY: self._change_priority,
            ActionType.ADD_COMMENT: self._add_comment,
            ActionType.SEND_NOTIFICATION: self._send_notification,
            ActionType.SEND_WHATSAPP: self._send_whatsapp,
        }

    async def execute(self, action: WorkflowAction, entity_id: str) -> ActionResult:
        handler = self._handlers[action.type]
        logger.debug("Executing action", extra={"action": action.type, "entity_id": entity_id})

        try:
            async with self._store.savepoint():
                result = await handler(action, entity_id)
        except ApplicationException as e:
            logger.warning(
                "Workflow action failed",
                extra={"action": action.type, "entity_id": entity_id, "error": e.message}
            )
            return ActionResult.failed(action.type, e.message)

        logger.info(
            "Workflow action applied",
            extra={"action": action.type, "entity_id": entity_id, **result.details}
        )
        return result

    async def _assign(self, action: AssignAction, ticket_id: str) -> ActionResult:
        user = await self._store.get_user(action.user_id)
        if user is None:
            return ActionResult.failed(action.type, f"User {action.user_id} not found")

        ticket = await self._store.update_ticket(ticket_id, assigned_to_id=user.id)
        return ActionResult.ok(action.type, assigned_to=ticket.assigned_to_id, assigned_to_name=user.name)

    async def _change_status(self, action: ChangeStatusAction, ticket_id: str) -> ActionResult:
        ticket = await self._store.update_ticket(ticket_id, status=action.status)
        return ActionResult.ok(action.type, status=ticket.status)

    async def _change_priority(self, action: ChangePriorityAction, ticket_id: str) -> ActionResult:
        ticket = await self._store.update_ticket(ticket_id, priority=action.priority)
        return ActionResult.ok(action.type, priority=ticket.priority)

    async def _add_comment(self, action: AddCommentAction, ticket_id: str) -> ActionResult:
        author = await self._store.get_system_user()
        if author is None:
            return ActionResult.failed(action.type, "System user not found")

        content = f"{SYSTEM_COMMENT_PREFIX}{action.comment}"
        content_hash = comment_hash(content, ticket_id, author.id)

        comment_id, created = await self._store.add_comment(ticket_id, author.id, content, content_hash)
        return ActionResult.ok(action.type, comment_id=comment_id, duplicate=not created)

    async def _send_notification(self, action: SendNotificationAction, ticket_id: str) -> ActionResult:
        message = action.message or DEFAULT_NOTIFICATION_MESSAGE
        delivered = 0

        for user_id in action.recipients:
            if await self._notifications.notify(
                user_id,
                NotificationType.WORKFLOW_ACTION,
                DEFAULT_NOTIFICATION_TITLE,
                message,
                ticket_id,
            ):
                delivered += 1

        return ActionResult.ok(action.type, recipient_count=len(action.recipients), delivered=delivered)

    async def _send_whatsapp(self, action: SendWhatsAppAction, ticket_id: str) -> ActionResult:
        message = action.message or DEFAULT_WHATSAPP_MESSAGE
        users = await self._store.get_users(action.recipients)

        sent_count = 0
        for user in users:
            if user.can_receive_whatsapp and await self._messaging.send_text(user.phone, message):
                sent_count += 1

        return ActionResult.ok(action.type, sent_count=sent_count)


def comment_hash(content: str, ticket_id: str, author_id: str) -> str:
    """Duplicate-detection hash of an automated comment."""
    return hashlib.md5(f"{content}{ticket_id}{author_id}".encode("utf-8")).hexdigest()


class WorkflowOrchestrator:
    """
    Runs every active template for a lifecycle event.

    Templates run one after another in priority order. Each gets its own
    execution record and its own failure boundary: an exception inside one
    template marks that execution failed (already applied actions stay
    applied) and the next template still runs.

    execute_workflows runs all templates in the caller's transaction, each
    inside a savepoint. Callers that commit per template use
    matching_templates and run_template instead.
    """

    def __init__(
        self,
        templates: IWorkflowTemplateRepository,
        executions: IWorkflowExecutionRepository,
        executor: ActionExecutor,
        evaluator: Optional[ConditionEvaluator] = None
    ):
        self._templates = templates
        self._executions = executions
        self._executor = executor
        self._evaluator = evaluator or ConditionEvaluator()

    async def matching_templates(self, entity_type: str, trigger: str) -> List[WorkflowTemplate]:
        templates = await self._templates.list_active(entity_type, trigger)
        logger.info(
            "Workflows matched trigger",
            extra={"entity_type": entity_type, "trigger": trigger, "count": len(templates)}
        )
        return templates

    async def execute_workflows(
        self,
        entity_type: str,
        trigger: str,
        entity_id: str,
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None,
        event_id: Optional[str] = None
    ) -> List[WorkflowExecution]:
        """
        Execute workflows for a trigger on one entity.

        Raises only if the templates themselves cannot be loaded. A template
        whose execution record cannot be written is rolled back to its
        savepoint and left out of the result.

        Returns:
            The execution records written, in run order
        """
        templates = await self.matching_templates(entity_type, trigger)

        executions = []
        for template in templates:
            try:
                async with self._executions.savepoint():
                    execution = await self.run_template(template, entity_id, current, previous, event_id)
            except Exception as e:
                logger.error(
                    "Could not record workflow execution, template rolled back",
                    extra={"workflow_id": template.id, "entity_id": entity_id, "error": str(e)}
                )
                continue
            executions.append(execution)
        return executions

    async def run_template(
        self,
        template: WorkflowTemplate,
        entity_id: str,
        current: Dict[str, Any],
        previous: Optional[Dict[str, Any]] = None,
        event_id: Optional[str] = None
    ) -> WorkflowExecution:
        """
        Run one template and record its execution.

        When the template already has an execution for event_id, that
        record is returned and nothing runs. Failures of the template's own
        actions end up in the record; only failures to write the record
        itself raise.
        """
        if event_id is not None:
            recorded = await self._executions.find_for_event(template.id, event_id)
            if recorded is not None:
                logger.info(
                    "Workflow already ran for this event, skipping",
                    extra={"workflow_id": template.id, "event_id": event_id, "status": recorded.status}
                )
                return recorded

        execution = await self._executions.create(WorkflowExecution(
            workflow_id=template.id,
            entity_type=template.entity_type,
            entity_id=entity_id,
            event_id=event_id,
        ))

        results: List[Dict[str, Any]] = []
        try:
            if not self._evaluator.evaluate(template.conditions, current, previous):
                logger.info(
                    "Workflow conditions not met, skipping",
                    extra={"workflow_id": template.id, "workflow": template.name}
                )
                execution.skip("conditions_not_met")
            else:
                for action in template.actions:
                    result = await self._executor.execute(action, entity_id)
                    results.append(result.to_dict())
                execution.complete({"actions": results})
                logger.info(
                    "Workflow completed",
                    extra={"workflow_id": template.id, "workflow": template.name, "actions": len(results)}
                )
        except Exception as e:
            logger.error(
                "Workflow failed",
                extra={
                    "workflow_id": template.id,
                    "workflow": template.name,
                    "entity_id": entity_id,
                    "applied_actions": len(results),
                    "error": str(e),
                },
                exc_info=True,
            )
            execution.fail(str(e), results)

        await self._executions.save(execution)
        return execution
