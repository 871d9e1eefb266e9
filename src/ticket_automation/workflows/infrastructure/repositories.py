"""
Workflow Infrastructure Repositories
====================================

SQLAlchemy implementations of the workflow repository interfaces.

Stored definitions are validated into typed conditions and actions on
load. A template whose stored JSON no longer validates is logged and left
out of the active set rather than breaking every event that would match it.
"""

from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.core import InvalidDefinitionException, RepositoryException
from ticket_automation.infrastructure.database.repositories import (
    nested_transaction,
    repository_errors,
    to_uuid,
)
from ticket_automation.shared.infrastructure.logging import get_logger
from ticket_automation.workflows.application import (
    IWorkflowTemplateRepository,
    IWorkflowExecutionRepository,
)
from ticket_automation.workflows.domain import (
    WorkflowTemplate,
    WorkflowExecution,
    parse_actions,
    parse_conditions,
    dump_actions,
    dump_conditions,
)
from ticket_automation.workflows.infrastructure.models import (
    WorkflowTemplateModel,
    WorkflowExecutionModel,
)

logger = get_logger(__name__)


def template_from_model(model: WorkflowTemplateModel) -> WorkflowTemplate:
    """Raises pydantic.ValidationError if the stored definition is malformed."""
    return WorkflowTemplate(
        id=str(model.id),
        name=model.name,
        description=model.description,
        entity_type=model.entity_type,
        trigger=model.trigger,
        conditions=parse_conditions(model.conditions),
        actions=parse_actions(model.actions),
        is_active=model.is_active,
        priority=model.priority,
        created_at=model.created_at,
    )


def execution_from_model(model: WorkflowExecutionModel) -> WorkflowExecution:
    return WorkflowExecution(
        id=str(model.id),
        workflow_id=str(model.workflow_id),
        entity_type=model.entity_type,
        entity_id=model.entity_id,
        event_id=model.event_id,
        status=model.status,
        result=model.result,
        error=model.error,
        executed_at=model.executed_at,
        completed_at=model.completed_at,
    )


class SQLAlchemyWorkflowTemplateRepository(IWorkflowTemplateRepository):
    """Workflow templates in the 'workflow_templates' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _ordered(stmt):
        return stmt.order_by(
            WorkflowTemplateModel.priority.desc(),
            WorkflowTemplateModel.created_at.asc(),
            WorkflowTemplateModel.id.asc(),
        )

    def _load_valid(self, models: List[WorkflowTemplateModel]) -> List[WorkflowTemplate]:
        templates = []
        for model in models:
            try:
                templates.append(template_from_model(model))
            except ValidationError as e:
                logger.error(
                    "Invalid workflow definition, skipping",
                    extra={"workflow_id": str(model.id), "workflow": model.name, "error": str(e)}
                )
        return templates

    async def list_active(self, entity_type: str, trigger: str) -> List[WorkflowTemplate]:
        stmt = self._ordered(
            select(WorkflowTemplateModel).where(
                WorkflowTemplateModel.entity_type == entity_type,
                WorkflowTemplateModel.trigger == trigger,
                WorkflowTemplateModel.is_active.is_(True),
            )
        )
        async with repository_errors("list_active_workflows"):
            result = await self._session.execute(stmt)
            models = result.scalars().all()
        return self._load_valid(models)

    async def list_all(self) -> List[WorkflowTemplate]:
        async with repository_errors("list_workflows"):
            result = await self._session.execute(self._ordered(select(WorkflowTemplateModel)))
            models = result.scalars().all()
        return self._load_valid(models)

    async def _get_model(self, template_id: str) -> Optional[WorkflowTemplateModel]:
        template_uuid = to_uuid(template_id)
        if template_uuid is None:
            return None
        return await self._session.get(WorkflowTemplateModel, template_uuid)

    async def get(self, template_id: str) -> Optional[WorkflowTemplate]:
        async with repository_errors("get_workflow"):
            model = await self._get_model(template_id)
        if model is None:
            return None
        try:
            return template_from_model(model)
        except ValidationError as e:
            raise InvalidDefinitionException("Workflow", template_id, e) from e

    async def create(self, template: WorkflowTemplate) -> WorkflowTemplate:
        model = WorkflowTemplateModel(
            name=template.name,
            description=template.description,
            entity_type=template.entity_type,
            trigger=template.trigger,
            conditions=dump_conditions(template.conditions),
            actions=dump_actions(template.actions),
            is_active=template.is_active,
            priority=template.priority,
        )
        async with repository_errors("create_workflow"):
            self._session.add(model)
            await self._session.flush()
            await self._session.refresh(model)
        return template_from_model(model)

    async def update(self, template: WorkflowTemplate) -> WorkflowTemplate:
        async with repository_errors("update_workflow"):
            model = await self._get_model(template.id)
            if model is None:
                raise RepositoryException(f"Workflow {template.id} not found")

            model.name = template.name
            model.description = template.description
            model.entity_type = template.entity_type
            model.trigger = template.trigger
            model.conditions = dump_conditions(template.conditions)
            model.actions = dump_actions(template.actions)
            model.is_active = template.is_active
            model.priority = template.priority

            await self._session.flush()
            await self._session.refresh(model)
        return template_from_model(model)

    async def delete(self, template_id: str) -> bool:
        template_uuid = to_uuid(template_id)
        if template_uuid is None:
            return False
        async with repository_errors("delete_workflow"):
            result = await self._session.execute(
                delete(WorkflowTemplateModel).where(WorkflowTemplateModel.id == template_uuid)
            )
        return result.rowcount > 0


class SQLAlchemyWorkflowExecutionRepository(IWorkflowExecutionRepository):
    """Append-only log in the 'workflow_executions' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def savepoint(self):
        return nested_transaction(self._session)

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        model = WorkflowExecutionModel(
            workflow_id=to_uuid(execution.workflow_id),
            entity_type=execution.entity_type,
            entity_id=execution.entity_id,
            event_id=execution.event_id,
            status=execution.status,
            executed_at=execution.executed_at,
        )
        async with repository_errors("create_execution"):
            self._session.add(model)
            await self._session.flush()
        execution.id = str(model.id)
        return execution

    async def save(self, execution: WorkflowExecution) -> None:
        async with repository_errors("save_execution"):
            model = await self._session.get(WorkflowExecutionModel, to_uuid(execution.id))
            if model is None:
                raise RepositoryException(f"Workflow execution {execution.id} not found")

            model.status = execution.status
            model.result = execution.result
            model.error = execution.error
            model.completed_at = execution.completed_at
            await self._session.flush()

    async def find_for_event(self, workflow_id: str, event_id: str) -> Optional[WorkflowExecution]:
        workflow_uuid = to_uuid(workflow_id)
        if workflow_uuid is None:
            return None
        stmt = select(WorkflowExecutionModel).where(
            WorkflowExecutionModel.workflow_id == workflow_uuid,
            WorkflowExecutionModel.event_id == event_id,
        )
        async with repository_errors("find_execution_for_event"):
            result = await self._session.execute(stmt)
            model = result.scalar_one_or_none()
        return execution_from_model(model) if model is not None else None

    async def list(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50
    ) -> List[WorkflowExecution]:
        stmt = select(WorkflowExecutionModel)
        if workflow_id is not None:
            workflow_uuid = to_uuid(workflow_id)
            if workflow_uuid is None:
                return []
            stmt = stmt.where(WorkflowExecutionModel.workflow_id == workflow_uuid)
        if status is not None:
            stmt = stmt.where(WorkflowExecutionModel.status == status)
        stmt = stmt.order_by(WorkflowExecutionModel.executed_at.desc()).limit(limit)

        async with repository_errors("list_executions"):
            result = await self._session.execute(stmt)
            models = result.scalars().all()
        return [execution_from_model(m) for m in models]
