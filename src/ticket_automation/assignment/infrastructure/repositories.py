"""
Assignment Infrastructure Repositories
======================================

SQLAlchemy implementation of the assignment rule repository.
"""

from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ticket_automation.assignment.application import IAssignmentRuleRepository
from ticket_automation.assignment.domain import AssignmentRule
from ticket_automation.assignment.infrastructure.models import AssignmentRuleModel
from ticket_automation.core import InvalidDefinitionException, RepositoryException
from ticket_automation.infrastructure.database.repositories import repository_errors, to_uuid
from ticket_automation.shared.infrastructure.logging import get_logger
from ticket_automation.shared.domain import parse_conditions, dump_conditions

logger = get_logger(__name__)


def rule_from_model(model: AssignmentRuleModel) -> AssignmentRule:
    """Raises pydantic.ValidationError if the stored conditions are malformed."""
    return AssignmentRule(
        id=str(model.id),
        name=model.name,
        description=model.description,
        assignment_type=model.assignment_type,
        conditions=parse_conditions(model.conditions),
        target_user_id=model.target_user_id,
        target_user_ids=list(model.target_user_ids or []),
        is_active=model.is_active,
        priority=model.priority,
        created_at=model.created_at,
    )


class SQLAlchemyAssignmentRuleRepository(IAssignmentRuleRepository):
    """Assignment rules in the 'assignment_rules' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _list(self, active_only: bool) -> List[AssignmentRule]:
        stmt = select(AssignmentRuleModel)
        if active_only:
            stmt = stmt.where(AssignmentRuleModel.is_active.is_(True))
        stmt = stmt.order_by(
            AssignmentRuleModel.priority.desc(),
            AssignmentRuleModel.created_at.asc(),
            AssignmentRuleModel.id.asc(),
        )

        async with repository_errors("list_assignment_rules"):
            result = await self._session.execute(stmt)
            models = result.scalars().all()

        rules = []
        for model in models:
            try:
                rules.append(rule_from_model(model))
            except ValidationError as e:
                logger.error(
                    "Invalid assignment rule, skipping",
                    extra={"rule_id": str(model.id), "rule": model.name, "error": str(e)}
                )
        return rules

    async def list_active(self) -> List[AssignmentRule]:
        return await self._list(active_only=True)

    async def list_all(self) -> List[AssignmentRule]:
        return await self._list(active_only=False)

    async def _get_model(self, rule_id: str) -> Optional[AssignmentRuleModel]:
        rule_uuid = to_uuid(rule_id)
        if rule_uuid is None:
            return None
        return await self._session.get(AssignmentRuleModel, rule_uuid)

    async def get(self, rule_id: str) -> Optional[AssignmentRule]:
        async with repository_errors("get_assignment_rule"):
            model = await self._get_model(rule_id)
        if model is None:
            return None
        try:
            return rule_from_model(model)
        except ValidationError as e:
            raise InvalidDefinitionException("Assignment rule", rule_id, e) from e

    def _apply(self, model: AssignmentRuleModel, rule: AssignmentRule) -> None:
        model.name = rule.name
        model.description = rule.description
        model.assignment_type = rule.assignment_type
        model.conditions = dump_conditions(rule.conditions)
        model.target_user_id = rule.target_user_id
        model.target_user_ids = list(rule.target_user_ids)
        model.is_active = rule.is_active
        model.priority = rule.priority

    async def create(self, rule: AssignmentRule) -> AssignmentRule:
        model = AssignmentRuleModel()
        self._apply(model, rule)
        async with repository_errors("create_assignment_rule"):
            self._session.add(model)
            await self._session.flush()
            await self._session.refresh(model)
        return rule_from_model(model)

    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        async with repository_errors("update_assignment_rule"):
            model = await self._get_model(rule.id)
            if model is None:
                raise RepositoryException(f"Assignment rule {rule.id} not found")
            self._apply(model, rule)
            await self._session.flush()
            await self._session.refresh(model)
        return rule_from_model(model)

    async def delete(self, rule_id: str) -> bool:
        rule_uuid = to_uuid(rule_id)
        if rule_uuid is None:
            return False
        async with repository_errors("delete_assignment_rule"):
            result = await self._session.execute(
                delete(AssignmentRuleModel).where(AssignmentRuleModel.id == rule_uuid)
            )
        return result.rowcount > 0
