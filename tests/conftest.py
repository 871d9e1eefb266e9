"""
Shared pytest fixtures for all tests.

In-memory implementations of the collaborator ports and repositories,
test data builders and a controllable clock.
"""

import copy
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

os.environ.setdefault("ENVIRONMENT", "development")

from ticket_automation.assignment.application import IAssignmentRuleRepository
from ticket_automation.assignment.domain import AssignmentRule
from ticket_automation.config import (
    ACTIVE_TICKET_STATUSES,
    Priority,
    SLAStatus,
    TicketStatus,
    UserRole,
)
from ticket_automation.core import (
    IEntityStore,
    IMessagingGateway,
    INotificationSink,
    ResourceNotFoundException,
    TechnicianWorkload,
    Ticket,
    User,
)
from ticket_automation.sla.application import ISLAPolicyRepository, ITicketSLARepository
from ticket_automation.sla.domain import SLAPolicy, TicketSLA
from ticket_automation.workflows.application import (
    IWorkflowTemplateRepository,
    IWorkflowExecutionRepository,
)
from ticket_automation.workflows.domain import WorkflowTemplate, WorkflowExecution

# Monday
BASE_TIME = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


# ============================================================================
# COLLABORATOR FAKES
# ============================================================================


class InMemoryEntityStore(IEntityStore):
    def __init__(self):
        self.users: Dict[str, User] = {}
        self.tickets: Dict[str, Ticket] = {}
        self.comments: List[dict] = []
        self.updates: List[tuple] = []

    def add_user(self, user: User) -> User:
        self.users[user.id] = user
        return user

    def add_ticket(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = ticket
        return ticket

    @asynccontextmanager
    async def _savepoint(self):
        snapshot = copy.deepcopy((self.tickets, self.comments, self.updates))
        try:
            yield
        except Exception:
            self.tickets, self.comments, self.updates = snapshot
            raise

    def savepoint(self):
        return self._savepoint()

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        if ticket is not None and ticket.created_by is None:
            ticket.created_by = self.users.get(ticket.created_by_id)
        return ticket

    async def update_ticket(self, ticket_id: str, **fields) -> Ticket:
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        for name, value in fields.items():
            setattr(ticket, name, value)
        self.updates.append((ticket_id, fields))
        return ticket

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def get_users(self, user_ids: List[str]) -> List[User]:
        return [self.users[uid] for uid in user_ids if uid in self.users]

    async def get_system_user(self) -> Optional[User]:
        admins = [u for u in self.users.values() if u.role == UserRole.ADMIN]
        return admins[0] if admins else None

    async def get_technician_workloads(
        self,
        available_only: bool = True,
        location: Optional[str] = None
    ) -> List[TechnicianWorkload]:
        technicians = [
            u for u in self.users.values()
            if u.is_technician
            and (u.is_available or not available_only)
            and (location is None or u.location == location)
        ]
        technicians.sort(key=lambda u: (u.created_at or BASE_TIME, u.id))
        return [
            TechnicianWorkload(
                user=u,
                active_tickets=sum(
                    1 for t in self.tickets.values()
                    if t.assigned_to_id == u.id and t.status in ACTIVE_TICKET_STATUSES
                ),
            )
            for u in technicians
        ]

    async def get_last_assignee(self, user_ids: List[str]) -> Optional[str]:
        assigned = [t for t in self.tickets.values() if t.assigned_to_id in user_ids]
        if not assigned:
            return None
        return max(assigned, key=lambda t: t.created_at).assigned_to_id

    async def add_comment(self, ticket_id: str, author_id: str, content: str, content_hash: str):
        for comment in self.comments:
            if comment["ticket_id"] == ticket_id and comment["content_hash"] == content_hash:
                return comment["id"], False
        comment = {
            "id": str(uuid.uuid4()),
            "ticket_id": ticket_id,
            "author_id": author_id,
            "content": content,
            "content_hash": content_hash,
        }
        self.comments.append(comment)
        return comment["id"], True


class RecordingNotificationSink(INotificationSink):
    def __init__(self):
        self.sent: List[dict] = []
        self.fail_with: Optional[Exception] = None

    async def notify(self, user_id, notification_type, title, message, ticket_id=None) -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({
            "user_id": user_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "ticket_id": ticket_id,
        })
        return True

    def to(self, user_id: str) -> List[dict]:
        return [n for n in self.sent if n["user_id"] == user_id]


class RecordingMessagingGateway(IMessagingGateway):
    def __init__(self, accept: bool = True):
        self.accept = accept
        self.sent: List[tuple] = []

    async def send_text(self, phone: str, message: str) -> bool:
        self.sent.append((phone, message))
        return self.accept


# ============================================================================
# REPOSITORY FAKES
# ============================================================================


def _ordered(items):
    return sorted(items, key=lambda i: (-i.priority, i.created_at or BASE_TIME, i.id))


class InMemoryTemplateRepository(IWorkflowTemplateRepository):
    def __init__(self, templates: Optional[List[WorkflowTemplate]] = None):
        self.templates: Dict[str, WorkflowTemplate] = {t.id: t for t in templates or []}

    async def list_active(self, entity_type, trigger):
        return _ordered(
            t for t in self.templates.values()
            if t.is_active and t.entity_type == entity_type and t.trigger == trigger
        )

    async def list_all(self):
        return _ordered(self.templates.values())

    async def get(self, template_id):
        return self.templates.get(template_id)

    async def create(self, template):
        template.created_at = template.created_at or BASE_TIME
        self.templates[template.id] = template
        return template

    async def update(self, template):
        self.templates[template.id] = template
        return template

    async def delete(self, template_id):
        return self.templates.pop(template_id, None) is not None


class InMemoryExecutionRepository(IWorkflowExecutionRepository):
    def __init__(self):
        self.executions: Dict[str, WorkflowExecution] = {}
        self.saved: List[WorkflowExecution] = []

    async def create(self, execution):
        execution.id = str(uuid.uuid4())
        self.executions[execution.id] = copy.deepcopy(execution)
        return execution

    async def save(self, execution):
        self.executions[execution.id] = copy.deepcopy(execution)
        self.saved.append(copy.deepcopy(execution))

    async def find_for_event(self, workflow_id, event_id):
        for execution in self.executions.values():
            if execution.workflow_id == workflow_id and execution.event_id == event_id:
                return copy.deepcopy(execution)
        return None

    @asynccontextmanager
    async def _savepoint(self):
        snapshot = copy.deepcopy(self.executions)
        try:
            yield
        except Exception:
            self.executions = snapshot
            raise

    def savepoint(self):
        return self._savepoint()

    async def list(self, workflow_id=None, status=None, limit=50):
        found = [
            e for e in self.executions.values()
            if (workflow_id is None or e.workflow_id == workflow_id)
            and (status is None or e.status == status)
        ]
        found.sort(key=lambda e: e.executed_at, reverse=True)
        return found[:limit]


class InMemoryRuleRepository(IAssignmentRuleRepository):
    def __init__(self, rules: Optional[List[AssignmentRule]] = None):
        self.rules: Dict[str, AssignmentRule] = {r.id: r for r in rules or []}

    async def list_active(self):
        return _ordered(r for r in self.rules.values() if r.is_active)

    async def list_all(self):
        return _ordered(self.rules.values())

    async def get(self, rule_id):
        return self.rules.get(rule_id)

    async def create(self, rule):
        self.rules[rule.id] = rule
        return rule

    async def update(self, rule):
        self.rules[rule.id] = rule
        return rule

    async def delete(self, rule_id):
        return self.rules.pop(rule_id, None) is not None


class InMemoryPolicyRepository(ISLAPolicyRepository):
    def __init__(self, policies: Optional[List[SLAPolicy]] = None):
        self.policies: Dict[str, SLAPolicy] = {p.id: p for p in policies or []}

    async def find_active_for_priority(self, priority):
        matching = [p for p in self.policies.values() if p.is_active and p.priority == priority]
        matching.sort(key=lambda p: (p.created_at or BASE_TIME, p.id))
        return matching[0] if matching else None

    async def get(self, policy_id):
        return self.policies.get(policy_id)

    async def list_all(self):
        return list(self.policies.values())

    async def create(self, policy):
        self.policies[policy.id] = policy
        return policy

    async def update(self, policy):
        self.policies[policy.id] = policy
        return policy

    async def delete(self, policy_id):
        return self.policies.pop(policy_id, None) is not None


class InMemoryTicketSLARepository(ITicketSLARepository):
    """Stores copies, so unsaved changes never leak into the store."""

    def __init__(self):
        self.slas: Dict[str, TicketSLA] = {}
        self.fail_save_for: set = set()

    async def get_by_ticket(self, ticket_id):
        sla = self.slas.get(ticket_id)
        return copy.deepcopy(sla) if sla else None

    async def create(self, sla):
        sla.id = str(uuid.uuid4())
        self.slas[sla.ticket_id] = copy.deepcopy(sla)
        return sla

    async def save(self, sla):
        if sla.ticket_id in self.fail_save_for:
            raise RuntimeError(f"write failed for {sla.ticket_id}")
        self.slas[sla.ticket_id] = copy.deepcopy(sla)

    async def list_active(self):
        return [copy.deepcopy(s) for s in self.slas.values() if s.resolved_at is None]

    @asynccontextmanager
    async def _savepoint(self):
        snapshot = copy.deepcopy(self.slas)
        try:
            yield
        except Exception:
            self.slas = snapshot
            raise

    def savepoint(self):
        return self._savepoint()

    async def count_stats(self):
        active = [s for s in self.slas.values() if s.resolved_at is None]
        everything = list(self.slas.values())
        return {
            "active": len(active),
            "on_track": sum(1 for s in active if s.status == SLAStatus.ON_TRACK),
            "at_risk": sum(1 for s in active if s.status == SLAStatus.AT_RISK),
            "breached": sum(1 for s in active if s.status == SLAStatus.BREACHED),
            "response_breaches": sum(1 for s in everything if s.response_breached),
            "resolution_breaches": sum(1 for s in everything if s.resolution_breached),
            "total": len(everything),
            "with_breach": sum(1 for s in everything if s.is_breached),
        }


# ============================================================================
# BUILDERS
# ============================================================================


def make_user(user_id: str, role: str = UserRole.TECHNICIAN, offset_minutes: int = 0, **fields) -> User:
    return User(
        id=user_id,
        name=fields.pop("name", user_id.title()),
        email=f"{user_id}@example.com",
        role=role,
        created_at=BASE_TIME + timedelta(minutes=offset_minutes),
        **fields,
    )


def make_ticket(ticket_id: str = "T-1", number: int = 1, **fields) -> Ticket:
    defaults = dict(
        title="Printer jammed",
        description="The third floor printer is jammed",
        status=TicketStatus.OPEN,
        priority=Priority.HIGH,
        created_by_id="requester",
        created_at=BASE_TIME,
    )
    defaults.update(fields)
    return Ticket(id=ticket_id, number=number, **defaults)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryEntityStore:
    store = InMemoryEntityStore()
    store.add_user(make_user("admin", role=UserRole.ADMIN, name="System Admin"))
    store.add_user(make_user("requester", role=UserRole.USER, location="Berlin", department="Finance"))
    return store


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def messaging() -> RecordingMessagingGateway:
    return RecordingMessagingGateway()


@pytest.fixture
def template_repo() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository()


@pytest.fixture
def execution_repo() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


@pytest.fixture
def rule_repo() -> InMemoryRuleRepository:
    return InMemoryRuleRepository()


@pytest.fixture
def policy_repo() -> InMemoryPolicyRepository:
    return InMemoryPolicyRepository()


@pytest.fixture
def ticket_sla_repo() -> InMemoryTicketSLARepository:
    return InMemoryTicketSLARepository()
