"""
Integration tests for the SQLAlchemy layer.

Run against a file-backed SQLite database (aiosqlite) created from the
ORM metadata, with foreign keys enforced and SAVEPOINT support enabled.
"""

import uuid
from datetime import timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select

from ticket_automation.config import (
    ExecutionStatus,
    NotificationType,
    Priority,
    Settings,
    SLAStatus,
    SLAType,
    TicketStatus,
    UserRole,
)
from ticket_automation.core import RepositoryException, ResourceNotFoundException
from ticket_automation.infrastructure.container import SessionServicesFactory
from ticket_automation.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from ticket_automation.infrastructure.database.models import (
    CommentModel,
    NotificationModel,
    TicketModel,
    UserModel,
)
from ticket_automation.infrastructure.database.repositories import (
    SQLAlchemyEntityStore,
    SQLAlchemyNotificationSink,
)
from ticket_automation.lifecycle import TicketAutomation
from ticket_automation.shared.infrastructure.dispatch import TaskDispatcher
from ticket_automation.sla.application import SLATracker
from ticket_automation.sla.domain import BusinessHours, BusinessHoursCalculator, SLAPolicy, TicketSLA
from ticket_automation.sla.infrastructure import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketSLARepository,
)
from ticket_automation.workflows.domain import (
    ChangeStatusAction,
    SendNotificationAction,
    SendWhatsAppAction,
    WorkflowExecution,
    WorkflowTemplate,
)
from ticket_automation.workflows.infrastructure import (
    SQLAlchemyWorkflowExecutionRepository,
    SQLAlchemyWorkflowTemplateRepository,
)
from ticket_automation.workflows.infrastructure.models import WorkflowExecutionModel

from conftest import BASE_TIME, FakeClock, RecordingMessagingGateway

TECH_PHONE = "+4915100000001"
OTHER_PHONE = "+4915100000002"


def _sqlite_connect(dbapi_connection, connection_record):
    # let SQLAlchemy emit BEGIN itself so SAVEPOINT works
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def database(tmp_path):
    config = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}",
        environment="development",
    )
    engine = init_database(config)
    event.listen(engine.sync_engine, "connect", _sqlite_connect)
    event.listen(engine.sync_engine, "begin", _sqlite_begin)
    await create_tables()
    yield config
    await close_database()


@pytest_asyncio.fixture
async def seeded(database):
    ids = SimpleNamespace(
        admin=uuid.uuid4(),
        requester=uuid.uuid4(),
        tech=uuid.uuid4(),
        other_tech=uuid.uuid4(),
        ticket=uuid.uuid4(),
        other_ticket=uuid.uuid4(),
    )
    async with get_session_context() as session:
        session.add_all([
            UserModel(id=ids.admin, name="System Admin", email="admin@example.com",
                      role=UserRole.ADMIN, created_at=BASE_TIME),
            UserModel(id=ids.requester, name="Requester", email="requester@example.com",
                      role=UserRole.USER, created_at=BASE_TIME + timedelta(minutes=1)),
            UserModel(id=ids.tech, name="Tech", email="tech@example.com", role=UserRole.TECHNICIAN,
                      phone=TECH_PHONE, whatsapp_notifications=True,
                      created_at=BASE_TIME + timedelta(minutes=2)),
            UserModel(id=ids.other_tech, name="Other Tech", email="other@example.com",
                      role=UserRole.TECHNICIAN, phone=OTHER_PHONE, whatsapp_notifications=True,
                      created_at=BASE_TIME + timedelta(minutes=3)),
        ])
        await session.flush()
        session.add_all([
            TicketModel(id=ids.ticket, number=1, title="Printer jammed", status=TicketStatus.OPEN,
                        priority=Priority.HIGH, created_by_id=ids.requester, assigned_to_id=ids.tech,
                        created_at=BASE_TIME),
            TicketModel(id=ids.other_ticket, number=2, title="VPN down", status=TicketStatus.OPEN,
                        priority=Priority.HIGH, created_by_id=ids.requester,
                        assigned_to_id=ids.other_tech, created_at=BASE_TIME + timedelta(minutes=1)),
        ])
    return SimpleNamespace(**{name: str(value) for name, value in vars(ids).items()})


async def count(model, *criteria) -> int:
    async with get_session_context() as session:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return (await session.execute(stmt)).scalar_one()


async def load_ticket(ticket_id: str):
    async with get_session_context() as session:
        return await SQLAlchemyEntityStore(session).get_ticket(ticket_id)


class TestEntityStore:
    @pytest.mark.asyncio
    async def test_ticket_with_creator(self, seeded):
        ticket = await load_ticket(seeded.ticket)

        assert ticket.number == 1
        assert ticket.assigned_to_id == seeded.tech
        assert ticket.created_by.name == "Requester"
        assert ticket.created_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_update_ticket(self, seeded):
        async with get_session_context() as session:
            ticket = await SQLAlchemyEntityStore(session).update_ticket(
                seeded.ticket, status=TicketStatus.IN_PROGRESS, assigned_to_id=seeded.other_tech
            )

        assert ticket.status == TicketStatus.IN_PROGRESS
        assert (await load_ticket(seeded.ticket)).assigned_to_id == seeded.other_tech

    @pytest.mark.asyncio
    async def test_update_unknown_ticket(self, seeded):
        with pytest.raises(ResourceNotFoundException):
            async with get_session_context() as session:
                await SQLAlchemyEntityStore(session).update_ticket(str(uuid.uuid4()), status="closed")

    @pytest.mark.asyncio
    async def test_system_user_and_workloads(self, seeded):
        async with get_session_context() as session:
            store = SQLAlchemyEntityStore(session)
            await store.update_ticket(seeded.other_ticket, status=TicketStatus.CLOSED)

            system_user = await store.get_system_user()
            workloads = await store.get_technician_workloads()

        assert system_user.id == seeded.admin
        assert [(w.user.id, w.active_tickets) for w in workloads] == [
            (seeded.tech, 1),
            (seeded.other_tech, 0),
        ]

    @pytest.mark.asyncio
    async def test_last_assignee_follows_newest_ticket(self, seeded):
        async with get_session_context() as session:
            assignee = await SQLAlchemyEntityStore(session).get_last_assignee([seeded.tech, seeded.other_tech])

        assert assignee == seeded.other_tech

    @pytest.mark.asyncio
    async def test_comment_deduplicated_by_hash(self, seeded):
        async with get_session_context() as session:
            store = SQLAlchemyEntityStore(session)
            first_id, created = await store.add_comment(seeded.ticket, seeded.admin, "🤖 On it", "h1")
            again_id, again_created = await store.add_comment(seeded.ticket, seeded.admin, "🤖 On it", "h1")

        assert created and not again_created
        assert again_id == first_id
        assert await count(CommentModel) == 1

    @pytest.mark.asyncio
    async def test_failed_savepoint_keeps_session_usable(self, seeded):
        async with get_session_context() as session:
            store = SQLAlchemyEntityStore(session)
            await store.update_ticket(seeded.ticket, status=TicketStatus.IN_PROGRESS)

            with pytest.raises(RepositoryException):
                async with store.savepoint():
                    await store.add_comment(seeded.ticket, str(uuid.uuid4()), "orphan", "h2")

            await store.update_ticket(seeded.ticket, priority=Priority.CRITICAL)

        ticket = await load_ticket(seeded.ticket)
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.priority == Priority.CRITICAL
        assert await count(CommentModel) == 0


class TestNotificationSink:
    @pytest.mark.asyncio
    async def test_identical_notification_suppressed(self, seeded):
        async with get_session_context() as session:
            sink = SQLAlchemyNotificationSink(session, dedupe_seconds=60)
            first = await sink.notify(seeded.tech, NotificationType.WORKFLOW_ACTION, "Hi", "a", seeded.ticket)
            second = await sink.notify(seeded.tech, NotificationType.WORKFLOW_ACTION, "Hi", "b", seeded.ticket)
            other_ticket = await sink.notify(
                seeded.tech, NotificationType.WORKFLOW_ACTION, "Hi", "c", seeded.other_ticket
            )

        assert (first, second, other_ticket) == (True, False, True)
        assert await count(NotificationModel) == 2

    @pytest.mark.asyncio
    async def test_unknown_recipient_is_a_repository_error(self, seeded):
        with pytest.raises(RepositoryException):
            async with get_session_context() as session:
                await SQLAlchemyNotificationSink(session).notify(
                    str(uuid.uuid4()), NotificationType.WORKFLOW_ACTION, "Hi", "a"
                )


def workflow(name, actions, priority, trigger="updated"):
    return WorkflowTemplate(
        id="", name=name, entity_type="ticket", trigger=trigger, actions=actions, priority=priority
    )


class TestWorkflowRepositories:
    @pytest.mark.asyncio
    async def test_active_templates_in_priority_order(self, seeded):
        async with get_session_context() as session:
            repo = SQLAlchemyWorkflowTemplateRepository(session)
            await repo.create(workflow("low", [ChangeStatusAction(status="closed")], 1))
            await repo.create(workflow("high", [ChangeStatusAction(status="closed")], 9))
            await repo.create(workflow("other", [ChangeStatusAction(status="closed")], 5, trigger="created"))

            templates = await repo.list_active("ticket", "updated")

        assert [t.name for t in templates] == ["high", "low"]
        assert templates[0].actions == [ChangeStatusAction(status="closed")]

    @pytest.mark.asyncio
    async def test_execution_lifecycle_and_event_lookup(self, seeded):
        async with get_session_context() as session:
            template = await SQLAlchemyWorkflowTemplateRepository(session).create(
                workflow("W", [ChangeStatusAction(status="closed")], 1)
            )
            repo = SQLAlchemyWorkflowExecutionRepository(session)
            execution = await repo.create(WorkflowExecution(
                workflow_id=template.id, entity_type="ticket", entity_id=seeded.ticket, event_id="evt-1"
            ))
            execution.complete({"actions": []})
            await repo.save(execution)

        async with get_session_context() as session:
            repo = SQLAlchemyWorkflowExecutionRepository(session)
            found = await repo.find_for_event(template.id, "evt-1")
            missing = await repo.find_for_event(template.id, "evt-2")
            completed = await repo.list(status=ExecutionStatus.COMPLETED)

        assert found.id == execution.id
        assert found.status == ExecutionStatus.COMPLETED
        assert found.completed_at is not None and found.completed_at.tzinfo is not None
        assert missing is None
        assert [e.id for e in completed] == [execution.id]


class TestTicketSLARepository:
    @pytest_asyncio.fixture
    async def policy_id(self, seeded):
        async with get_session_context() as session:
            policy = await SQLAlchemySLAPolicyRepository(session).create(SLAPolicy(
                id="",
                name="High priority",
                priority=Priority.HIGH,
                response_time_minutes=30,
                resolution_time_minutes=240,
                business_hours_only=False,
                notify_before_minutes=15,
                escalation_enabled=False,
            ))
        return policy.id

    def tracker(self, session, messaging, clock):
        store = SQLAlchemyEntityStore(session)
        return SLATracker(
            store,
            SQLAlchemySLAPolicyRepository(session),
            SQLAlchemyTicketSLARepository(session),
            SQLAlchemyNotificationSink(session),
            messaging,
            BusinessHoursCalculator(BusinessHours()),
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_count_stats(self, seeded, policy_id):
        async with get_session_context() as session:
            repo = SQLAlchemyTicketSLARepository(session)
            for ticket_id in (seeded.ticket, seeded.other_ticket):
                await repo.create(TicketSLA(
                    ticket_id=ticket_id,
                    policy_id=policy_id,
                    response_deadline=BASE_TIME + timedelta(minutes=30),
                    resolution_deadline=BASE_TIME + timedelta(hours=4),
                ))
            breached = await repo.get_by_ticket(seeded.other_ticket)
            breached.mark_breached(SLAType.RESPONSE)
            await repo.save(breached)

        async with get_session_context() as session:
            stats = await SQLAlchemyTicketSLARepository(session).count_stats()

        assert stats == {
            "active": 2,
            "on_track": 1,
            "at_risk": 0,
            "breached": 1,
            "response_breaches": 1,
            "resolution_breaches": 0,
            "total": 2,
            "with_breach": 1,
        }

    @pytest.mark.asyncio
    async def test_sweep_failure_rolls_back_only_that_record(self, seeded, policy_id):
        class FailingGateway(RecordingMessagingGateway):
            async def send_text(self, phone, message):
                if phone == TECH_PHONE:
                    raise RuntimeError("provider timeout")
                return await super().send_text(phone, message)

        clock = FakeClock()
        messaging = FailingGateway()
        async with get_session_context() as session:
            tracker = self.tracker(session, messaging, clock)
            await tracker.create_sla(seeded.ticket)
            await tracker.create_sla(seeded.other_ticket)

        clock.advance(minutes=31)
        async with get_session_context() as session:
            summary = await self.tracker(session, messaging, clock).check_all_slas()

        assert summary == {"checked": 1, "breached": 1, "warned": 0, "failed": 1}
        async with get_session_context() as session:
            repo = SQLAlchemyTicketSLARepository(session)
            failed = await repo.get_by_ticket(seeded.ticket)
            swept = await repo.get_by_ticket(seeded.other_ticket)

        assert failed.status == SLAStatus.ON_TRACK and not failed.response_breached
        assert swept.status == SLAStatus.BREACHED and swept.response_breached
        assert await count(NotificationModel, NotificationModel.ticket_id == uuid.UUID(seeded.ticket)) == 0
        assert await count(NotificationModel, NotificationModel.ticket_id == uuid.UUID(seeded.other_ticket)) == 2
        assert messaging.sent == [(OTHER_PHONE, "⚠️ Response SLA breached for ticket #2")]


class TestWorkflowUnitsOfWork:
    @pytest_asyncio.fixture
    async def templates(self, seeded):
        async with get_session_context() as session:
            repo = SQLAlchemyWorkflowTemplateRepository(session)
            await repo.create(workflow("start work", [ChangeStatusAction(status=TicketStatus.IN_PROGRESS)], 9))
            await repo.create(workflow("notify ghost", [SendNotificationAction(recipients=[str(uuid.uuid4())])], 5))
            await repo.create(workflow("text tech", [SendWhatsAppAction(recipients=[seeded.tech])], 1))

    @pytest.mark.asyncio
    async def test_failing_action_does_not_undo_other_templates(self, seeded, templates, messaging):
        dispatcher = TaskDispatcher(max_attempts=3, backoff_seconds=0)
        automation = TicketAutomation(SessionServicesFactory(messaging), dispatcher)

        automation.on_ticket_updated(seeded.ticket, {"status": TicketStatus.OPEN})
        await dispatcher.drain()

        assert dispatcher.dead_letters == []
        assert (await load_ticket(seeded.ticket)).status == TicketStatus.IN_PROGRESS
        assert await count(WorkflowExecutionModel, WorkflowExecutionModel.status == ExecutionStatus.COMPLETED) == 3
        assert messaging.sent == [(TECH_PHONE, "You have a new update")]

        async with get_session_context() as session:
            ghost = [
                e for e in await SQLAlchemyWorkflowExecutionRepository(session).list()
                if e.result["actions"][0]["action"] == "send_notification"
            ][0]
        assert ghost.result["actions"][0]["success"] is False
        assert await count(NotificationModel) == 0

    @pytest.mark.asyncio
    async def test_redelivered_event_does_not_repeat_templates(self, seeded, templates, messaging):
        factory = SessionServicesFactory(messaging)

        for _ in range(2):
            async with factory() as services:
                await services.orchestrator.execute_workflows(
                    "ticket", "updated", seeded.ticket, {}, event_id="evt-1"
                )

        assert await count(WorkflowExecutionModel) == 3
        assert messaging.sent == [(TECH_PHONE, "You have a new update")]
