import pytest
from pydantic import ValidationError

from ticket_automation.config import ExecutionStatus, NotificationType, TicketStatus
from ticket_automation.core import ExecutionStateException, RepositoryException
from ticket_automation.shared.domain import Condition
from ticket_automation.workflows.application import ActionExecutor, WorkflowOrchestrator
from ticket_automation.workflows.domain import (
    AddCommentAction,
    AssignAction,
    ChangePriorityAction,
    ChangeStatusAction,
    SendNotificationAction,
    SendWhatsAppAction,
    WorkflowExecution,
    WorkflowTemplate,
    parse_actions,
)

from conftest import BASE_TIME, make_ticket, make_user


@pytest.fixture
def executor(store, notifications, messaging):
    store.add_user(make_user("tech", phone="+4915100000001", whatsapp_notifications=True))
    store.add_user(make_user("quiet", phone="+4915100000002"))
    store.add_ticket(make_ticket("T-1", number=7))
    return ActionExecutor(store, notifications, messaging)


@pytest.fixture
def orchestrator(template_repo, execution_repo, executor):
    return WorkflowOrchestrator(template_repo, execution_repo, executor)


def template(template_id, actions, conditions=None, priority=0, **fields):
    return WorkflowTemplate(
        id=template_id,
        name=template_id,
        entity_type=fields.pop("entity_type", "ticket"),
        trigger=fields.pop("trigger", "created"),
        actions=actions,
        conditions=conditions or [],
        priority=priority,
        created_at=fields.pop("created_at", BASE_TIME),
        **fields,
    )


def partial_comment_failure(store):
    async def add_comment(ticket_id, author_id, content, content_hash):
        store.comments.append({"ticket_id": ticket_id, "content_hash": content_hash})
        raise RepositoryException("violates foreign key constraint")
    return add_comment


class TestActionParsing:
    def test_tagged_variants(self):
        actions = parse_actions([
            {"type": "assign", "user_id": "tech"},
            {"type": "send_notification", "recipients": ["a", "b"]},
        ])

        assert actions == [
            AssignAction(user_id="tech"),
            SendNotificationAction(recipients=["a", "b"]),
        ]

    @pytest.mark.parametrize("raw", [
        {"type": "launch_rocket"},
        {"type": "assign"},
        {"type": "change_priority", "priority": "urgent"},
        {"type": "add_comment", "comment": "hi", "extra": True},
    ])
    def test_malformed_actions_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_actions([raw])


class TestActionExecutor:
    @pytest.mark.asyncio
    async def test_assign(self, executor, store):
        result = await executor.execute(AssignAction(user_id="tech"), "T-1")

        assert result.success
        assert result.details["assigned_to"] == "tech"
        assert store.tickets["T-1"].assigned_to_id == "tech"

    @pytest.mark.asyncio
    async def test_assign_unknown_user(self, executor, store):
        result = await executor.execute(AssignAction(user_id="ghost"), "T-1")

        assert not result.success
        assert "ghost" in result.error
        assert store.tickets["T-1"].assigned_to_id is None

    @pytest.mark.asyncio
    async def test_change_status_and_priority(self, executor, store):
        await executor.execute(ChangeStatusAction(status=TicketStatus.IN_PROGRESS), "T-1")
        await executor.execute(ChangePriorityAction(priority="critical"), "T-1")

        assert store.tickets["T-1"].status == TicketStatus.IN_PROGRESS
        assert store.tickets["T-1"].priority == "critical"

    @pytest.mark.asyncio
    async def test_missing_ticket_is_a_failed_result(self, executor):
        result = await executor.execute(ChangeStatusAction(status="closed"), "missing")

        assert not result.success
        assert result.to_dict() == {"action": "change_status", "success": False, "error": result.error}

    @pytest.mark.asyncio
    async def test_add_comment_is_prefixed_and_deduplicated(self, executor, store):
        first = await executor.execute(AddCommentAction(comment="Escalated"), "T-1")
        second = await executor.execute(AddCommentAction(comment="Escalated"), "T-1")

        assert len(store.comments) == 1
        assert store.comments[0]["content"] == "🤖 Escalated"
        assert store.comments[0]["author_id"] == "admin"
        assert first.details["duplicate"] is False
        assert second.details["duplicate"] is True
        assert second.details["comment_id"] == first.details["comment_id"]

    @pytest.mark.asyncio
    async def test_add_comment_without_system_user(self, executor, store):
        del store.users["admin"]

        result = await executor.execute(AddCommentAction(comment="Escalated"), "T-1")

        assert not result.success
        assert store.comments == []

    @pytest.mark.asyncio
    async def test_send_notification(self, executor, notifications):
        result = await executor.execute(SendNotificationAction(recipients=["tech", "quiet"]), "T-1")

        assert result.details == {"recipient_count": 2, "delivered": 2}
        assert {n["user_id"] for n in notifications.sent} == {"tech", "quiet"}
        assert notifications.sent[0]["type"] == NotificationType.WORKFLOW_ACTION
        assert notifications.sent[0]["title"] == "Workflow Notification"
        assert notifications.sent[0]["message"] == "You have a new notification"
        assert notifications.sent[0]["ticket_id"] == "T-1"

    @pytest.mark.asyncio
    async def test_send_whatsapp_only_to_opted_in_users(self, executor, messaging):
        result = await executor.execute(
            SendWhatsAppAction(recipients=["tech", "quiet", "ghost"], message="Printer fixed"), "T-1"
        )

        assert result.details == {"sent_count": 1}
        assert messaging.sent == [("+4915100000001", "Printer fixed")]

    @pytest.mark.asyncio
    async def test_rejected_whatsapp_not_counted(self, executor, messaging):
        messaging.accept = False

        result = await executor.execute(SendWhatsAppAction(recipients=["tech"]), "T-1")

        assert result.success
        assert result.details == {"sent_count": 0}
        assert messaging.sent == [("+4915100000001", "You have a new update")]

    @pytest.mark.asyncio
    async def test_failed_write_is_undone(self, executor, store):
        async def partial_update(ticket_id, **fields):
            store.tickets[ticket_id].status = fields["status"]
            raise RepositoryException("violates foreign key constraint")

        store.update_ticket = partial_update

        result = await executor.execute(ChangeStatusAction(status=TicketStatus.CLOSED), "T-1")

        assert not result.success
        assert store.tickets["T-1"].status == TicketStatus.OPEN

    @pytest.mark.asyncio
    async def test_failed_write_keeps_earlier_actions(self, executor, store):
        await executor.execute(ChangePriorityAction(priority="critical"), "T-1")
        store.add_comment = partial_comment_failure(store)

        result = await executor.execute(AddCommentAction(comment="Escalated"), "T-1")

        assert not result.success
        assert store.comments == []
        assert store.tickets["T-1"].priority == "critical"


class TestWorkflowExecution:
    def test_terminal_state_is_final(self):
        execution = WorkflowExecution(workflow_id="W", entity_type="ticket", entity_id="T-1", id="E-1")
        execution.complete({"actions": []})

        with pytest.raises(ExecutionStateException):
            execution.fail("late failure")
        assert execution.status == ExecutionStatus.COMPLETED


class TestWorkflowOrchestrator:
    @pytest.mark.asyncio
    async def test_matching_template_runs_actions_in_order(self, orchestrator, template_repo, store):
        template_repo.templates["W"] = template("W", [
            ChangeStatusAction(status=TicketStatus.IN_PROGRESS),
            AssignAction(user_id="tech"),
        ], conditions=[Condition(field="priority", operator="equals", value="high")])

        executions = await orchestrator.execute_workflows("ticket", "created", "T-1", {"priority": "high"})

        assert len(executions) == 1
        execution = executions[0]
        assert execution.status == ExecutionStatus.COMPLETED
        assert [a["action"] for a in execution.result["actions"]] == ["change_status", "assign"]
        assert store.tickets["T-1"].assigned_to_id == "tech"

    @pytest.mark.asyncio
    async def test_unmet_conditions_recorded_as_skipped(self, orchestrator, template_repo, execution_repo, store):
        template_repo.templates["W"] = template(
            "W",
            [AssignAction(user_id="tech")],
            conditions=[Condition(field="priority", operator="equals", value="critical")],
        )

        executions = await orchestrator.execute_workflows("ticket", "created", "T-1", {"priority": "high"})

        assert executions[0].status == ExecutionStatus.COMPLETED
        assert executions[0].result == {"skipped": True, "reason": "conditions_not_met"}
        assert store.tickets["T-1"].assigned_to_id is None
        assert execution_repo.executions[executions[0].id].status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_templates_run_by_priority(self, orchestrator, template_repo, store):
        template_repo.templates = {
            "later": template("later", [ChangePriorityAction(priority="low")], priority=1),
            "first": template("first", [ChangePriorityAction(priority="critical")], priority=9),
        }

        executions = await orchestrator.execute_workflows("ticket", "created", "T-1", {})

        assert [e.workflow_id for e in executions] == ["first", "later"]
        assert store.tickets["T-1"].priority == "low"

    @pytest.mark.asyncio
    async def test_only_matching_trigger_and_active(self, orchestrator, template_repo):
        template_repo.templates = {
            "other": template("other", [ChangePriorityAction(priority="low")], trigger="updated"),
            "asset": template("asset", [ChangePriorityAction(priority="low")], entity_type="asset"),
            "off": template("off", [ChangePriorityAction(priority="low")], is_active=False),
        }

        assert await orchestrator.execute_workflows("ticket", "created", "T-1", {}) == []

    @pytest.mark.asyncio
    async def test_failed_action_does_not_stop_template(self, orchestrator, template_repo, store):
        template_repo.templates["W"] = template("W", [
            AssignAction(user_id="ghost"),
            ChangeStatusAction(status=TicketStatus.IN_PROGRESS),
        ])

        execution = (await orchestrator.execute_workflows("ticket", "created", "T-1", {}))[0]

        assert execution.status == ExecutionStatus.COMPLETED
        assert [a["success"] for a in execution.result["actions"]] == [False, True]
        assert store.tickets["T-1"].status == TicketStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_only_that_template(
        self, orchestrator, template_repo, notifications, store
    ):
        notifications.fail_with = RuntimeError("inbox offline")
        template_repo.templates = {
            "broken": template("broken", [
                ChangeStatusAction(status=TicketStatus.IN_PROGRESS),
                SendNotificationAction(recipients=["tech"]),
            ], priority=5),
            "healthy": template("healthy", [ChangePriorityAction(priority="critical")], priority=1),
        }

        executions = await orchestrator.execute_workflows("ticket", "created", "T-1", {})

        broken, healthy = executions
        assert broken.status == ExecutionStatus.FAILED
        assert broken.error == "inbox offline"
        assert broken.result == {"actions": [{"action": "change_status", "success": True, "status": "in_progress"}]}
        assert healthy.status == ExecutionStatus.COMPLETED
        # applied actions are not rolled back
        assert store.tickets["T-1"].status == TicketStatus.IN_PROGRESS
        assert store.tickets["T-1"].priority == "critical"

    @pytest.mark.asyncio
    async def test_previous_snapshot_reaches_conditions(self, orchestrator, template_repo, store):
        template_repo.templates["W"] = template(
            "W",
            [AddCommentAction(comment="Reopened")],
            conditions=[
                Condition(field="status", operator="equals", value="open"),
                Condition(field="previous.status", operator="equals", value="resolved"),
            ],
            trigger="status_changed",
        )

        await orchestrator.execute_workflows(
            "ticket", "status_changed", "T-1", {"status": "open"}, {"status": "resolved"}
        )

        assert store.comments[0]["content"] == "🤖 Reopened"

    @pytest.mark.asyncio
    async def test_template_loading_failure_propagates(self, orchestrator, template_repo):
        async def broken(entity_type, trigger):
            raise RepositoryException("database unavailable")

        template_repo.list_active = broken

        with pytest.raises(RepositoryException):
            await orchestrator.execute_workflows("ticket", "created", "T-1", {})

    @pytest.mark.asyncio
    async def test_redelivered_event_skips_recorded_templates(
        self, orchestrator, template_repo, execution_repo, messaging, store
    ):
        template_repo.templates["W"] = template("W", [
            ChangeStatusAction(status=TicketStatus.IN_PROGRESS),
            SendWhatsAppAction(recipients=["tech"], message="On it"),
        ])

        first = await orchestrator.execute_workflows("ticket", "created", "T-1", {}, event_id="evt-1")
        again = await orchestrator.execute_workflows("ticket", "created", "T-1", {}, event_id="evt-1")

        assert first[0].event_id == "evt-1"
        assert again[0].id == first[0].id
        assert len(execution_repo.executions) == 1
        assert messaging.sent == [("+4915100000001", "On it")]

    @pytest.mark.asyncio
    async def test_new_event_runs_template_again(self, orchestrator, template_repo, execution_repo, messaging):
        template_repo.templates["W"] = template("W", [SendWhatsAppAction(recipients=["tech"])])

        await orchestrator.execute_workflows("ticket", "created", "T-1", {}, event_id="evt-1")
        await orchestrator.execute_workflows("ticket", "created", "T-1", {}, event_id="evt-2")

        assert len(execution_repo.executions) == 2
        assert len(messaging.sent) == 2

    @pytest.mark.asyncio
    async def test_unrecordable_template_is_rolled_back(self, orchestrator, template_repo, execution_repo):
        template_repo.templates = {
            "broken": template("broken", [ChangePriorityAction(priority="low")], priority=5),
            "healthy": template("healthy", [ChangePriorityAction(priority="critical")], priority=1),
        }
        save = execution_repo.save

        async def flaky_save(execution):
            if execution.workflow_id == "broken":
                raise RepositoryException("connection reset")
            await save(execution)

        execution_repo.save = flaky_save

        executions = await orchestrator.execute_workflows("ticket", "created", "T-1", {})

        assert [e.workflow_id for e in executions] == ["healthy"]
        assert [e.workflow_id for e in execution_repo.executions.values()] == ["healthy"]

    @pytest.mark.asyncio
    async def test_run_template_raises_when_record_cannot_be_written(self, orchestrator, execution_repo):
        async def broken(execution):
            raise RepositoryException("connection reset")

        execution_repo.create = broken

        with pytest.raises(RepositoryException):
            await orchestrator.run_template(template("W", []), "T-1", {})
