"""
Workflow Value Objects
======================

Declarative workflow actions, one pydantic model per action type,
combined into a discriminated union on `type`.

Definitions are validated when loaded, so the engine only ever executes
well-formed actions.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

PriorityStr = Literal["critical", "high", "medium", "low"]


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AssignAction(_Action):
    """Reassign the ticket to a technician."""
    type: Literal["assign"] = "assign"
    user_id: str = Field(..., min_length=1)


class ChangeStatusAction(_Action):
    """Move the ticket to another status."""
    type: Literal["change_status"] = "change_status"
    status: str = Field(..., min_length=1)


class ChangePriorityAction(_Action):
    """Change the ticket priority."""
    type: Literal["change_priority"] = "change_priority"
    priority: PriorityStr


class AddCommentAction(_Action):
    """Append a system-authored comment."""
    type: Literal["add_comment"] = "add_comment"
    comment: str = Field(..., min_length=1)


class SendNotificationAction(_Action):
    """Send an in-app notification to a list of users."""
    type: Literal["send_notification"] = "send_notification"
    recipients: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class SendWhatsAppAction(_Action):
    """Text the recipients that opted in to WhatsApp."""
    type: Literal["send_whatsapp"] = "send_whatsapp"
    recipients: List[str] = Field(default_factory=list)
    message: Optional[str] = None


WorkflowAction = Annotated[
    Union[
        AssignAction,
        ChangeStatusAction,
        ChangePriorityAction,
        AddCommentAction,
        SendNotificationAction,
        SendWhatsAppAction,
    ],
    Field(discriminator="type"),
]

_actions_adapter = TypeAdapter(List[WorkflowAction])


def parse_actions(raw: Optional[list]) -> List[WorkflowAction]:
    """Validate stored action JSON; raises pydantic.ValidationError."""
    return _actions_adapter.validate_python(raw or [])


def dump_actions(actions: List[WorkflowAction]) -> list:
    return [a.model_dump(mode="json") for a in actions]
