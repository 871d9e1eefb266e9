"""
Collaborator Entities
=====================

Read views of the records owned by the surrounding asset/ticket
application. The automation core never defines their schema; it only
consumes these snapshots through the entity store port.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, Any

from ticket_automation.config import UserRole, ACTIVE_TICKET_STATUSES


@dataclass
class User:
    """A user of the application (requester, technician or administrator)."""

    id: str
    name: str
    email: str
    role: str = UserRole.USER
    is_available: bool = True
    department: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_notifications: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_technician(self) -> bool:
        return self.role == UserRole.TECHNICIAN

    @property
    def can_receive_whatsapp(self) -> bool:
        """True if the user opted in to WhatsApp and has a phone number."""
        return bool(self.whatsapp_notifications and self.phone)


@dataclass
class Asset:
    """An inventory asset a ticket may refer to."""

    id: str
    name: str
    asset_type: Optional[str] = None
    office_location: Optional[str] = None


@dataclass
class Ticket:
    """A support ticket together with its related asset and creator."""

    id: str
    number: int
    title: str
    description: str
    status: str
    priority: str
    created_by_id: str
    created_at: datetime
    assigned_to_id: Optional[str] = None
    asset_id: Optional[str] = None
    asset: Optional[Asset] = None
    created_by: Optional[User] = None

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to_id is not None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TICKET_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Snapshot used for condition evaluation."""
        return asdict(self)


@dataclass
class TechnicianWorkload:
    """A technician and the number of tickets they are actively working."""

    user: User
    active_tickets: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user.id,
            "name": self.user.name,
            "email": self.user.email,
            "active_tickets": self.active_tickets,
            "is_available": self.user.is_available,
        }
