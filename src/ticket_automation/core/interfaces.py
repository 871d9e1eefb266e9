"""
Collaborator Ports
==================

Narrow interfaces to the systems the automation core depends on but does
not own (Dependency Inversion). Concrete implementations live in
ticket_automation.infrastructure.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import List, Optional, Tuple

from ticket_automation.core.entities import User, Ticket, TechnicianWorkload


class IEntityStore(ABC):
    """Interface for reads and writes against the application's entities."""

    @abstractmethod
    def savepoint(self) -> AbstractAsyncContextManager:
        """
        Scope writes so that an exception inside the block undoes only
        them; earlier writes of the same unit of work stay pending.
        """

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get a ticket with its asset and creator loaded."""

    @abstractmethod
    async def update_ticket(self, ticket_id: str, **fields) -> Ticket:
        """Update ticket columns; raises ResourceNotFoundException if missing."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID."""

    @abstractmethod
    async def get_users(self, user_ids: List[str]) -> List[User]:
        """Get the users with the given IDs (unknown IDs are ignored)."""

    @abstractmethod
    async def get_system_user(self) -> Optional[User]:
        """Get the user that authors automated comments (first administrator)."""

    @abstractmethod
    async def get_technician_workloads(
        self,
        available_only: bool = True,
        location: Optional[str] = None
    ) -> List[TechnicianWorkload]:
        """
        List technicians with their count of open/in-progress tickets.

        Ordered by technician creation time, then ID.
        """

    @abstractmethod
    async def get_last_assignee(self, user_ids: List[str]) -> Optional[str]:
        """Assignee of the most recently created ticket assigned to any of user_ids."""

    @abstractmethod
    async def add_comment(
        self,
        ticket_id: str,
        author_id: str,
        content: str,
        content_hash: str
    ) -> Tuple[str, bool]:
        """
        Add a comment unless one with the same hash exists on the ticket.

        Returns:
            Tuple of (comment_id, created)
        """


class INotificationSink(ABC):
    """Interface for the in-app notification inbox."""

    @abstractmethod
    async def notify(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        ticket_id: Optional[str] = None
    ) -> bool:
        """
        Create a notification.

        Returns False when an identical notification was created within
        the de-duplication window and this one was suppressed.
        """


class IMessagingGateway(ABC):
    """Interface for outbound text messages (WhatsApp)."""

    @abstractmethod
    async def send_text(self, phone: str, message: str) -> bool:
        """Send a text message; returns True if the provider accepted it."""
