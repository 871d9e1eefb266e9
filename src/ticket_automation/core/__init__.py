"""
Core Module
============

Shared core abstractions used across the automation bounded contexts.

This module contains framework-agnostic code: the exception hierarchy,
read views of the entities owned by the surrounding application, and the
ports through which the engines reach the entity store, the in-app
notification inbox and the outbound messaging gateway.
"""

from ticket_automation.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    InvalidDefinitionException,
    ExecutionStateException,
)
from ticket_automation.core.entities import (
    User,
    Asset,
    Ticket,
    TechnicianWorkload,
)
from ticket_automation.core.interfaces import (
    IEntityStore,
    INotificationSink,
    IMessagingGateway,
)

__all__ = [
    # Exceptions
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "InvalidDefinitionException",
    "ExecutionStateException",
    # Entities
    "User",
    "Asset",
    "Ticket",
    "TechnicianWorkload",
    # Ports
    "IEntityStore",
    "INotificationSink",
    "IMessagingGateway",
]
