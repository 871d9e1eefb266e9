"""
SLA Application Layer
=====================

Contains:
- Services: SLATracker
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from ticket_automation.sla.application.dto import (
    SLAPolicyCreateDTO,
    SLAPolicyUpdateDTO,
    SLAPolicyResponse,
    TicketSLAResponse,
    SLAStatsResponse,
)
from ticket_automation.sla.application.services import (
    SLATracker,
    ISLAPolicyRepository,
    ITicketSLARepository,
)

__all__ = [
    # DTOs
    "SLAPolicyCreateDTO",
    "SLAPolicyUpdateDTO",
    "SLAPolicyResponse",
    "TicketSLAResponse",
    "SLAStatsResponse",
    # Services
    "SLATracker",
    # Repository Interfaces
    "ISLAPolicyRepository",
    "ITicketSLARepository",
]
