"""
SLA Infrastructure Layer
========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Sweep scheduler
"""

from ticket_automation.sla.infrastructure.models import SLAPolicyModel, TicketSLAModel
from ticket_automation.sla.infrastructure.repositories import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketSLARepository,
)
from ticket_automation.sla.infrastructure.external import SLAScheduler

__all__ = [
    "SLAPolicyModel",
    "TicketSLAModel",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemyTicketSLARepository",
    "SLAScheduler",
]
