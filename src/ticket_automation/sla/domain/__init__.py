"""
SLA Domain Layer
================

Contains:
- Entities: SLAPolicy, TicketSLA
- Value Objects: BusinessHours, BusinessHoursCalculator

This layer has no dependencies on infrastructure.
"""

from ticket_automation.sla.domain.entities import SLAPolicy, TicketSLA, STATUS_SEVERITY
from ticket_automation.sla.domain.value_objects import BusinessHours, BusinessHoursCalculator

__all__ = [
    # Entities
    "SLAPolicy",
    "TicketSLA",
    "STATUS_SEVERITY",
    # Value Objects
    "BusinessHours",
    "BusinessHoursCalculator",
]
