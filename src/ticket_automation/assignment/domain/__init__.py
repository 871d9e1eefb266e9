"""
Assignment Domain Layer
=======================

This layer has no dependencies on infrastructure.
"""

from ticket_automation.assignment.domain.entities import AssignmentRule

__all__ = ["AssignmentRule"]
