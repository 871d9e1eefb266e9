"""
Shared Kernel Module
====================

Shared infrastructure and domain elements used across the automation
bounded contexts (Workflows, Assignment, SLA).

Architecture Pattern: Modular Monolith
- Each module (workflows, assignment, sla) is a bounded context
- Shared kernel contains only generic infrastructure and the condition
  language every context evaluates

DO NOT add workflow, assignment or SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
