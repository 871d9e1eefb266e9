"""
Ticket Automation
=================

Workflow orchestration, auto-assignment and SLA tracking for an IT
service-management platform.
"""

__version__ = "1.0.0"
