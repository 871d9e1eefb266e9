"""
Workflow Interfaces Layer
=========================

FastAPI route handlers for workflow administration.
"""

from ticket_automation.workflows.interfaces.controllers import router as workflows_router

__all__ = ["workflows_router"]
