"""
Assignment Interfaces Layer
===========================

FastAPI route handlers for assignment rule administration.
"""

from ticket_automation.assignment.interfaces.controllers import router as assignment_router

__all__ = ["assignment_router"]
