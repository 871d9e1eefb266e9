"""
Infrastructure Layer
=====================

Generic technical concerns shared by every bounded context:
- Structured logging
- Background task dispatch with retry and dead-lettering
"""
