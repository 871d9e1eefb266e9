"""
Infrastructure Layer
====================

Technical plumbing shared by every bounded context:
- database: async engine, sessions, collaborator models and repositories
- messaging: WhatsApp Cloud API gateway
- container: wiring of the automation engines per unit of work
"""
