"""
SLA Tracking Module
===================

Bounded Context for Service Level Agreement tracking and escalation.

Responsibilities:
- Compute response and resolution deadlines from the ticket's priority
  policy, optionally in business hours only
- Stamp first response and resolution against those deadlines
- Sweep unresolved tickets for approaching and passed deadlines
- Notify assignees and requesters, escalate breaches once
- Report SLA compliance
"""
