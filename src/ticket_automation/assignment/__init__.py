"""
Auto-Assignment Module
======================

Bounded Context for routing new tickets to technicians.

Responsibilities:
- Match administrator-defined assignment rules against new tickets
- Resolve an available technician per rule policy (specific user,
  round-robin, least busy, location)
- Fall back to the least busy technician
- Report technician workload
"""
