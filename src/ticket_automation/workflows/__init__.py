"""
Workflow Automation Module
==========================

Bounded Context for rule-driven reactions to ticket and asset lifecycle
events.

Responsibilities:
- Match active workflow templates for an (entity type, trigger) pair
- Evaluate their conditions against the current and previous snapshots
- Execute their actions in declared order, without rollback
- Keep an execution record per template run
"""
