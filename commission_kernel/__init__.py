"""
Commission Kernel - governed commission approval workflow.

A three-stage approval chain for commission submissions with:
- Explicit actors and stage authority
- Atomic single-record transitions
- Append-only status and revision history
- Permanent job number denial locks
- Transactional notification outbox
"""

__version__ = "0.1.0"
