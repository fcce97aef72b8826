"""
Core round lifecycle layer

This package holds the stateful game logic:
- State machine: legal round status transitions
- RoundEngine: one per server, owns the round lifecycle
- EngineRegistry: lazily creates one engine per server
- VoteCollector: time-boxed vote collection
- Storage: async persistence interface and its SQLAlchemy implementation
- Locks: row-level locking helpers
"""
