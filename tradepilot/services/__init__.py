"""Services Layer — tool registry, agent loop, phased workflow and run journal.

Invariants:
    - Tool catalogue uses explicit descriptor lists (no auto-discovery)
    - Services own IO (model calls, handlers, DB); decisions are delegated to core/
"""
